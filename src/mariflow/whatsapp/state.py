"""Session state holder - the single mutable record of session status."""

from __future__ import annotations

from datetime import datetime
from typing import Callable

from mariflow.infra.time import utc_now

from .models import SessionPhase, SessionStatus

_CONNECTED_PHASES = frozenset({SessionPhase.AUTHENTICATED, SessionPhase.READY})


class SessionStateHolder:
    """Guarded mutable record behind ``snapshot()``.

    Mutated only on the event-loop thread: by the event normalizer for
    lifecycle transitions, and by the command facade through ``touch()``
    and ``reset()``. Readers always get an immutable SessionStatus.
    """

    def __init__(self, clock: Callable[[], datetime] = utc_now) -> None:
        self._clock = clock
        self._status = SessionStatus()

    def snapshot(self) -> SessionStatus:
        return self._status

    @property
    def phase(self) -> SessionPhase:
        return self._status.phase

    def _replace(self, **changes) -> SessionStatus:
        current = self._status
        values = {
            "phase": current.phase,
            "qr_challenge": current.qr_challenge,
            "phone_number": current.phone_number,
            "display_name": current.display_name,
            "last_activity_at": self._clock(),
        }
        values.update(changes)
        self._status = SessionStatus(**values)
        return self._status

    def await_qr(self, challenge: str | None) -> SessionStatus:
        return self._replace(phase=SessionPhase.AWAITING_QR, qr_challenge=challenge)

    def keep_awaiting_qr(self) -> SessionStatus:
        """Auth failure while pairing: stay in AWAITING_QR, keep the challenge.

        Any other phase is left as is.
        """
        if self._status.phase is not SessionPhase.AWAITING_QR:
            return self._status
        return self._replace()

    def authenticate(self) -> SessionStatus:
        return self._replace(phase=SessionPhase.AUTHENTICATED, qr_challenge=None)

    def mark_ready(self, phone_number: str | None, display_name: str | None) -> SessionStatus:
        return self._replace(
            phase=SessionPhase.READY,
            qr_challenge=None,
            phone_number=phone_number,
            display_name=display_name,
        )

    def disconnect(self) -> SessionStatus:
        """Drop flags and challenge; last-known identity stays for diagnostics.

        Only an AUTHENTICATED or READY session can disconnect. A late
        disconnect after a reset or during pairing changes nothing.
        """
        if self._status.phase not in _CONNECTED_PHASES:
            return self._status
        return self._replace(phase=SessionPhase.DISCONNECTED, qr_challenge=None)

    def touch(self) -> SessionStatus:
        return self._replace()

    def reset(self) -> SessionStatus:
        """Back to the process-start values (logout / destroy)."""
        self._status = SessionStatus()
        return self._status
