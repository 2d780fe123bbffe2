"""Runtime settings loaded from environment variables.

All values are read once at app creation (see api/factory.py). Tests build
Settings directly instead of touching the environment.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Literal

Backend = Literal["inline", "bridge"]

# Development fallback - a warning is logged whenever it is in use
DEFAULT_API_KEY = "your-secret-api-key-here"

DEFAULT_MAX_FILE_SIZE = 10 * 1024 * 1024  # 10MB


@dataclass(frozen=True)
class Settings:
    """Service configuration.

    Attributes:
        api_key: Static key expected in X-API-Key / Authorization: Bearer.
        backend: Underlying client variant ("inline" or "bridge").
        session_path: Directory the inline client stores paired credentials in
            (the bridge sidecar keeps its own session store).
        session_id: Session name on the bridge sidecar and the inline
            credentials file name.
        bridge_url: Base URL of the whatsapp-web.js sidecar.
        bridge_api_key: Key sent to the sidecar in the x-api-key header.
        bridge_timeout: Sidecar request timeout in seconds.
        webhook_secret: Shared secret expected on bridge webhook calls.
        auto_initialize: Start the client when the app starts.
        restart_delay: Settling delay between teardown and rebuild (seconds).
        heartbeat_interval: SSE ping interval (seconds).
        max_file_size: Upload limit for send-media (bytes).
    """

    api_key: str = DEFAULT_API_KEY
    backend: Backend = "inline"
    session_path: str = "./sessions"
    session_id: str = "mariflow"
    bridge_url: str = "http://localhost:3001"
    bridge_api_key: str = ""
    bridge_timeout: float = 30.0
    webhook_secret: str = ""
    auto_initialize: bool = True
    restart_delay: float = 2.0
    heartbeat_interval: float = 30.0
    max_file_size: int = DEFAULT_MAX_FILE_SIZE
    host: str = "0.0.0.0"
    port: int = 3000
    log_level: str = "INFO"


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "")
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "")
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


def load_settings() -> Settings:
    """Build Settings from the environment.

    Raises:
        ValueError: If WHATSAPP_BACKEND is unknown or a numeric value is invalid.
    """
    backend = os.environ.get("WHATSAPP_BACKEND", "inline").strip().lower()
    if backend not in ("inline", "bridge"):
        raise ValueError(f"Unknown WHATSAPP_BACKEND: {backend}")

    return Settings(
        api_key=os.environ.get("API_KEY") or DEFAULT_API_KEY,
        backend=backend,  # type: ignore[arg-type]
        session_path=os.environ.get("WHATSAPP_SESSION_PATH", "./sessions"),
        session_id=os.environ.get("WHATSAPP_SESSION_ID", "mariflow"),
        bridge_url=os.environ.get("WHATSAPP_BRIDGE_URL", "http://localhost:3001"),
        bridge_api_key=os.environ.get("WHATSAPP_BRIDGE_API_KEY", ""),
        bridge_timeout=_env_float("WHATSAPP_BRIDGE_TIMEOUT", 30.0),
        webhook_secret=os.environ.get("WHATSAPP_WEBHOOK_SECRET", ""),
        auto_initialize=_env_bool("WHATSAPP_AUTO_INITIALIZE", True),
        restart_delay=_env_float("WHATSAPP_RESTART_DELAY", 2.0),
        heartbeat_interval=_env_float("EVENTS_HEARTBEAT_INTERVAL", 30.0),
        max_file_size=_env_int("MAX_FILE_SIZE", DEFAULT_MAX_FILE_SIZE),
        host=os.environ.get("HOST", "0.0.0.0"),
        port=_env_int("PORT", 3000),
        log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    )
