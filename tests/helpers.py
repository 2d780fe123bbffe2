"""Shared test helpers for MariFlow tests.

This module contains constants and helper functions that can be imported by
both conftest.py and individual test files. These are NOT fixtures.
"""

from __future__ import annotations

import asyncio

TEST_API_KEY = "test-api-key"
TEST_WEBHOOK_SECRET = "test-webhook-secret"

OWN_NUMBER = "5511900000000"
OWN_ID = f"{OWN_NUMBER}@c.us"
ALICE = "5511911111111@c.us"
BOB = "5511922222222@c.us"
CAROL = "5511933333333@c.us"
GROUP_ID = "120363000000000001@g.us"


def run(coro):
    """Run a coroutine to completion on a fresh event loop."""
    return asyncio.run(coro)


async def no_sleep(_seconds: float) -> None:
    return None
