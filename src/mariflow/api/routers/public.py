"""Unauthenticated service routes."""

from fastapi import APIRouter

from mariflow.version import __version__

router = APIRouter()

SERVICE_NAME = "MariFlow WhatsApp API"


@router.get("/health")
def health() -> dict:
    """Health check endpoint."""
    return {"status": "ok"}


@router.get("/")
def root() -> dict:
    return {
        "name": SERVICE_NAME,
        "version": __version__,
        "endpoints": {
            "health": "/health",
            "api": "/api/v1",
            "events": "/api/v1/whatsapp/events",
            "socket": "/ws",
        },
    }
