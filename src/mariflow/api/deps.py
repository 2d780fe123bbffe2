"""Request-scoped accessors for objects the app factory builds."""

from fastapi import Request

from mariflow.config import Settings
from mariflow.whatsapp.service import WhatsAppService


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_service(request: Request) -> WhatsAppService:
    return request.app.state.whatsapp
