import os
import secrets
from typing import Annotated

from fastapi import Header, HTTPException, Request

from ledger_bot.core import settings
from ledger_bot.errors import AuthError
from ledger_bot.integration.telegram import TelegramClient
from ledger_bot.logger import get_logger
from ledger_bot.services.dispatcher import UpdateDispatcher

logger = get_logger(__name__)


def get_dispatcher(request: Request) -> UpdateDispatcher:
    dispatcher = getattr(request.app.state, "dispatcher", None)
    if not dispatcher:
        raise HTTPException(status_code=500, detail="Service not initialized")
    return dispatcher


def get_telegram(request: Request) -> TelegramClient:
    telegram = getattr(request.app.state, "telegram", None)
    if not telegram:
        raise HTTPException(status_code=500, detail="Telegram not configured")
    return telegram


def verify_webhook_secret(
    secret_token: Annotated[str | None, Header(alias=settings.SECRET_HEADER)] = None,
) -> None:
    expected = os.getenv("TELEGRAM_WEBHOOK_SECRET")
    if not expected:
        logger.warning("[WEBHOOK] TELEGRAM_WEBHOOK_SECRET not set; rejecting request.")
        raise AuthError("Webhook secret not configured")
    if not secret_token or not secrets.compare_digest(secret_token, expected):
        raise AuthError("Invalid webhook secret")
