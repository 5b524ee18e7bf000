import json
import os
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse

from ledger_bot.api.dependencies import get_telegram
from ledger_bot.core import settings
from ledger_bot.integration.telegram import TelegramClient
from ledger_bot.logger import get_logger

logger = get_logger(__name__)

router = APIRouter()


def _webhook_url(request: Request) -> str:
    base_url = os.getenv("WEBHOOK_BASE_URL")
    if base_url:
        return f"{base_url.rstrip('/')}{settings.WEBHOOK_PATH}"
    return f"{request.url.scheme}://{request.url.hostname}{settings.WEBHOOK_PATH}"


def _describe(result: dict[str, Any]) -> str:
    if result.get("ok"):
        return "Ok"
    return json.dumps(result, indent=2)


@router.get("/registerWebhook", response_class=PlainTextResponse)
async def register_webhook(
    request: Request,
    telegram: Annotated[TelegramClient, Depends(get_telegram)],
) -> str:
    url = _webhook_url(request)
    result = await telegram.set_webhook(url, os.getenv("TELEGRAM_WEBHOOK_SECRET"))
    if result.get("ok"):
        logger.info("[WEBHOOK] Registered webhook at %s.", url)
    return _describe(result)


@router.get("/unRegisterWebhook", response_class=PlainTextResponse)
async def unregister_webhook(
    telegram: Annotated[TelegramClient, Depends(get_telegram)],
) -> str:
    result = await telegram.set_webhook("")
    if result.get("ok"):
        logger.info("[WEBHOOK] Webhook removed.")
    return _describe(result)
