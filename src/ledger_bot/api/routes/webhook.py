from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from fastapi.responses import PlainTextResponse
from pydantic import ValidationError

from ledger_bot.api.dependencies import get_dispatcher, verify_webhook_secret
from ledger_bot.core import settings
from ledger_bot.domain.telegram import Update
from ledger_bot.logger import get_logger
from ledger_bot.services.dispatcher import UpdateDispatcher

logger = get_logger(__name__)

router = APIRouter()


@router.post(
    settings.WEBHOOK_PATH,
    response_class=PlainTextResponse,
    dependencies=[Depends(verify_webhook_secret)],
)
async def telegram_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    dispatcher: Annotated[UpdateDispatcher, Depends(get_dispatcher)],
) -> str:
    try:
        payload = await request.json()
    except Exception as exc:
        logger.warning("[WEBHOOK] Received invalid JSON payload.")
        raise HTTPException(status_code=400, detail="Invalid JSON payload") from exc

    try:
        update = Update.model_validate(payload)
    except ValidationError as exc:
        # Acknowledge anyway so Telegram stops redelivering an update we cannot read.
        logger.warning("[WEBHOOK] Ignoring malformed update: %s", exc.errors()[:3])
        return "Ok"

    logger.debug("[WEBHOOK] Update %s received.", update.update_id)
    # Runs after the response is sent; Telegram redelivers only on a failed acknowledgment.
    background_tasks.add_task(dispatcher.handle, update)
    return "Ok"
