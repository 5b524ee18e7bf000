import os
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse

from ledger_bot.api.routes import registration, webhook
from ledger_bot.core import settings
from ledger_bot.errors import AuthError
from ledger_bot.integration.llm import LLMClient
from ledger_bot.integration.sheets import SheetsClient
from ledger_bot.integration.telegram import TelegramClient
from ledger_bot.integration.workers_ai import WorkersAIClient
from ledger_bot.logger import get_logger, setup_logging
from ledger_bot.services.approval import ApprovalWorkflow
from ledger_bot.services.dispatcher import UpdateDispatcher
from ledger_bot.services.extraction import TransactionExtractor
from ledger_bot.services.reference_data import ReferenceDataFetcher
from ledger_bot.services.transcription import Transcriber
from ledger_bot.storage.cache import create_cache_store

logger = get_logger(__name__)


async def auth_error_handler(request: Request, exc: Exception) -> PlainTextResponse:
    logger.warning("[WEBHOOK] Rejected request from %s: %s", request.client.host if request.client else "?", exc)
    return PlainTextResponse("Unauthorized", status_code=403)


def create_app() -> FastAPI:
    setup_logging()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        logger.info("Initializing services...")
        settings.log_environment()

        if not os.getenv("TELEGRAM_BOT_TOKEN"):
            logger.warning("TELEGRAM_BOT_TOKEN not set. Telegram calls will fail.")
        if not os.getenv("TELEGRAM_WEBHOOK_SECRET"):
            logger.warning("TELEGRAM_WEBHOOK_SECRET not set. Every webhook call will be rejected.")
        if not os.getenv("SHEETS_URL"):
            logger.warning("SHEETS_URL not set. Reference data and forwarding are disabled.")
        if not os.getenv("OPENAI_API_KEY"):
            logger.warning("OPENAI_API_KEY not set. Transaction extraction will fail.")

        cache = create_cache_store(settings.CACHE_BACKEND, settings.DATA_DIR)
        telegram = TelegramClient()
        sheets = SheetsClient()
        workers_ai = WorkersAIClient()
        if not workers_ai.configured:
            logger.warning("Workers AI credentials not set. Voice messages cannot be transcribed.")

        approvals = ApprovalWorkflow(cache=cache, telegram=telegram, sheets=sheets)
        dispatcher = UpdateDispatcher(
            telegram=telegram,
            reference_data=ReferenceDataFetcher(cache=cache, sheets=sheets),
            extractor=TransactionExtractor(llm=LLMClient()),
            approvals=approvals,
            transcriber=Transcriber(telegram=telegram, workers_ai=workers_ai),
        )

        app.state.cache = cache
        app.state.telegram = telegram
        app.state.dispatcher = dispatcher

        logger.info("Services initialized. Webhook path: %s", settings.WEBHOOK_PATH)
        yield
        logger.info("Service shutting down.")
        await telegram.aclose()
        await sheets.aclose()
        await workers_ai.aclose()
        await cache.aclose()

    app = FastAPI(title="Ledger Bot", lifespan=lifespan)
    app.add_exception_handler(AuthError, auth_error_handler)

    app.include_router(webhook.router)
    app.include_router(registration.router)

    return app


app = create_app()
