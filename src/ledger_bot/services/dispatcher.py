import httpx

from ledger_bot.domain.formatting import (
    APPROVE_ACTION,
    PROCESSING_FAILED_TEXT,
    PROCESSING_TEXT,
    REFUSE_ACTION,
    UNSUPPORTED_TEXT,
    failure_notice,
)
from ledger_bot.domain.telegram import (
    AudioMessage,
    CallbackAction,
    IgnoredUpdate,
    TextMessage,
    UnsupportedMessage,
    Update,
    classify_update,
)
from ledger_bot.errors import (
    DownloadError,
    ExtractionError,
    FileResolutionError,
    TranscriptionError,
)
from ledger_bot.integration.telegram import TelegramClient, message_id_of
from ledger_bot.logger import get_logger
from ledger_bot.services.approval import ApprovalWorkflow
from ledger_bot.services.extraction import TransactionExtractor
from ledger_bot.services.reference_data import ReferenceDataFetcher
from ledger_bot.services.transcription import Transcriber

logger = get_logger(__name__)


class UpdateDispatcher:
    def __init__(
        self,
        telegram: TelegramClient,
        reference_data: ReferenceDataFetcher,
        extractor: TransactionExtractor,
        approvals: ApprovalWorkflow,
        transcriber: Transcriber,
    ) -> None:
        self.telegram = telegram
        self.reference_data = reference_data
        self.extractor = extractor
        self.approvals = approvals
        self.transcriber = transcriber

    async def handle(self, update: Update) -> None:
        """Entry point for the background task; never raises."""
        try:
            await self.dispatch(update)
        except Exception:
            logger.exception("[DISPATCH] Unhandled error processing update %s.", update.update_id)

    async def dispatch(self, update: Update) -> None:
        kind = classify_update(update)
        if isinstance(kind, TextMessage):
            await self.on_text(kind)
        elif isinstance(kind, AudioMessage):
            await self.on_audio(kind)
        elif isinstance(kind, UnsupportedMessage):
            await self.telegram.send_message(kind.chat_id, UNSUPPORTED_TEXT)
        elif isinstance(kind, CallbackAction):
            await self.on_callback(kind)
        elif isinstance(kind, IgnoredUpdate):
            logger.debug("[DISPATCH] Ignoring update %s: %s.", kind.update_id, kind.reason)

    async def _send_processing(self, chat_id: int) -> int | None:
        response = await self.telegram.send_message(chat_id, PROCESSING_TEXT)
        message_id = message_id_of(response)
        if message_id is None:
            await self.telegram.send_message(chat_id, PROCESSING_FAILED_TEXT)
        return message_id

    async def on_text(self, message: TextMessage) -> None:
        processing_id = await self._send_processing(message.chat_id)
        if processing_id is None:
            return
        await self.process_transaction(message.chat_id, processing_id, message.text)

    async def on_audio(self, message: AudioMessage) -> None:
        processing_id = await self._send_processing(message.chat_id)
        if processing_id is None:
            return
        try:
            text = await self.transcriber.transcribe(message.file_id)
        except (FileResolutionError, DownloadError, TranscriptionError) as exc:
            logger.warning("[DISPATCH] Transcription failed for chat %s: %s", message.chat_id, exc)
            await self.telegram.send_message(
                message.chat_id,
                failure_notice("Failed to transcribe audio", exc),
            )
            return
        await self.process_transaction(message.chat_id, processing_id, text)

    async def process_transaction(self, chat_id: int, message_id: int, text: str) -> None:
        reference = await self.reference_data.get_reference_data()
        try:
            result = await self.extractor.extract(
                text,
                reference.categories,
                reference.payment_methods,
            )
        except ExtractionError as exc:
            logger.error("[DISPATCH] Error processing transaction for chat %s: %s", chat_id, exc)
            await self.telegram.send_message(
                chat_id,
                failure_notice("Error processing transaction", exc),
            )
            return

        if result.transaction is not None:
            await self.approvals.propose(chat_id, message_id, result.transaction)
        else:
            # Nothing is stored for an unparsed reply, so no buttons are offered.
            await self.telegram.edit_message_text(chat_id, message_id, result.text)

    async def on_callback(self, action: CallbackAction) -> None:
        try:
            await self.telegram.answer_callback_query(action.callback_id)
        except httpx.HTTPError as exc:
            logger.warning("[DISPATCH] Could not answer callback %s: %s", action.callback_id, exc)
        if action.data == APPROVE_ACTION:
            await self.approvals.approve(action.chat_id, action.message_id, action.message_text)
        elif action.data == REFUSE_ACTION:
            await self.approvals.refuse(action.chat_id, action.message_id, action.message_text)
        else:
            logger.info("[DISPATCH] Unknown callback data '%s'; ignoring.", action.data)
