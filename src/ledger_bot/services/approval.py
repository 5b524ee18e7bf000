import httpx
from pydantic import ValidationError

from ledger_bot.core import settings
from ledger_bot.domain.formatting import (
    approved_banner,
    debug_echo,
    format_transaction_message,
    refused_banner,
    transaction_action_buttons,
)
from ledger_bot.errors import SinkForwardError
from ledger_bot.integration.sheets import SheetsClient
from ledger_bot.integration.telegram import TelegramClient
from ledger_bot.logger import get_logger
from ledger_bot.models import Transaction
from ledger_bot.storage.cache import CacheStore

logger = get_logger(__name__)


def pending_key(chat_id: int, message_id: int) -> str:
    return f"txn:{chat_id}:{message_id}"


class ApprovalWorkflow:
    """Pending transaction lifecycle: proposed, then approved, refused or left to expire."""

    def __init__(
        self,
        cache: CacheStore,
        telegram: TelegramClient,
        sheets: SheetsClient,
        *,
        pending_ttl: int | None = None,
        currency: str | None = None,
        debug_echo_enabled: bool | None = None,
    ) -> None:
        self.cache = cache
        self.telegram = telegram
        self.sheets = sheets
        if pending_ttl is None:
            pending_ttl = settings.get_env_int("PENDING_TTL", settings.DEFAULT_PENDING_TTL, min_value=1)
        self.pending_ttl = pending_ttl
        self.currency = currency or settings.get_env_str(
            "CURRENCY_SYMBOL", settings.DEFAULT_CURRENCY_SYMBOL
        )
        if debug_echo_enabled is None:
            debug_echo_enabled = settings.get_env_bool("SINK_DEBUG_ECHO", True)
        self.debug_echo_enabled = debug_echo_enabled

    async def load_pending(self, chat_id: int, message_id: int) -> Transaction | None:
        key = pending_key(chat_id, message_id)
        raw = await self.cache.get(key)
        if raw is None:
            return None
        try:
            return Transaction.from_json(raw)
        except ValidationError as exc:
            logger.error("[APPROVAL] Stored record %s is unreadable: %s", key, exc)
            return None

    async def propose(self, chat_id: int, message_id: int, transaction: Transaction) -> None:
        key = pending_key(chat_id, message_id)
        await self.cache.put(key, transaction.to_json(), ttl=self.pending_ttl)
        logger.info("[APPROVAL] Proposed %s (expires in %ss).", key, self.pending_ttl)
        await self.telegram.edit_message_text(
            chat_id,
            message_id,
            format_transaction_message(transaction, self.currency),
            transaction_action_buttons(),
        )

    async def approve(self, chat_id: int, message_id: int, message_text: str) -> bool:
        """Forward the pending transaction, if any, and mark the message approved.

        Returns whether a pending record existed.
        """
        key = pending_key(chat_id, message_id)
        transaction = await self.load_pending(chat_id, message_id)
        summary = message_text

        if transaction is not None:
            payload = transaction.to_payload()
            try:
                await self.sheets.forward_transaction(payload)
            except SinkForwardError as exc:
                logger.error("[SINK] Error posting transaction %s: %s", key, exc)
            else:
                logger.info("[APPROVAL] Forwarded %s to sink.", key)
                if self.debug_echo_enabled:
                    try:
                        await self.telegram.send_message(chat_id, debug_echo(payload))
                    except httpx.HTTPError as exc:
                        logger.warning("[APPROVAL] Debug echo for %s not sent: %s", key, exc)
            await self.cache.delete(key)
            summary = format_transaction_message(transaction, self.currency)
        else:
            logger.info("[APPROVAL] No pending record for %s; nothing forwarded.", key)

        await self.telegram.edit_message_text(chat_id, message_id, approved_banner(summary))
        return transaction is not None

    async def refuse(self, chat_id: int, message_id: int, message_text: str) -> None:
        key = pending_key(chat_id, message_id)
        await self.cache.delete(key)
        logger.info("[APPROVAL] Refused %s.", key)
        await self.telegram.edit_message_text(chat_id, message_id, refused_banner(message_text))
