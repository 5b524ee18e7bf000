import asyncio
import os
from typing import Any

import httpx

from ledger_bot.core import settings
from ledger_bot.errors import DownloadError, FileResolutionError
from ledger_bot.logger import get_logger

logger = get_logger(__name__)

DEFAULT_TIMEOUT = 30.0


class TelegramClient:
    """One-shot calls to the Telegram Bot API. No retries; API errors are logged and returned."""

    def __init__(
        self,
        token: str | None = None,
        api_url: str | None = None,
        client: httpx.AsyncClient | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.token = token or os.getenv("TELEGRAM_BOT_TOKEN")
        self.api_url = (
            api_url
            or settings.get_env_str("TELEGRAM_API_URL", settings.DEFAULT_TELEGRAM_API_URL)
        ).rstrip("/")
        self.timeout = timeout
        self._client = client
        self._client_lock = asyncio.Lock()

    @property
    def configured(self) -> bool:
        return bool(self.token)

    def method_url(self, method: str) -> str:
        return f"{self.api_url}/bot{self.token}/{method}"

    def file_url(self, file_path: str) -> str:
        return f"{self.api_url}/file/bot{self.token}/{file_path}"

    async def aclose(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def _get_client(self) -> httpx.AsyncClient:
        client = self._client
        if client is not None and not client.is_closed:
            return client

        async with self._client_lock:
            client = self._client
            if client is None or client.is_closed:
                client = httpx.AsyncClient(timeout=self.timeout)
                self._client = client
            return client

    async def call(self, method: str, payload: dict[str, Any]) -> dict[str, Any]:
        client = await self._get_client()
        response = await client.post(self.method_url(method), json=payload)
        try:
            result = response.json()
        except ValueError:
            logger.error(
                "[TELEGRAM] %s returned non-JSON response (status %s).",
                method,
                response.status_code,
            )
            return {"ok": False, "status_code": response.status_code}
        if not isinstance(result, dict):
            return {"ok": False, "result": result}
        if not result.get("ok"):
            logger.error("[TELEGRAM] API error (%s): %s", method, result)
        return result

    async def send_message(self, chat_id: int, text: str) -> dict[str, Any]:
        return await self.call(
            "sendMessage",
            {"chat_id": chat_id, "text": text, "parse_mode": "Markdown"},
        )

    async def edit_message_text(
        self,
        chat_id: int,
        message_id: int,
        text: str,
        reply_markup: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "chat_id": chat_id,
            "message_id": message_id,
            "text": text,
            "parse_mode": "Markdown",
            # An empty keyboard removes any buttons already on the message.
            "reply_markup": reply_markup or {"inline_keyboard": []},
        }
        return await self.call("editMessageText", payload)

    async def answer_callback_query(self, callback_id: str) -> dict[str, Any]:
        return await self.call("answerCallbackQuery", {"callback_query_id": callback_id})

    async def set_webhook(self, url: str, secret_token: str | None = None) -> dict[str, Any]:
        payload: dict[str, Any] = {"url": url}
        if secret_token:
            payload["secret_token"] = secret_token
        return await self.call("setWebhook", payload)

    async def get_file_path(self, file_id: str) -> str:
        try:
            result = await self.call("getFile", {"file_id": file_id})
        except httpx.HTTPError as exc:
            raise FileResolutionError(f"Could not resolve Telegram file: {exc}") from exc
        file_info = result.get("result")
        file_path = file_info.get("file_path") if isinstance(file_info, dict) else None
        if not file_path:
            raise FileResolutionError("Telegram file_path not found")
        return file_path

    async def download_file(self, file_path: str) -> bytes:
        client = await self._get_client()
        try:
            response = await client.get(self.file_url(file_path))
        except httpx.HTTPError as exc:
            raise DownloadError(f"Failed to download file from Telegram: {exc}") from exc
        if not response.is_success:
            raise DownloadError(
                f"Failed to download file from Telegram (status {response.status_code})"
            )
        return response.content


def message_id_of(response: dict[str, Any]) -> int | None:
    result = response.get("result")
    if isinstance(result, dict):
        message_id = result.get("message_id")
        if isinstance(message_id, int):
            return message_id
    return None
