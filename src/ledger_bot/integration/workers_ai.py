import asyncio
import os
from typing import Any

import httpx

from ledger_bot.core import settings
from ledger_bot.errors import TranscriptionError
from ledger_bot.logger import get_logger

logger = get_logger(__name__)

DEFAULT_TIMEOUT = 120.0


class WorkersAIClient:
    """Runs hosted models through the Workers AI REST endpoint."""

    def __init__(
        self,
        account_id: str | None = None,
        api_token: str | None = None,
        base_url: str | None = None,
        client: httpx.AsyncClient | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.account_id = account_id or os.getenv("CLOUDFLARE_ACCOUNT_ID")
        self.api_token = api_token or os.getenv("CLOUDFLARE_API_TOKEN")
        self.base_url = (
            base_url
            or settings.get_env_str("WORKERS_AI_BASE_URL", settings.DEFAULT_WORKERS_AI_BASE_URL)
        ).rstrip("/")
        self.headers = {
            "Authorization": f"Bearer {self.api_token}",
            "Content-Type": "application/json",
        }
        self.timeout = timeout
        self._client = client
        self._client_lock = asyncio.Lock()

    @property
    def configured(self) -> bool:
        return bool(self.account_id and self.api_token)

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

    async def run(self, model: str, inputs: dict[str, Any]) -> Any:
        if not self.configured:
            raise TranscriptionError("Workers AI credentials missing")

        client = await self._get_client()
        url = f"{self.base_url}/accounts/{self.account_id}/ai/run/{model}"
        try:
            response = await client.post(url, headers=self.headers, json=inputs)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as exc:
            logger.error("[TRANSCRIBE] Model %s failed: %s", model, exc)
            raise TranscriptionError(str(exc)) from exc
        except ValueError as exc:
            raise TranscriptionError(f"Model {model} returned non-JSON response") from exc

        if isinstance(data, dict) and data.get("success") is False:
            raise TranscriptionError(f"Model {model} reported errors: {data.get('errors')}")
        return data
