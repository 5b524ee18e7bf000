import asyncio
import os
from typing import Any

import httpx

from ledger_bot.errors import FetchError, SinkForwardError
from ledger_bot.logger import get_logger

logger = get_logger(__name__)

DEFAULT_TIMEOUT = 30.0


def _string_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value if item is not None and str(item).strip()]


class SheetsClient:
    """Spreadsheet web endpoint: GET serves reference lists, POST records a transaction."""

    def __init__(
        self,
        url: str | None = None,
        client: httpx.AsyncClient | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.url = url or os.getenv("SHEETS_URL")
        self.timeout = timeout
        self._client = client
        self._client_lock = asyncio.Lock()

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
                # Apps Script web apps answer through a redirect.
                client = httpx.AsyncClient(timeout=self.timeout, follow_redirects=True)
                self._client = client
            return client

    async def fetch_reference_data(self) -> tuple[list[str], list[str]]:
        if not self.url:
            raise FetchError("SHEETS_URL not configured")

        client = await self._get_client()
        try:
            response = await client.get(self.url)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as exc:
            raise FetchError(f"Reference data request failed: {exc}") from exc
        except ValueError as exc:
            raise FetchError(f"Reference data is not valid JSON: {exc}") from exc

        if not isinstance(data, dict):
            raise FetchError("Reference data is not a JSON object")
        return _string_list(data.get("categories")), _string_list(data.get("paymentMethods"))

    async def forward_transaction(self, payload: dict[str, Any]) -> None:
        if not self.url:
            raise SinkForwardError("SHEETS_URL not configured")

        client = await self._get_client()
        try:
            response = await client.post(self.url, json=payload)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise SinkForwardError(f"Sink request failed: {exc}") from exc
        logger.debug("[SINK] Transaction forwarded (status %s).", response.status_code)
