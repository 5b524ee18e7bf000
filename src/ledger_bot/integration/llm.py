import os

from openai import OpenAI, OpenAIError

from ledger_bot.core import settings
from ledger_bot.errors import ExtractionError
from ledger_bot.logger import get_logger

logger = get_logger(__name__)


class LLMClient:
    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        base_url: str | None = None,
    ):
        self.api_key = api_key or os.getenv("OPENAI_API_KEY")
        self.base_url = base_url or os.getenv("OPENAI_BASE_URL") or None
        self.model = model or settings.get_env_str("OPENAI_MODEL", settings.DEFAULT_OPENAI_MODEL)
        self._client: OpenAI | None = None

    def _get_client(self) -> OpenAI:
        # The SDK refuses to build without a key, so defer until the first call.
        if self._client is None:
            self._client = OpenAI(api_key=self.api_key, base_url=self.base_url)
        return self._client

    def complete(self, instructions: str, text: str) -> str:
        """Run one chat completion and return the reply text.

        Blocking; callers on the event loop go through ``asyncio.to_thread``.
        """
        try:
            response = self._get_client().chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": instructions},
                    {"role": "user", "content": text},
                ],
                temperature=0.0,
            )
        except OpenAIError as exc:
            logger.error("[EXTRACT] LLM error: %s", exc)
            raise ExtractionError(str(exc)) from exc

        return self._extract_output_text(response)

    @staticmethod
    def _extract_output_text(response: object) -> str:
        choices = getattr(response, "choices", None) or []
        for choice in choices:
            message = getattr(choice, "message", None)
            content = getattr(message, "content", None)
            if isinstance(content, str) and content:
                return content
        return ""
