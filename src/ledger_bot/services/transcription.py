import base64
import json
from typing import Any

from ledger_bot.core import settings
from ledger_bot.integration.telegram import TelegramClient
from ledger_bot.integration.workers_ai import WorkersAIClient
from ledger_bot.logger import get_logger

logger = get_logger(__name__)


def normalize_transcription(reply: Any) -> str:
    """Reduce a speech-to-text reply of any shape to plain text.

    Accepts a bare string, an object carrying ``text`` or ``transcript``
    (optionally wrapped in a ``result``/``response`` envelope), and otherwise
    falls back to the JSON rendering of whatever came back.
    """
    if isinstance(reply, dict):
        for envelope in ("result", "response"):
            if envelope in reply and reply[envelope] is not None:
                reply = reply[envelope]
                break

    if isinstance(reply, str):
        return reply
    if isinstance(reply, dict):
        for key in ("text", "transcript"):
            value = reply.get(key)
            if isinstance(value, str):
                return value
        return json.dumps(reply, ensure_ascii=False)
    return str(reply)


class Transcriber:
    def __init__(
        self,
        telegram: TelegramClient,
        workers_ai: WorkersAIClient,
        model: str | None = None,
    ) -> None:
        self.telegram = telegram
        self.workers_ai = workers_ai
        self.model = model or settings.get_env_str(
            "TRANSCRIPTION_MODEL",
            settings.DEFAULT_TRANSCRIPTION_MODEL,
        )

    async def transcribe(self, file_id: str) -> str:
        file_path = await self.telegram.get_file_path(file_id)
        audio = await self.telegram.download_file(file_path)
        logger.debug("[TRANSCRIBE] Downloaded %d bytes for file %s.", len(audio), file_id)

        encoded = base64.b64encode(audio).decode("ascii")
        reply = await self.workers_ai.run(self.model, {"audio": encoded})
        text = normalize_transcription(reply)
        logger.info("[TRANSCRIBE] Transcribed %d characters.", len(text))
        return text
