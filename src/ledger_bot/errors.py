class LedgerBotError(Exception):
    """Base class for every failure the bot knows how to handle."""


class AuthError(LedgerBotError):
    """Webhook call did not carry the configured secret."""


class FetchError(LedgerBotError):
    """Reference data source unreachable or answered with an error."""


class FileResolutionError(LedgerBotError):
    """The chat platform returned no downloadable path for an attachment."""


class DownloadError(LedgerBotError):
    """Attachment download failed."""


class TranscriptionError(LedgerBotError):
    """Speech-to-text model call failed."""


class ExtractionError(LedgerBotError):
    """Language model call failed."""


class ParseError(LedgerBotError):
    """Language model reply is not a valid transaction object."""


class SinkForwardError(LedgerBotError):
    """Approved transaction could not be posted to the sink."""
