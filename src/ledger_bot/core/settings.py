import os

from dotenv import find_dotenv, load_dotenv

from ledger_bot.logger import get_logger

logger = get_logger(__name__)


CONFIG_FILENAME = "config.yaml"

_CONFIG_FILE_PATH: str | None = None
_CONFIG_FILE_VALUES: dict[str, str] = {}
_EXTERNAL_ENV_KEYS: set[str] = set()

_CONFIG_KEYS = (
    "LOG_LEVEL",
    "LOG_DIR",
    "DATA_DIR",
    "TELEGRAM_BOT_TOKEN",
    "TELEGRAM_WEBHOOK_SECRET",
    "TELEGRAM_API_URL",
    "WEBHOOK_PATH",
    "WEBHOOK_BASE_URL",
    "SHEETS_URL",
    "OPENAI_API_KEY",
    "OPENAI_MODEL",
    "OPENAI_BASE_URL",
    "CLOUDFLARE_ACCOUNT_ID",
    "CLOUDFLARE_API_TOKEN",
    "WORKERS_AI_BASE_URL",
    "TRANSCRIPTION_MODEL",
    "CACHE_BACKEND",
    "REFERENCE_MAX_AGE",
    "PENDING_TTL",
    "CURRENCY_SYMBOL",
    "DEFAULT_CATEGORY",
    "DEFAULT_PAYMENT_METHOD",
    "INCOME_KEYWORDS",
    "SINK_DEBUG_ECHO",
)


def _resolve_dotenv_path() -> str | None:
    config_dir = os.getenv("CONFIG_DIR")
    if config_dir:
        candidate = os.path.join(config_dir, ".env")
        if os.path.exists(candidate):
            return candidate
    resolved = find_dotenv(usecwd=True)
    return resolved or None


def _resolve_config_path() -> str:
    config_dir = os.getenv("CONFIG_DIR")
    if config_dir:
        return os.path.join(config_dir, CONFIG_FILENAME)
    cwd = os.getcwd()
    candidate = os.path.join(cwd, "config", CONFIG_FILENAME)
    if os.path.exists(candidate):
        return candidate
    return os.path.join(cwd, CONFIG_FILENAME)


def _strip_inline_comment(raw_value: str) -> str:
    in_single = False
    in_double = False
    for index, char in enumerate(raw_value):
        if char == '"' and not in_single:
            in_double = not in_double
        elif char == "'" and not in_double:
            in_single = not in_single
        elif char == "#" and not in_single and not in_double:
            return raw_value[:index].rstrip()
    return raw_value


def _unquote_value(raw_value: str) -> str:
    if len(raw_value) >= 2 and raw_value[0] == raw_value[-1] and raw_value[0] in {'"', "'"}:
        return raw_value[1:-1]
    return raw_value


def read_config_file(path: str | None) -> dict[str, str]:
    if not path or not os.path.exists(path):
        return {}

    values: dict[str, str] = {}
    with open(path, encoding="utf-8") as handle:
        for line in handle:
            stripped = line.strip()
            if not stripped or stripped.startswith("#") or ":" not in stripped:
                continue
            key, raw_value = stripped.split(":", 1)
            key = key.strip()
            value = _unquote_value(_strip_inline_comment(raw_value).strip())
            if key and value:
                values[key] = value
    return values


def load_environment() -> None:
    global _CONFIG_FILE_PATH
    global _CONFIG_FILE_VALUES
    global _EXTERNAL_ENV_KEYS

    dotenv_path = _resolve_dotenv_path()
    if dotenv_path:
        load_dotenv(dotenv_path=dotenv_path, override=False)

    _EXTERNAL_ENV_KEYS = set(os.environ.keys())

    _CONFIG_FILE_PATH = _resolve_config_path()
    _CONFIG_FILE_VALUES = read_config_file(_CONFIG_FILE_PATH)

    for key in _CONFIG_KEYS:
        if key not in os.environ and key in _CONFIG_FILE_VALUES:
            os.environ[key] = _CONFIG_FILE_VALUES[key]


def get_config_path() -> str | None:
    return _CONFIG_FILE_PATH


def is_env_override(name: str) -> bool:
    return name in _EXTERNAL_ENV_KEYS


def ensure_dir(path: str | None) -> None:
    if path and path not in {".", "./"}:
        os.makedirs(path, exist_ok=True)


def get_env_int(name: str, default: int, min_value: int | None = None) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("[ENV] Invalid %s='%s', using default %s.", name, raw, default)
        return default
    if min_value is not None and value < min_value:
        logger.warning(
            "[ENV] %s='%s' below minimum %s, using default %s.",
            name,
            raw,
            min_value,
            default,
        )
        return default
    return value


def get_env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    value = raw.strip().lower()
    if value in {"1", "true", "yes", "on"}:
        return True
    if value in {"0", "false", "no", "off"}:
        return False
    logger.warning("[ENV] Invalid %s='%s', using default %s.", name, raw, default)
    return default


def get_env_str(name: str, default: str) -> str:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip()


_SENSITIVE_ENV_KEYS = (
    "KEY",
    "TOKEN",
    "SECRET",
    "PASSWORD",
    "AUTH",
    "BEARER",
    "PRIVATE",
)

_ENV_KEYS_TO_LOG = (
    "LOG_LEVEL",
    "TELEGRAM_BOT_TOKEN",
    "TELEGRAM_WEBHOOK_SECRET",
    "TELEGRAM_API_URL",
    "WEBHOOK_PATH",
    "WEBHOOK_BASE_URL",
    "SHEETS_URL",
    "OPENAI_API_KEY",
    "OPENAI_MODEL",
    "OPENAI_BASE_URL",
    "CLOUDFLARE_ACCOUNT_ID",
    "CLOUDFLARE_API_TOKEN",
    "TRANSCRIPTION_MODEL",
    "CACHE_BACKEND",
    "REFERENCE_MAX_AGE",
    "PENDING_TTL",
    "INCOME_KEYWORDS",
    "SINK_DEBUG_ECHO",
)


def _should_mask_env_value(name: str, value: str) -> bool:
    upper_name = name.upper()
    if any(marker in upper_name for marker in _SENSITIVE_ENV_KEYS):
        return True
    if value.startswith("sk-") or value.startswith("Bearer "):
        return True
    return False


def mask_env_value(name: str, value: str) -> str:
    sanitized = value.replace("\r", "\\r").replace("\n", "\\n")
    if not _should_mask_env_value(name, sanitized):
        return sanitized
    if len(sanitized) <= 4:
        return "****"
    return f"{sanitized[:2]}...{sanitized[-2:]}"


def env_source(name: str) -> str:
    if name not in os.environ:
        return "default"
    if is_env_override(name):
        return "env"
    if name in _CONFIG_FILE_VALUES:
        return CONFIG_FILENAME
    return "env"


def log_environment() -> None:
    config_path = get_config_path()
    if config_path and os.path.exists(config_path):
        logger.info("[ENV] Config file: %s", config_path)
    else:
        logger.info("[ENV] No config file found (looked for %s).", config_path)
    logger.info("[ENV] Logging configured environment variables (masked where needed).")
    for key in _ENV_KEYS_TO_LOG:
        raw_value = os.getenv(key)
        value = "<unset>" if raw_value is None else mask_env_value(key, raw_value)
        logger.info("[ENV] %s=%s (%s)", key, value, env_source(key))


DEFAULT_TELEGRAM_API_URL = "https://api.telegram.org"
DEFAULT_WEBHOOK_PATH = "/endpoint"
DEFAULT_OPENAI_MODEL = "gpt-4o-mini"
DEFAULT_WORKERS_AI_BASE_URL = "https://api.cloudflare.com/client/v4"
DEFAULT_TRANSCRIPTION_MODEL = "@cf/openai/whisper-large-v3-turbo"
DEFAULT_REFERENCE_MAX_AGE = 24 * 60 * 60
DEFAULT_PENDING_TTL = 60 * 60
DEFAULT_CURRENCY_SYMBOL = "€"
DEFAULT_CATEGORY = "General"
DEFAULT_PAYMENT_METHOD = "Card"
DEFAULT_INCOME_KEYWORDS = "+,received,salary,refund,transfer from"

SECRET_HEADER = "X-Telegram-Bot-Api-Secret-Token"


load_environment()

DATA_DIR = os.getenv("DATA_DIR", ".")
LOG_DIR = os.getenv("LOG_DIR")

ensure_dir(DATA_DIR)
ensure_dir(LOG_DIR)

WEBHOOK_PATH = get_env_str("WEBHOOK_PATH", DEFAULT_WEBHOOK_PATH)
CACHE_BACKEND = get_env_str("CACHE_BACKEND", "memory").lower()
