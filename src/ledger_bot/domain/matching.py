import re

from rapidfuzz import fuzz, process, utils

from ledger_bot.models import TransactionType

DEFAULT_SNAP_THRESHOLD = 80.0


def parse_keyword_list(raw: str | None) -> list[str]:
    if not raw:
        return []
    keywords: list[str] = []
    seen = set()
    for part in raw.split(","):
        keyword = part.strip().lower()
        if keyword and keyword not in seen:
            keywords.append(keyword)
            seen.add(keyword)
    return keywords


def _keyword_pattern(keyword: str) -> re.Pattern[str]:
    escaped = re.escape(keyword)
    if keyword[:1].isalnum():
        escaped = rf"\b{escaped}"
    if keyword[-1:].isalnum():
        escaped = rf"{escaped}\b"
    return re.compile(escaped, re.IGNORECASE)


def has_income_cue(text: str, keywords: list[str]) -> bool:
    return any(_keyword_pattern(keyword).search(text) for keyword in keywords)


def classify_type(text: str, keywords: list[str]) -> TransactionType:
    if has_income_cue(text, keywords):
        return TransactionType.INCOME
    return TransactionType.EXPENSE


def snap_to_list(
    value: str,
    choices: list[str],
    default: str,
    threshold: float = DEFAULT_SNAP_THRESHOLD,
) -> str:
    """Return ``value`` if listed, else its closest listed entry, else ``default``.

    An empty ``choices`` list means the reference data is unavailable; the
    model's value is kept as long as it is not blank.
    """
    if not choices:
        return value or default
    if value in choices:
        return value
    if not value:
        return default

    lowered = {choice.lower(): choice for choice in choices}
    if value.lower() in lowered:
        return lowered[value.lower()]

    result = process.extractOne(
        value,
        choices,
        scorer=fuzz.WRatio,
        processor=utils.default_process,
    )
    if result:
        match, score, _ = result
        if score >= threshold:
            return match
    return default
