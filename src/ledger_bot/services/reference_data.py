import json
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from ledger_bot.core import settings
from ledger_bot.errors import FetchError
from ledger_bot.integration.sheets import SheetsClient
from ledger_bot.logger import get_logger
from ledger_bot.models import ReferenceData
from ledger_bot.storage.cache import CacheStore

logger = get_logger(__name__)

CATEGORIES_KEY = "reference:categories"
PAYMENT_METHODS_KEY = "reference:paymentMethods"
UPDATED_AT_KEY = "reference:updatedAt"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _load_list(raw: str | None, key: str) -> list[str]:
    if not raw:
        return []
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("[REFERENCE] Cached %s is not valid JSON; ignoring.", key)
        return []
    if not isinstance(value, list):
        return []
    return [str(item) for item in value]


def _load_timestamp(raw: str | None) -> datetime | None:
    if not raw:
        return None
    try:
        parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        logger.warning("[REFERENCE] Cached timestamp '%s' is invalid; ignoring.", raw)
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class ReferenceDataFetcher:
    def __init__(
        self,
        cache: CacheStore,
        sheets: SheetsClient,
        max_age: float | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.cache = cache
        self.sheets = sheets
        if max_age is None:
            max_age = settings.get_env_int(
                "REFERENCE_MAX_AGE",
                settings.DEFAULT_REFERENCE_MAX_AGE,
                min_value=0,
            )
        self.max_age = timedelta(seconds=max_age)
        self._clock = clock or _utcnow

    async def cached_snapshot(self) -> ReferenceData | None:
        values = await self.cache.get_many((CATEGORIES_KEY, PAYMENT_METHODS_KEY, UPDATED_AT_KEY))
        if all(value is None for value in values.values()):
            return None
        return ReferenceData(
            categories=_load_list(values[CATEGORIES_KEY], CATEGORIES_KEY),
            payment_methods=_load_list(values[PAYMENT_METHODS_KEY], PAYMENT_METHODS_KEY),
            fetched_at=_load_timestamp(values[UPDATED_AT_KEY]),
        )

    def is_fresh(self, snapshot: ReferenceData | None) -> bool:
        if snapshot is None or snapshot.fetched_at is None:
            return False
        return self._clock() - snapshot.fetched_at < self.max_age

    async def get_reference_data(self) -> ReferenceData:
        cached = await self.cached_snapshot()
        if self.is_fresh(cached):
            return cached

        try:
            categories, payment_methods = await self.sheets.fetch_reference_data()
        except FetchError as exc:
            if cached is None:
                logger.warning("[REFERENCE] %s; no cached snapshot, using empty lists.", exc)
                return ReferenceData()
            logger.warning(
                "[REFERENCE] %s; serving cached snapshot from %s.",
                exc,
                cached.fetched_at.isoformat() if cached.fetched_at else "unknown time",
            )
            return cached

        snapshot = ReferenceData(
            categories=categories,
            payment_methods=payment_methods,
            fetched_at=self._clock(),
        )
        await self.cache.put(CATEGORIES_KEY, json.dumps(categories, ensure_ascii=False))
        await self.cache.put(PAYMENT_METHODS_KEY, json.dumps(payment_methods, ensure_ascii=False))
        await self.cache.put(UPDATED_AT_KEY, snapshot.fetched_at.isoformat())
        logger.info(
            "[REFERENCE] Refreshed %d categories and %d payment methods.",
            len(categories),
            len(payment_methods),
        )
        return snapshot
