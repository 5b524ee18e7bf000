from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from ledger_bot.models import Transaction, TransactionType


class FakeClock:
    def __init__(self, now: float = 1_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def transaction() -> Transaction:
    return Transaction(
        amount=Decimal("12.5"),
        category="Food",
        payment_method="Card",
        type=TransactionType.EXPENSE,
        description="pizza with friends",
    )


@pytest.fixture
def telegram() -> AsyncMock:
    mock = AsyncMock()
    mock.send_message.return_value = {"ok": True, "result": {"message_id": 42}}
    mock.edit_message_text.return_value = {"ok": True, "result": {"message_id": 42}}
    mock.answer_callback_query.return_value = {"ok": True, "result": True}
    return mock


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"
