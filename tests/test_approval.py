import json
from decimal import Decimal
from unittest.mock import AsyncMock

import httpx
import pytest

from ledger_bot.domain.formatting import (
    approved_banner,
    debug_echo,
    format_transaction_message,
    refused_banner,
    transaction_action_buttons,
)
from ledger_bot.errors import SinkForwardError
from ledger_bot.models import Transaction, TransactionType
from ledger_bot.services.approval import ApprovalWorkflow, pending_key
from ledger_bot.storage.cache import MemoryCacheStore

CHAT_ID = 7
MESSAGE_ID = 42


@pytest.fixture
def cache(clock) -> MemoryCacheStore:
    return MemoryCacheStore(clock=clock)


@pytest.fixture
def sheets() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def workflow(cache, telegram, sheets) -> ApprovalWorkflow:
    return ApprovalWorkflow(
        cache=cache,
        telegram=telegram,
        sheets=sheets,
        pending_ttl=3600,
        currency="€",
        debug_echo_enabled=True,
    )


@pytest.mark.anyio
async def test_propose_stores_record_and_offers_buttons(workflow, cache, telegram, transaction) -> None:
    await workflow.propose(CHAT_ID, MESSAGE_ID, transaction)

    stored = await cache.get(pending_key(CHAT_ID, MESSAGE_ID))
    assert Transaction.from_json(stored) == transaction
    telegram.edit_message_text.assert_awaited_once_with(
        CHAT_ID,
        MESSAGE_ID,
        format_transaction_message(transaction, "€"),
        transaction_action_buttons(),
    )


@pytest.mark.anyio
async def test_pending_record_expires_silently(workflow, clock, telegram, transaction) -> None:
    await workflow.propose(CHAT_ID, MESSAGE_ID, transaction)

    clock.now += 3600

    assert await workflow.load_pending(CHAT_ID, MESSAGE_ID) is None
    telegram.send_message.assert_not_awaited()


@pytest.mark.anyio
async def test_new_proposal_overwrites_same_key(workflow, transaction) -> None:
    await workflow.propose(CHAT_ID, MESSAGE_ID, transaction)
    replacement = transaction.model_copy(update={"amount": Decimal("99")})
    await workflow.propose(CHAT_ID, MESSAGE_ID, replacement)

    assert await workflow.load_pending(CHAT_ID, MESSAGE_ID) == replacement


@pytest.mark.anyio
async def test_approve_forwards_echoes_and_cleans_up(
    workflow, cache, telegram, sheets, transaction
) -> None:
    await workflow.propose(CHAT_ID, MESSAGE_ID, transaction)
    telegram.reset_mock()

    found = await workflow.approve(CHAT_ID, MESSAGE_ID, "old text")

    expected_payload = {
        "amount": 12.5,
        "category": "Food",
        "paymentMethod": "Card",
        "type": "Expense",
        "description": "pizza with friends",
    }
    assert found is True
    sheets.forward_transaction.assert_awaited_once_with(expected_payload)
    telegram.send_message.assert_awaited_once_with(CHAT_ID, debug_echo(expected_payload))
    assert await cache.get(pending_key(CHAT_ID, MESSAGE_ID)) is None
    telegram.edit_message_text.assert_awaited_once_with(
        CHAT_ID,
        MESSAGE_ID,
        approved_banner(format_transaction_message(transaction, "€")),
    )


@pytest.mark.anyio
async def test_approve_without_record_forwards_nothing(workflow, telegram, sheets) -> None:
    found = await workflow.approve(CHAT_ID, MESSAGE_ID, "📤 *12.50€*")

    assert found is False
    sheets.forward_transaction.assert_not_awaited()
    telegram.send_message.assert_not_awaited()
    telegram.edit_message_text.assert_awaited_once_with(
        CHAT_ID,
        MESSAGE_ID,
        approved_banner("📤 *12.50€*"),
    )


@pytest.mark.anyio
async def test_second_approve_is_a_no_op(workflow, sheets, transaction) -> None:
    await workflow.propose(CHAT_ID, MESSAGE_ID, transaction)

    assert await workflow.approve(CHAT_ID, MESSAGE_ID, "text") is True
    assert await workflow.approve(CHAT_ID, MESSAGE_ID, "text") is False
    assert sheets.forward_transaction.await_count == 1


@pytest.mark.anyio
async def test_sink_failure_still_completes_approval(
    workflow, cache, telegram, sheets, transaction
) -> None:
    await workflow.propose(CHAT_ID, MESSAGE_ID, transaction)
    telegram.reset_mock()
    sheets.forward_transaction.side_effect = SinkForwardError("status 500")

    found = await workflow.approve(CHAT_ID, MESSAGE_ID, "text")

    assert found is True
    telegram.send_message.assert_not_awaited()
    assert await cache.get(pending_key(CHAT_ID, MESSAGE_ID)) is None
    telegram.edit_message_text.assert_awaited_once()


@pytest.mark.anyio
async def test_debug_echo_can_be_disabled(cache, telegram, sheets, transaction) -> None:
    workflow = ApprovalWorkflow(
        cache=cache,
        telegram=telegram,
        sheets=sheets,
        pending_ttl=3600,
        debug_echo_enabled=False,
    )
    await workflow.propose(CHAT_ID, MESSAGE_ID, transaction)

    await workflow.approve(CHAT_ID, MESSAGE_ID, "text")

    sheets.forward_transaction.assert_awaited_once()
    telegram.send_message.assert_not_awaited()


@pytest.mark.anyio
async def test_refuse_deletes_record_without_forwarding(
    workflow, cache, telegram, sheets, transaction
) -> None:
    await workflow.propose(CHAT_ID, MESSAGE_ID, transaction)
    telegram.reset_mock()

    await workflow.refuse(CHAT_ID, MESSAGE_ID, "summary")

    assert await cache.get(pending_key(CHAT_ID, MESSAGE_ID)) is None
    sheets.forward_transaction.assert_not_awaited()
    telegram.edit_message_text.assert_awaited_once_with(
        CHAT_ID,
        MESSAGE_ID,
        refused_banner("summary"),
    )


@pytest.mark.anyio
async def test_refuse_without_record_still_updates_message(workflow, telegram) -> None:
    await workflow.refuse(CHAT_ID, MESSAGE_ID, "summary")

    telegram.edit_message_text.assert_awaited_once_with(
        CHAT_ID,
        MESSAGE_ID,
        refused_banner("summary"),
    )


@pytest.mark.anyio
async def test_unreadable_record_is_treated_as_absent(workflow, cache, sheets) -> None:
    await cache.put(pending_key(CHAT_ID, MESSAGE_ID), "{not json")

    assert await workflow.approve(CHAT_ID, MESSAGE_ID, "text") is False
    sheets.forward_transaction.assert_not_awaited()


def test_stored_transaction_round_trips() -> None:
    transaction = Transaction(
        amount=Decimal("1234.56"),
        category="Salary",
        payment_method="Bank transfer",
        type=TransactionType.INCOME,
        description="October salary",
    )

    stored = transaction.to_json()
    restored = Transaction.from_json(stored)

    assert restored == transaction
    assert restored.to_json() == stored
    assert json.loads(stored) == {
        "amount": 1234.56,
        "category": "Salary",
        "paymentMethod": "Bank transfer",
        "type": "Income",
        "description": "October salary",
    }


@pytest.mark.anyio
async def test_debug_echo_failure_still_completes_approval(
    workflow, cache, telegram, sheets, transaction
) -> None:
    await workflow.propose(CHAT_ID, MESSAGE_ID, transaction)
    telegram.reset_mock()
    telegram.send_message.side_effect = httpx.ConnectError("offline")

    found = await workflow.approve(CHAT_ID, MESSAGE_ID, "text")

    assert found is True
    sheets.forward_transaction.assert_awaited_once()
    assert await cache.get(pending_key(CHAT_ID, MESSAGE_ID)) is None
    telegram.edit_message_text.assert_awaited_once_with(
        CHAT_ID,
        MESSAGE_ID,
        approved_banner(format_transaction_message(transaction, "€")),
    )

    # A repeated tap finds no record and forwards nothing more.
    assert await workflow.approve(CHAT_ID, MESSAGE_ID, "text") is False
    assert sheets.forward_transaction.await_count == 1
