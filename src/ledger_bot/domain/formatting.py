import json
from decimal import Decimal
from typing import Any

from ledger_bot.models import Transaction, TransactionType

APPROVE_ACTION = "approve_transaction"
REFUSE_ACTION = "refuse_transaction"

PROCESSING_TEXT = "Processing..."
PROCESSING_FAILED_TEXT = "Error: Could not send processing message"
UNSUPPORTED_TEXT = "Message not supported"


def format_amount(amount: Decimal) -> str:
    return f"{amount:.2f}"


def format_transaction_message(transaction: Transaction, currency: str = "€") -> str:
    icon = "📥" if transaction.type is TransactionType.INCOME else "📤"
    return (
        f"{icon} *{format_amount(transaction.amount)}{currency}*\n"
        f"🏷️ {transaction.category}\n"
        f"💳 {transaction.payment_method}\n"
        f"💭 {transaction.description}"
    )


def format_raw_reply(reply: Any) -> str:
    if isinstance(reply, str):
        return reply.strip()
    return json.dumps(reply, indent=4, ensure_ascii=False)


def approved_banner(summary: str) -> str:
    return f"✅ *Transaction Approved*\n\n{summary}"


def refused_banner(summary: str) -> str:
    return f"❌ *Transaction Refused*\n\n{summary}"


def debug_echo(payload: dict[str, Any]) -> str:
    body = json.dumps(payload, indent=2, ensure_ascii=False)
    return f"*Debug: Transaction sent to server*\n```\n{body}\n```"


def transaction_action_buttons() -> dict[str, Any]:
    return {
        "inline_keyboard": [
            [
                {"text": "✅ Approve", "callback_data": APPROVE_ACTION},
                {"text": "❌ Refuse", "callback_data": REFUSE_ACTION},
            ]
        ]
    }


def failure_notice(prefix: str, exc: BaseException) -> str:
    return f"{prefix}: {exc}"
