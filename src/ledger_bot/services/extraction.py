import asyncio
import json
import re
from collections.abc import Callable
from datetime import date

from pydantic import ValidationError

from ledger_bot.core import settings
from ledger_bot.domain.formatting import format_raw_reply, format_transaction_message
from ledger_bot.domain.matching import classify_type, parse_keyword_list, snap_to_list
from ledger_bot.errors import ExtractionError, ParseError
from ledger_bot.integration.llm import LLMClient
from ledger_bot.logger import get_logger
from ledger_bot.models import ExtractionResult, Transaction

logger = get_logger(__name__)

_FENCE_PATTERN = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL | re.IGNORECASE)

PROMPT_TEMPLATE = """
You are an expert bookkeeper. Your job is to read the text of a financial transaction and convert it to strict JSON.

USER DATA:
- Text: "{text}"
- Available categories: {categories}
- Available payment methods: {payment_methods}
- Today's date: {today}

RULES (apply them in order):
1. AMOUNT: extract the number. Use a dot for decimals.
2. TYPE:
    - If the text contains {income_cues} -> "Income".
    - In ALL other cases (purchases, gifts given, expenses, payments) -> "Expense".
    - Example: "gift for mother" is "Expense". "gift received" is "Income".
3. PAYMENT METHOD:
    - If the text mentions a method from the list, use that one.
    - If the text mentions an online marketplace (Amazon, eBay, Vinted, PayPal) -> use "{default_payment_method}" (or the closest electronic payment method in the list).
    - If not specified -> the default is "{default_payment_method}".
4. CATEGORY: choose the best fit from the list. If in doubt, "{default_category}".
5. DESCRIPTION: remove the amount and the category from the original text. Keep the rest and summarise it in a few words.

REQUIRED OUTPUT:
Reply ONLY with a valid JSON object. No text before or after.
Format: {{"amount": number, "category": "string", "paymentMethod": "string", "type": "Income" or "Expense", "description": "string"}}
"""


def strip_code_fence(reply: str) -> str:
    stripped = reply.strip()
    match = _FENCE_PATTERN.match(stripped)
    if match:
        return match.group(1)
    return stripped


def parse_transaction(reply: str) -> Transaction:
    try:
        data = json.loads(strip_code_fence(reply))
    except json.JSONDecodeError as exc:
        raise ParseError(f"Model reply is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ParseError("Model reply is not a JSON object")
    try:
        return Transaction.model_validate(data)
    except ValidationError as exc:
        raise ParseError(f"Model reply is not a valid transaction: {exc}") from exc


class TransactionExtractor:
    def __init__(
        self,
        llm: LLMClient,
        *,
        currency: str | None = None,
        default_category: str | None = None,
        default_payment_method: str | None = None,
        income_keywords: list[str] | None = None,
        today: Callable[[], date] | None = None,
    ) -> None:
        self.llm = llm
        self.currency = currency or settings.get_env_str(
            "CURRENCY_SYMBOL", settings.DEFAULT_CURRENCY_SYMBOL
        )
        self.default_category = default_category or settings.get_env_str(
            "DEFAULT_CATEGORY", settings.DEFAULT_CATEGORY
        )
        self.default_payment_method = default_payment_method or settings.get_env_str(
            "DEFAULT_PAYMENT_METHOD", settings.DEFAULT_PAYMENT_METHOD
        )
        if income_keywords is None:
            income_keywords = parse_keyword_list(
                settings.get_env_str("INCOME_KEYWORDS", settings.DEFAULT_INCOME_KEYWORDS)
            )
        self.income_keywords = income_keywords
        self._today = today or date.today

    def build_prompt(self, text: str, categories: list[str], payment_methods: list[str]) -> str:
        income_cues = ", ".join(f'"{keyword}"' for keyword in self.income_keywords)
        return PROMPT_TEMPLATE.format(
            text=text,
            categories=json.dumps(categories, ensure_ascii=False),
            payment_methods=json.dumps(payment_methods, ensure_ascii=False),
            today=self._today().isoformat(),
            income_cues=income_cues or '"+"',
            default_category=self.default_category,
            default_payment_method=self.default_payment_method,
        )

    def normalize(
        self,
        transaction: Transaction,
        text: str,
        categories: list[str],
        payment_methods: list[str],
    ) -> Transaction:
        expected_type = classify_type(text, self.income_keywords)
        if expected_type is not transaction.type:
            logger.debug(
                "[EXTRACT] Model said %s, income cues say %s.",
                transaction.type.value,
                expected_type.value,
            )
        return transaction.model_copy(
            update={
                "type": expected_type,
                "category": snap_to_list(transaction.category, categories, self.default_category),
                "payment_method": snap_to_list(
                    transaction.payment_method,
                    payment_methods,
                    self.default_payment_method,
                ),
            }
        )

    async def extract(
        self,
        text: str,
        categories: list[str] | None = None,
        payment_methods: list[str] | None = None,
    ) -> ExtractionResult:
        """Ask the model for a transaction; raises ExtractionError if the call fails."""
        categories = categories or []
        payment_methods = payment_methods or []
        prompt = self.build_prompt(text, categories, payment_methods)

        reply = await asyncio.to_thread(self.llm.complete, prompt, text)
        logger.debug("[EXTRACT] Raw model reply: %s", reply[:500])
        if not reply.strip():
            raise ExtractionError("Model returned an empty reply")

        try:
            transaction = parse_transaction(reply)
        except ParseError as exc:
            logger.warning("[EXTRACT] %s", exc)
            return ExtractionResult(text=format_raw_reply(reply))

        transaction = self.normalize(transaction, text, categories, payment_methods)
        return ExtractionResult(
            text=format_transaction_message(transaction, self.currency),
            transaction=transaction,
        )
