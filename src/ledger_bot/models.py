from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer, field_validator

# Amounts travel as JSON numbers, not the string form pydantic uses for Decimal.
JsonDecimal = Annotated[
    Decimal,
    PlainSerializer(lambda value: float(value), return_type=float, when_used="json"),
]


class TransactionType(str, Enum):
    INCOME = "Income"
    EXPENSE = "Expense"


_TYPE_ALIASES = {
    "income": TransactionType.INCOME,
    "entrata": TransactionType.INCOME,
    "expense": TransactionType.EXPENSE,
    "uscita": TransactionType.EXPENSE,
}


class Transaction(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    amount: JsonDecimal
    category: str = ""
    payment_method: str = Field(default="", alias="paymentMethod")
    type: TransactionType = TransactionType.EXPENSE
    description: str = ""

    @field_validator("type", mode="before")
    @classmethod
    def _parse_type(cls, value: Any) -> Any:
        if isinstance(value, str):
            return _TYPE_ALIASES.get(value.strip().lower(), value)
        return value

    @field_validator("amount", mode="before")
    @classmethod
    def _parse_amount(cls, value: Any) -> Any:
        if isinstance(value, str):
            cleaned = value.strip().replace(",", ".")
            try:
                return abs(Decimal(cleaned))
            except InvalidOperation as exc:
                raise ValueError(f"invalid amount {value!r}") from exc
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return abs(Decimal(str(value)))
        return value

    @field_validator("category", "payment_method", "description", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> Any:
        if value is None:
            return ""
        if isinstance(value, str):
            return value.strip()
        return value

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_json(cls, raw: str) -> "Transaction":
        return cls.model_validate_json(raw)


class ReferenceData(BaseModel):
    categories: list[str] = Field(default_factory=list)
    payment_methods: list[str] = Field(default_factory=list)
    fetched_at: datetime | None = None


class ExtractionResult(BaseModel):
    """Outcome of one model call: a parsed transaction or the raw reply."""

    text: str
    transaction: Transaction | None = None

    @property
    def parsed(self) -> bool:
        return self.transaction is not None
