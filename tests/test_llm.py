from collections.abc import Generator
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import httpx
import pytest
from openai import APIConnectionError

from ledger_bot.errors import ExtractionError
from ledger_bot.integration.llm import LLMClient


@pytest.fixture
def mock_openai_client() -> Generator[MagicMock, None, None]:
    with patch("ledger_bot.integration.llm.OpenAI") as mock:
        yield mock


def _completion(*contents: str | None) -> SimpleNamespace:
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content)) for content in contents]
    )


def test_complete_returns_reply_text(mock_openai_client: MagicMock) -> None:
    mock_instance = mock_openai_client.return_value
    mock_instance.chat.completions.create.return_value = _completion('{"amount": 5}')

    client = LLMClient(api_key="sk-fake", model="gpt-4o-mini")
    reply = client.complete("instructions", "pizza 5")

    assert reply == '{"amount": 5}'
    assert mock_openai_client.call_args.kwargs["api_key"] == "sk-fake"
    kwargs = mock_instance.chat.completions.create.call_args.kwargs
    assert kwargs["model"] == "gpt-4o-mini"
    assert kwargs["messages"] == [
        {"role": "system", "content": "instructions"},
        {"role": "user", "content": "pizza 5"},
    ]


def test_complete_skips_empty_choices(mock_openai_client: MagicMock) -> None:
    mock_openai_client.return_value.chat.completions.create.return_value = _completion(None, "second")

    assert LLMClient(api_key="sk-fake").complete("i", "t") == "second"


def test_complete_without_choices_returns_empty(mock_openai_client: MagicMock) -> None:
    mock_openai_client.return_value.chat.completions.create.return_value = _completion()

    assert LLMClient(api_key="sk-fake").complete("i", "t") == ""


def test_sdk_error_becomes_extraction_error(mock_openai_client: MagicMock) -> None:
    request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    mock_openai_client.return_value.chat.completions.create.side_effect = APIConnectionError(
        request=request
    )

    with pytest.raises(ExtractionError):
        LLMClient(api_key="sk-fake").complete("i", "t")


def test_sdk_client_is_built_on_first_call(mock_openai_client: MagicMock) -> None:
    client = LLMClient(api_key="sk-fake")
    mock_openai_client.assert_not_called()

    mock_openai_client.return_value.chat.completions.create.return_value = _completion("a")
    client.complete("i", "t")
    client.complete("i", "t")

    mock_openai_client.assert_called_once()
