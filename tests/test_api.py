from collections.abc import Generator
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from ledger_bot.core import settings
from ledger_bot.domain.telegram import Update
from ledger_bot.main import app

SECRET = "webhook-secret"

client = TestClient(app)


class RecordingDispatcher:
    def __init__(self) -> None:
        self.updates: list[Update] = []

    async def handle(self, update: Update) -> None:
        self.updates.append(update)


def _swap_state(name: str, value: object) -> Generator[object, None, None]:
    had_value = hasattr(app.state, name)
    original = getattr(app.state, name, None)
    setattr(app.state, name, value)
    yield value
    if had_value:
        setattr(app.state, name, original)
    else:
        delattr(app.state, name)


@pytest.fixture
def dispatcher() -> Generator[RecordingDispatcher, None, None]:
    yield from _swap_state("dispatcher", RecordingDispatcher())


@pytest.fixture
def mock_telegram() -> Generator[AsyncMock, None, None]:
    mock = AsyncMock()
    mock.set_webhook.return_value = {"ok": True, "result": True}
    yield from _swap_state("telegram", mock)


@pytest.fixture(autouse=True)
def webhook_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TELEGRAM_WEBHOOK_SECRET", SECRET)
    monkeypatch.delenv("WEBHOOK_BASE_URL", raising=False)


def _post_update(payload: object, secret: str | None = SECRET, **kwargs: object):
    headers = {settings.SECRET_HEADER: secret} if secret is not None else {}
    return client.post(settings.WEBHOOK_PATH, json=payload, headers=headers, **kwargs)


UPDATE = {"update_id": 1, "message": {"message_id": 5, "chat": {"id": 7}, "text": "pizza 10"}}


def test_webhook_accepts_update_and_dispatches(dispatcher: RecordingDispatcher) -> None:
    response = _post_update(UPDATE)

    assert response.status_code == 200
    assert response.text == "Ok"
    assert len(dispatcher.updates) == 1
    assert dispatcher.updates[0].message.text == "pizza 10"


@pytest.mark.parametrize("secret", ["wrong", None])
def test_webhook_rejects_bad_secret(dispatcher: RecordingDispatcher, secret: str | None) -> None:
    response = _post_update(UPDATE, secret=secret)

    assert response.status_code == 403
    assert response.text == "Unauthorized"
    assert dispatcher.updates == []


def test_webhook_rejects_everything_without_configured_secret(
    dispatcher: RecordingDispatcher,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.delenv("TELEGRAM_WEBHOOK_SECRET")

    response = _post_update(UPDATE, secret="")

    assert response.status_code == 403
    assert dispatcher.updates == []


def test_webhook_invalid_json(dispatcher: RecordingDispatcher) -> None:
    response = client.post(
        settings.WEBHOOK_PATH,
        content=b"{not json",
        headers={settings.SECRET_HEADER: SECRET, "Content-Type": "application/json"},
    )

    assert response.status_code == 400
    assert dispatcher.updates == []


def test_webhook_acknowledges_malformed_update(dispatcher: RecordingDispatcher) -> None:
    response = _post_update({"message": {"text": "no ids"}})

    assert response.status_code == 200
    assert response.text == "Ok"
    assert dispatcher.updates == []


def test_webhook_wrong_method() -> None:
    assert client.get(settings.WEBHOOK_PATH).status_code == 405


def test_register_webhook_uses_request_host(mock_telegram: AsyncMock) -> None:
    response = client.get("/registerWebhook")

    assert response.status_code == 200
    assert response.text == "Ok"
    mock_telegram.set_webhook.assert_awaited_once_with(
        f"http://testserver{settings.WEBHOOK_PATH}",
        SECRET,
    )


def test_register_webhook_prefers_configured_base_url(
    mock_telegram: AsyncMock,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("WEBHOOK_BASE_URL", "https://bot.example.com/")

    client.get("/registerWebhook")

    url = mock_telegram.set_webhook.await_args.args[0]
    assert url == f"https://bot.example.com{settings.WEBHOOK_PATH}"


def test_register_webhook_failure_returns_api_response(mock_telegram: AsyncMock) -> None:
    mock_telegram.set_webhook.return_value = {"ok": False, "description": "bad url"}

    response = client.get("/registerWebhook")

    assert response.status_code == 200
    assert '"description": "bad url"' in response.text


def test_unregister_webhook(mock_telegram: AsyncMock) -> None:
    response = client.get("/unRegisterWebhook")

    assert response.text == "Ok"
    mock_telegram.set_webhook.assert_awaited_once_with("")
