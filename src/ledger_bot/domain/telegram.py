"""Inbound Telegram update models and their classification into handled kinds.

Only the fields the bot reads are modelled; everything else in the payload is
ignored by pydantic. ``classify_update`` turns a validated update into exactly
one of the tagged kinds below so the dispatcher never touches raw payloads.
"""
from __future__ import annotations

from dataclasses import dataclass

from pydantic import BaseModel


class Chat(BaseModel):
    id: int


class FileRef(BaseModel):
    file_id: str
    mime_type: str | None = None
    duration: int | None = None


class Message(BaseModel):
    message_id: int
    chat: Chat
    text: str | None = None
    audio: FileRef | None = None
    voice: FileRef | None = None


class CallbackQuery(BaseModel):
    id: str
    data: str | None = None
    message: Message | None = None


class Update(BaseModel):
    update_id: int
    message: Message | None = None
    callback_query: CallbackQuery | None = None


@dataclass(frozen=True)
class TextMessage:
    chat_id: int
    text: str


@dataclass(frozen=True)
class AudioMessage:
    chat_id: int
    file_id: str


@dataclass(frozen=True)
class UnsupportedMessage:
    chat_id: int


@dataclass(frozen=True)
class CallbackAction:
    callback_id: str
    chat_id: int
    message_id: int
    data: str
    message_text: str


@dataclass(frozen=True)
class IgnoredUpdate:
    update_id: int
    reason: str


UpdateKind = TextMessage | AudioMessage | UnsupportedMessage | CallbackAction | IgnoredUpdate


def classify_update(update: Update) -> UpdateKind:
    if update.message is not None:
        message = update.message
        chat_id = message.chat.id
        if message.text is not None:
            return TextMessage(chat_id=chat_id, text=message.text)
        attachment = message.audio or message.voice
        if attachment is not None:
            return AudioMessage(chat_id=chat_id, file_id=attachment.file_id)
        return UnsupportedMessage(chat_id=chat_id)

    if update.callback_query is not None:
        query = update.callback_query
        if query.message is None:
            return IgnoredUpdate(update_id=update.update_id, reason="callback without message")
        return CallbackAction(
            callback_id=query.id,
            chat_id=query.message.chat.id,
            message_id=query.message.message_id,
            data=query.data or "",
            message_text=query.message.text or "",
        )

    return IgnoredUpdate(update_id=update.update_id, reason="unsupported update kind")
