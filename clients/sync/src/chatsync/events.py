"""Translate raw real-time payloads into typed chat events."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Union

from .errors import PayloadError
from .models import Conversation, Message

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MessageCreated:
    message: Message


@dataclass(frozen=True)
class MessageUpdated:
    message: Message


@dataclass(frozen=True)
class MessageDeleted:
    conversation_id: str
    deleted_id: str
    was_last_message: bool
    new_last_message: Optional[Message]
    has_unread: bool


@dataclass(frozen=True)
class ConversationCreated:
    conversation: Conversation


@dataclass(frozen=True)
class ConversationDeleted:
    id: str


@dataclass(frozen=True)
class Ignored:
    name: str
    reason: str


ChatEvent = Union[
    MessageCreated,
    MessageUpdated,
    MessageDeleted,
    ConversationCreated,
    ConversationDeleted,
    Ignored,
]


def event_conversation_id(event: ChatEvent) -> Optional[str]:
    """Return the conversation an event is scoped to, if any."""

    if isinstance(event, (MessageCreated, MessageUpdated)):
        return event.message.conversation_id
    if isinstance(event, MessageDeleted):
        return event.conversation_id
    if isinstance(event, ConversationCreated):
        return event.conversation.id
    if isinstance(event, ConversationDeleted):
        return event.id
    return None


def canonical_name(raw_name: str) -> str:
    """Strip Echo's leading dot and any PHP namespace from an event name."""

    name = raw_name.strip().lstrip(".")
    if "\\" in name:
        name = name.rsplit("\\", 1)[-1]
    return name


def _id_field(body: Dict[str, Any], key: str) -> str:
    value = body.get(key)
    if value is None or isinstance(value, bool) or not isinstance(value, (str, int)):
        raise PayloadError(f"{key} required")
    text = str(value).strip()
    if not text:
        raise PayloadError(f"{key} required")
    return text


def _decode_message_created(body: Dict[str, Any]) -> ChatEvent:
    return MessageCreated(message=Message.from_payload(body.get("message")))


def _decode_message_updated(body: Dict[str, Any]) -> ChatEvent:
    return MessageUpdated(message=Message.from_payload(body.get("message")))


def _decode_message_deleted(body: Dict[str, Any]) -> ChatEvent:
    conversation_id = _id_field(body, "conversationId")
    new_last = body.get("newLastMessage")
    new_last_message = Message.from_payload(new_last) if new_last is not None else None
    if new_last_message is not None and new_last_message.conversation_id != conversation_id:
        raise PayloadError("newLastMessage belongs to a different conversation")
    return MessageDeleted(
        conversation_id=conversation_id,
        deleted_id=_id_field(body, "deletedId"),
        was_last_message=bool(body.get("wasLastMessage", False)),
        new_last_message=new_last_message,
        has_unread=bool(body.get("hasUnread", False)),
    )


def _decode_conversation_created(body: Dict[str, Any]) -> ChatEvent:
    return ConversationCreated(conversation=Conversation.from_payload(body.get("conversation")))


def _decode_conversation_deleted(body: Dict[str, Any]) -> ChatEvent:
    return ConversationDeleted(id=_id_field(body, "id"))


_DECODERS: Dict[str, Callable[[Dict[str, Any]], ChatEvent]] = {
    "MessageCreatedEvent": _decode_message_created,
    "MessageUpdatedEvent": _decode_message_updated,
    "MessageDeletedEvent": _decode_message_deleted,
    "ConversationCreated": _decode_conversation_created,
    "ConversationDeleted": _decode_conversation_deleted,
}

KNOWN_EVENTS = frozenset(_DECODERS)


def normalize(raw_name: str, payload: Any) -> ChatEvent:
    """Decode one transport event. Never raises.

    Unknown names and malformed payloads come back as :class:`Ignored`.
    """

    if not isinstance(raw_name, str):
        logger.warning("dropping event with non-string name %r", raw_name)
        return Ignored(name=repr(raw_name), reason="invalid name")
    name = canonical_name(raw_name)
    decoder = _DECODERS.get(name)
    if decoder is None:
        logger.info("dropping unrecognized event %s", raw_name)
        return Ignored(name=name, reason="unrecognized")

    body = payload
    if isinstance(body, (str, bytes)):
        try:
            body = json.loads(body)
        except (json.JSONDecodeError, UnicodeDecodeError):
            logger.warning("dropping %s: payload is not valid JSON", name)
            return Ignored(name=name, reason="malformed json")
    if not isinstance(body, dict):
        logger.warning("dropping %s: payload must be an object", name)
        return Ignored(name=name, reason="payload must be an object")

    try:
        return decoder(body)
    except PayloadError as exc:
        logger.warning("dropping malformed %s: %s", name, exc)
        return Ignored(name=name, reason=str(exc))
