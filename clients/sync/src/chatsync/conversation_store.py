"""Authoritative in-memory conversation list.

The store keeps a mapping of conversation id to :class:`Conversation`, a
display order (most recent activity first) and the single active
conversation id. The display order is always a permutation of the mapping's
keys. Mutations are synchronous and run to completion; events that reference
unknown conversations are no-ops because REST responses and real-time events
race.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Callable, Dict, Iterable, List, Optional

from .models import Conversation, Message
from .observers import Watchers

logger = logging.getLogger(__name__)


class ConversationStore:
    def __init__(self) -> None:
        self._conversations: Dict[str, Conversation] = {}
        self._order: List[str] = []
        self._active_id: Optional[str] = None
        self._watchers: Watchers[Optional[str]] = Watchers()

    # -- projections -----------------------------------------------------

    @property
    def order(self) -> tuple[str, ...]:
        return tuple(self._order)

    @property
    def active_id(self) -> Optional[str]:
        return self._active_id

    def ordered(self) -> List[Conversation]:
        return [self._conversations[conv_id] for conv_id in self._order]

    def get(self, identifier: str) -> Optional[Conversation]:
        """Look up by id, falling back to the 1:1 user tag alias."""

        identifier = str(identifier)
        conversation = self._conversations.get(identifier)
        if conversation is not None:
            return conversation
        for candidate in self._conversations.values():
            if candidate.user_tag and candidate.user_tag == identifier:
                return candidate
        return None

    def unread_ids(self) -> List[str]:
        return [conv_id for conv_id in self._order if self._conversations[conv_id].has_unread]

    def watch(self, callback: Callable[[Optional[str]], None]) -> Callable[[], None]:
        """Register ``callback(conversation_id)``; ``None`` means a bulk change."""

        return self._watchers.watch(callback)

    def __contains__(self, conversation_id: object) -> bool:
        return str(conversation_id) in self._conversations

    def __len__(self) -> int:
        return len(self._conversations)

    # -- mutations -------------------------------------------------------

    def hydrate(self, conversations: Iterable[Conversation]) -> None:
        """Replace the whole list, most recently updated first.

        ``sorted`` is stable, so equal ``updated_at`` values keep input order.
        Duplicate ids keep the first occurrence.
        """

        fresh: Dict[str, Conversation] = {}
        for conversation in conversations:
            if conversation.id in fresh:
                logger.debug("hydrate ignoring duplicate conversation %s", conversation.id)
                continue
            fresh[conversation.id] = replace(conversation)
        ordered = sorted(fresh.values(), key=lambda conv: conv.updated_at, reverse=True)
        self._conversations = fresh
        self._order = [conversation.id for conversation in ordered]
        self._watchers.notify(None)

    def upsert_on_create(self, conversation: Conversation) -> bool:
        if conversation.id in self._conversations:
            return False
        self._conversations[conversation.id] = replace(conversation)
        self._order.insert(0, conversation.id)
        self._watchers.notify(conversation.id)
        return True

    def remove(self, conversation_id: str) -> bool:
        conversation_id = str(conversation_id)
        if conversation_id not in self._conversations:
            return False
        del self._conversations[conversation_id]
        self._order = [conv_id for conv_id in self._order if conv_id != conversation_id]
        if self._active_id == conversation_id:
            self._active_id = None
        self._watchers.notify(conversation_id)
        return True

    def apply_new_message(self, message: Message, current_user_id: Optional[str]) -> bool:
        """Record an inbound or locally sent message.

        Safe to call twice for the same message: the final state is the same.
        """

        conv_id = str(message.conversation_id)
        conversation = self._conversations.get(conv_id)
        if conversation is None:
            logger.debug("new message %s for unknown conversation %s", message.id, conv_id)
            return False

        if conversation.last_message is None:
            conversation.last_message = replace(message)
        else:
            conversation.last_message = replace(
                conversation.last_message, content=message.content, created_at=message.created_at
            )

        is_own_message = current_user_id is not None and message.sender_id == str(current_user_id)
        is_active = self._active_id == conv_id
        conversation.has_unread = not is_own_message and not is_active

        self._move_to_front(conv_id)
        self._watchers.notify(conv_id)
        return True

    def apply_message_update(self, message: Message) -> bool:
        """Mirror an edit into the preview; edits are not recency activity."""

        conversation = self._conversations.get(str(message.conversation_id))
        if conversation is None or conversation.last_message is None:
            return False
        if conversation.last_message.id != message.id:
            return False
        conversation.last_message = replace(conversation.last_message, content=message.content)
        self._watchers.notify(conversation.id)
        return True

    def apply_message_delete(
        self,
        conversation_id: str,
        was_last_message: bool,
        new_last_message: Optional[Message],
        has_unread: bool,
    ) -> bool:
        conversation_id = str(conversation_id)
        conversation = self._conversations.get(conversation_id)
        if conversation is None:
            return False
        if was_last_message:
            if new_last_message is not None and new_last_message.conversation_id != conversation_id:
                logger.warning(
                    "ignoring newLastMessage %s from conversation %s for %s",
                    new_last_message.id,
                    new_last_message.conversation_id,
                    conversation_id,
                )
                new_last_message = None
            conversation.last_message = replace(new_last_message) if new_last_message is not None else None
            self._move_to_front(conversation_id)
        # Overwritten even when the preview did not change.
        conversation.has_unread = has_unread
        self._watchers.notify(conversation_id)
        return True

    def mark_read(self, conversation_id: str) -> bool:
        conversation = self._conversations.get(str(conversation_id))
        if conversation is None:
            return False
        if conversation.has_unread:
            conversation.has_unread = False
            self._watchers.notify(conversation.id)
        return True

    def set_active(self, conversation_id: Optional[str]) -> None:
        self._active_id = str(conversation_id) if conversation_id is not None else None
        if self._active_id is not None:
            conversation = self._conversations.get(self._active_id)
            if conversation is not None:
                conversation.has_unread = False
        self._watchers.notify(self._active_id)

    def reset(self) -> None:
        self._conversations = {}
        self._order = []
        self._active_id = None
        self._watchers.notify(None)

    def _move_to_front(self, conversation_id: str) -> None:
        self._order = [conversation_id] + [conv_id for conv_id in self._order if conv_id != conversation_id]
