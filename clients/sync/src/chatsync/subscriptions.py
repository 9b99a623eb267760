"""Keeps at most one live subscription per topic kind.

The user topic follows the signed-in user; the conversation topic follows
the conversation open on screen. Rebinding always tears the previous
subscription down before the new one is created.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from .events import ChatEvent, Ignored, event_conversation_id, normalize
from .hub import Subscription, Transport

logger = logging.getLogger(__name__)

USER_TOPIC_PREFIX = "private-user."
CONVERSATION_TOPIC_PREFIX = "private-conversation."


def user_topic(user_id: str) -> str:
    return f"{USER_TOPIC_PREFIX}{user_id}"


def conversation_topic(conversation_id: str) -> str:
    return f"{CONVERSATION_TOPIC_PREFIX}{conversation_id}"


class _Binding:
    def __init__(self, transport: Transport, topic_for: Callable[[str], str]) -> None:
        self._transport = transport
        self._topic_for = topic_for
        self.bound_id: Optional[str] = None
        self.subscription: Optional[Subscription] = None

    @property
    def topic(self) -> Optional[str]:
        return self.subscription.topic if self.subscription is not None else None

    def rebind(self, new_id: Optional[str], callback: Callable[[str, Any], None]) -> bool:
        if new_id == self.bound_id and (new_id is None or self.subscription is not None):
            return False
        self.teardown()
        if new_id is None:
            return True
        self.bound_id = new_id
        self.subscription = self._transport.subscribe(self._topic_for(new_id), callback)
        logger.debug("subscribed to %s", self.subscription.topic)
        return True

    def teardown(self) -> None:
        subscription = self.subscription
        self.subscription = None
        self.bound_id = None
        if subscription is not None:
            self._transport.unsubscribe(subscription)
            logger.debug("unsubscribed from %s", subscription.topic)


class SubscriptionCoordinator:
    def __init__(self, transport: Transport, on_event: Callable[[ChatEvent], None]) -> None:
        self._on_event = on_event
        self._user = _Binding(transport, user_topic)
        self._conversation = _Binding(transport, conversation_topic)

    @property
    def user_id(self) -> Optional[str]:
        return self._user.bound_id

    @property
    def conversation_id(self) -> Optional[str]:
        return self._conversation.bound_id

    @property
    def user_topic(self) -> Optional[str]:
        return self._user.topic

    @property
    def conversation_topic(self) -> Optional[str]:
        return self._conversation.topic

    def bind_user(self, user_id: Optional[str]) -> bool:
        """Follow ``user_id``; ``None`` (logout) drops the user subscription."""

        user_id = str(user_id) if user_id is not None else None
        return self._user.rebind(user_id, self._handle_user_event)

    def bind_conversation(self, conversation_id: Optional[str]) -> bool:
        conversation_id = str(conversation_id) if conversation_id is not None else None
        return self._conversation.rebind(conversation_id, self._handle_conversation_event)

    def close(self) -> None:
        self._conversation.teardown()
        self._user.teardown()

    def _handle_user_event(self, name: str, payload: Any) -> None:
        event = normalize(name, payload)
        if isinstance(event, Ignored):
            return
        self._on_event(event)

    def _handle_conversation_event(self, name: str, payload: Any) -> None:
        event = normalize(name, payload)
        if isinstance(event, Ignored):
            return
        bound = self._conversation.bound_id
        scoped = event_conversation_id(event)
        if bound is None or scoped != bound:
            logger.debug("dropping %s for conversation %s on topic for %s", type(event).__name__, scoped, bound)
            return
        self._on_event(event)
