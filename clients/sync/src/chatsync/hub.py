from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Protocol

EventCallback = Callable[[str, Any], None]


@dataclass(eq=False)
class Subscription:
    """Handle returned by ``subscribe``; pass it back to unsubscribe."""

    topic: str
    callback: EventCallback
    active: bool = field(default=True)

    def deliver(self, name: str, payload: Any) -> None:
        if self.active:
            self.callback(name, payload)


class Transport(Protocol):
    def subscribe(self, topic: str, callback: EventCallback) -> Subscription:
        ...

    def unsubscribe(self, subscription: Subscription) -> None:
        ...


class LocalHub:
    """In-process transport: registers subscriptions and fans out published events."""

    def __init__(self) -> None:
        self._subscriptions: Dict[str, List[Subscription]] = {}

    def subscribe(self, topic: str, callback: EventCallback) -> Subscription:
        subscription = Subscription(topic=topic, callback=callback)
        self._subscriptions.setdefault(topic, []).append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        subscription.active = False
        subs = self._subscriptions.get(subscription.topic)
        if not subs:
            return
        try:
            subs.remove(subscription)
        except ValueError:
            return
        if not subs:
            self._subscriptions.pop(subscription.topic, None)

    def publish(self, topic: str, name: str, payload: Any) -> int:
        """Deliver an event to every live subscription on ``topic``."""

        delivered = 0
        for subscription in list(self._subscriptions.get(topic, [])):
            subscription.deliver(name, payload)
            delivered += 1
        return delivered

    def topics(self) -> List[str]:
        return sorted(self._subscriptions)

    def subscriber_count(self, topic: str) -> int:
        return len(self._subscriptions.get(topic, []))
