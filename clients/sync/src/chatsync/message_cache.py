"""Per-conversation paginated message history.

Page 1 holds the newest messages. Within a page and across the page list,
messages run newest first, so loading older history appends to the tail.
Message ids are unique across all loaded pages of a conversation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, tzinfo
from typing import Awaitable, Callable, Dict, List, Optional, Protocol, Set

from .compose import ComposeSession
from .display import DisplayItem, build_display_items
from .errors import PageLoadRejected
from .models import DEFAULT_PER_PAGE, Message, MessagePage, PageMeta
from .observers import Watchers
from .result import Result

logger = logging.getLogger(__name__)


class MessageFetcher(Protocol):
    def get_messages(self, conversation_id: str, page: Optional[int] = None) -> Awaitable[Result[MessagePage]]:
        ...


@dataclass
class ConversationPages:
    pages: List[MessagePage] = field(default_factory=list)
    in_flight: int = 0
    generation: int = 0

    @property
    def loading(self) -> bool:
        return self.in_flight > 0

    @property
    def meta(self) -> Optional[PageMeta]:
        if not self.pages:
            return None
        return self.pages[-1].meta

    @property
    def has_more(self) -> bool:
        meta = self.meta
        return meta is not None and meta.has_more

    def ids(self) -> Set[str]:
        return {message.id for page in self.pages for message in page.messages}

    def find(self, message_id: str) -> Optional[Message]:
        for page in self.pages:
            for message in page.messages:
                if message.id == message_id:
                    return message
        return None


class MessagePageCache:
    def __init__(self, api: MessageFetcher) -> None:
        self._api = api
        self._entries: Dict[str, ConversationPages] = {}
        self._compose: Dict[str, ComposeSession] = {}
        self._watchers: Watchers[str] = Watchers()

    # -- projections -----------------------------------------------------

    def is_loaded(self, conversation_id: str) -> bool:
        entry = self._entries.get(str(conversation_id))
        return entry is not None and bool(entry.pages)

    def is_loading(self, conversation_id: str) -> bool:
        entry = self._entries.get(str(conversation_id))
        return entry is not None and entry.loading

    def has_more(self, conversation_id: str) -> bool:
        entry = self._entries.get(str(conversation_id))
        return entry is not None and entry.has_more

    def pages(self, conversation_id: str) -> List[MessagePage]:
        entry = self._entries.get(str(conversation_id))
        return list(entry.pages) if entry is not None else []

    def messages(self, conversation_id: str) -> List[Message]:
        """All loaded messages, newest first."""

        return [message for page in self.pages(conversation_id) for message in page.messages]

    def get(self, conversation_id: str, message_id: str) -> Optional[Message]:
        entry = self._entries.get(str(conversation_id))
        if entry is None:
            return None
        return entry.find(str(message_id))

    def display_items(
        self,
        conversation_id: str,
        today: Optional[date] = None,
        tz: Optional[tzinfo] = None,
    ) -> List[DisplayItem]:
        return build_display_items(self.messages(conversation_id), today=today, tz=tz)

    def compose(self, conversation_id: str) -> ComposeSession:
        conversation_id = str(conversation_id)
        session = self._compose.get(conversation_id)
        if session is None:
            session = ComposeSession(conversation_id)
            self._compose[conversation_id] = session
        return session

    def watch(self, callback: Callable[[str], None]) -> Callable[[], None]:
        return self._watchers.watch(callback)

    # -- loading ---------------------------------------------------------

    async def load_first_page(self, conversation_id: str) -> Result[MessagePage]:
        """Fetch page 1 and replace whatever history is loaded.

        Starting a reload invalidates any next-page fetch still in flight.
        """

        conversation_id = str(conversation_id)
        entry = self._entries.setdefault(conversation_id, ConversationPages())
        entry.generation += 1
        generation = entry.generation
        entry.in_flight += 1
        try:
            result = await self._api.get_messages(conversation_id)
        finally:
            entry.in_flight -= 1
        if not result.ok:
            logger.warning("first page for conversation %s failed: %s", conversation_id, result.error)
            return result
        if entry.generation != generation:
            logger.debug("discarding superseded first page for %s", conversation_id)
            return result
        page = result.unwrap()
        # A late result may arrive after forget()/reset(); state is keyed by id.
        entry = self._entries.setdefault(conversation_id, entry)
        entry.pages = [MessagePage(messages=_unique(page.messages, set()), meta=page.meta)]
        self._watchers.notify(conversation_id)
        return result

    async def load_next_page(self, conversation_id: str) -> Result[MessagePage]:
        conversation_id = str(conversation_id)
        entry = self._entries.get(conversation_id)
        if entry is None or not entry.pages:
            return self._reject(conversation_id, "not_loaded")
        if entry.loading:
            return self._reject(conversation_id, "in_flight")
        meta = entry.meta
        if meta is None or not meta.has_more:
            return self._reject(conversation_id, "exhausted")

        next_page = meta.current_page + 1
        generation = entry.generation
        entry.in_flight += 1
        try:
            result = await self._api.get_messages(conversation_id, next_page)
        finally:
            entry.in_flight -= 1
        if not result.ok:
            logger.warning("page %d for conversation %s failed: %s", next_page, conversation_id, result.error)
            return result
        if entry.generation != generation:
            logger.debug("discarding page %d for %s: history was reloaded", next_page, conversation_id)
            return result
        page = result.unwrap()
        # Offsets shift when new messages arrive; drop anything already shown.
        fresh = _unique(page.messages, entry.ids())
        entry.pages.append(MessagePage(messages=fresh, meta=page.meta))
        self._watchers.notify(conversation_id)
        return result

    def _reject(self, conversation_id: str, reason: str) -> Result[MessagePage]:
        logger.debug("rejecting next page for %s: %s", conversation_id, reason)
        return Result.failure(PageLoadRejected(conversation_id, reason))

    # -- event merges ----------------------------------------------------

    def apply_created(self, message: Message, *, create: bool = False) -> bool:
        """Prepend a new message unless its id is already present.

        ``create`` seeds a single page for a conversation whose history has
        not been loaded; otherwise such messages are ignored.
        """

        conversation_id = str(message.conversation_id)
        entry = self._entries.get(conversation_id)
        if entry is None or not entry.pages:
            if not create:
                return False
            entry = self._entries.setdefault(conversation_id, ConversationPages())
            entry.pages = [
                MessagePage(
                    messages=[message],
                    meta=PageMeta(current_page=1, last_page=1, per_page=DEFAULT_PER_PAGE, total=1),
                )
            ]
            self._watchers.notify(conversation_id)
            return True
        if entry.find(message.id) is not None:
            return False
        entry.pages[0].messages.insert(0, message)
        self._watchers.notify(conversation_id)
        return True

    def apply_updated(self, message: Message) -> bool:
        conversation_id = str(message.conversation_id)
        entry = self._entries.get(conversation_id)
        if entry is None:
            return False
        existing = entry.find(message.id)
        if existing is None:
            return False
        existing.content = message.content
        existing.edited_at = message.edited_at
        self._watchers.notify(conversation_id)
        return True

    def apply_deleted(self, conversation_id: str, deleted_id: str) -> bool:
        conversation_id = str(conversation_id)
        deleted_id = str(deleted_id)
        session = self._compose.get(conversation_id)
        cancelled = session.force_cancel(deleted_id) if session is not None else False
        entry = self._entries.get(conversation_id)
        removed = False
        if entry is not None:
            for page in entry.pages:
                kept = [message for message in page.messages if message.id != deleted_id]
                if len(kept) != len(page.messages):
                    page.messages[:] = kept
                    removed = True
                    break
        if removed or cancelled:
            self._watchers.notify(conversation_id)
        return removed

    def forget(self, conversation_id: str) -> None:
        conversation_id = str(conversation_id)
        self._entries.pop(conversation_id, None)
        self._compose.pop(conversation_id, None)
        self._watchers.notify(conversation_id)

    def reset(self) -> None:
        for conversation_id in list(self._entries):
            self.forget(conversation_id)
        self._compose.clear()


def _unique(messages: List[Message], seen: Set[str]) -> List[Message]:
    unique: List[Message] = []
    for message in messages:
        if message.id in seen:
            continue
        seen.add(message.id)
        unique.append(message)
    return unique
