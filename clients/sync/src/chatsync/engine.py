"""Application root: owns the stores and routes events and user actions.

Construct one :class:`ChatEngine` per running app and hand it to whatever
needs it. Store mutations are synchronous; only the REST calls await.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, List, Optional, Protocol, Set, Union

from .active import ActiveConversationTracker
from .api_client import AttachmentFile, DeletedMessage, SentMessage
from .conversation_store import ConversationStore
from .errors import ChatSyncError
from .events import (
    ChatEvent,
    ConversationCreated,
    ConversationDeleted,
    MessageCreated,
    MessageDeleted,
    MessageUpdated,
)
from .hub import Transport
from .identity import SessionProvider, restore_session
from .message_cache import MessagePageCache
from .models import Conversation, Message, MessagePage, User
from .result import Result
from .subscriptions import SubscriptionCoordinator

logger = logging.getLogger(__name__)


class ChatApi(Protocol):
    async def list_conversations(self) -> Result[List[Conversation]]: ...

    async def get_messages(self, conversation_id: str, page: Optional[int] = None) -> Result[MessagePage]: ...

    async def send_message(
        self, conversation_id: str, content: Optional[str] = None, attachment: Optional[AttachmentFile] = None
    ) -> Result[SentMessage]: ...

    async def edit_message(self, conversation_id: str, message_id: str, content: str) -> Result[Message]: ...

    async def delete_message(self, conversation_id: str, message_id: str) -> Result[DeletedMessage]: ...

    async def mark_read(self, conversation_id: str) -> Result[bool]: ...

    async def create_private_conversation(
        self, user_id: str, should_join_now: bool = False
    ) -> Result[Union[Conversation, bool]]: ...

    async def delete_conversation(self, conversation_id: str) -> Result[bool]: ...

    async def load_user(self) -> Result[User]: ...


class ChatEngine:
    def __init__(self, api: ChatApi, transport: Transport, session: Optional[SessionProvider] = None) -> None:
        self.api = api
        self.session = session if session is not None else SessionProvider()
        self.conversations = ConversationStore()
        self.messages = MessagePageCache(api)
        self.tracker = ActiveConversationTracker(self.conversations, api.mark_read)
        self.subscriptions = SubscriptionCoordinator(transport, self.dispatch)
        self._tasks: Set[asyncio.Task[Any]] = set()
        self._unwatch_session = self.session.watch(self._on_identity_changed)
        if self.session.current_user is not None:
            self.subscriptions.bind_user(self.session.current_user_id)

    @property
    def current_user_id(self) -> Optional[str]:
        return self.session.current_user_id

    # -- identity --------------------------------------------------------

    def _on_identity_changed(self, user: Optional[User]) -> None:
        if user is None:
            logger.info("session ended; clearing chat state")
            self.subscriptions.close()
            self.conversations.reset()
            self.messages.reset()
            return
        logger.info("session started for user %s", user.id)
        self.subscriptions.bind_conversation(None)
        self.conversations.reset()
        self.messages.reset()
        self.subscriptions.bind_user(user.id)

    async def sign_in(self) -> Result[User]:
        """Load the token owner from the API and start their session."""

        return await restore_session(self.api, self.session)

    # -- real-time events ------------------------------------------------

    def dispatch(self, event: ChatEvent) -> None:
        """Apply one canonical event to both stores. Duplicates converge."""

        if isinstance(event, MessageCreated):
            message = event.message
            self.conversations.apply_new_message(message, self.current_user_id)
            self.messages.apply_created(message)
            if self.tracker.needs_receipt(message, self.current_user_id):
                self._spawn(self.tracker.send_receipt(message.conversation_id))
        elif isinstance(event, MessageUpdated):
            self.conversations.apply_message_update(event.message)
            self.messages.apply_updated(event.message)
        elif isinstance(event, MessageDeleted):
            self.conversations.apply_message_delete(
                event.conversation_id,
                event.was_last_message,
                event.new_last_message,
                event.has_unread,
            )
            self.messages.apply_deleted(event.conversation_id, event.deleted_id)
        elif isinstance(event, ConversationCreated):
            self.conversations.upsert_on_create(event.conversation)
        elif isinstance(event, ConversationDeleted):
            self._drop_conversation(event.id)

    def _drop_conversation(self, conversation_id: str) -> None:
        self.conversations.remove(conversation_id)
        self.messages.forget(conversation_id)
        if self.subscriptions.conversation_id == conversation_id:
            self.subscriptions.bind_conversation(None)

    def _spawn(self, coro: Any) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            logger.debug("no running loop; read receipt skipped")
            return
        task = loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def drain(self) -> None:
        """Wait for read receipts scheduled by inbound events."""

        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    # -- conversations ---------------------------------------------------

    async def refresh_conversations(self) -> Result[List[Conversation]]:
        result = await self.api.list_conversations()
        if result.ok:
            self.conversations.hydrate(result.unwrap())
        return result

    async def open_conversation(self, conversation_id: str) -> Result[MessagePage]:
        conversation_id = str(conversation_id)
        self.subscriptions.bind_conversation(conversation_id)
        self.tracker.activate(conversation_id)
        receipt = self.tracker.send_receipt(conversation_id)
        page = self.messages.load_first_page(conversation_id)
        _, page_result = await asyncio.gather(receipt, page)
        return page_result

    def close_conversation(self, conversation_id: Optional[str] = None) -> None:
        if self.tracker.leave(conversation_id):
            self.subscriptions.bind_conversation(None)

    async def load_older(self, conversation_id: str) -> Result[MessagePage]:
        return await self.messages.load_next_page(conversation_id)

    async def mark_read(self, conversation_id: str) -> Result[bool]:
        return await self.tracker.send_receipt(str(conversation_id))

    async def create_private_conversation(
        self, user_id: str, should_join_now: bool = False
    ) -> Result[Union[Conversation, bool]]:
        result = await self.api.create_private_conversation(user_id, should_join_now)
        if result.ok and isinstance(result.data, Conversation):
            self.conversations.upsert_on_create(result.data)
        return result

    async def delete_conversation(self, conversation_id: str) -> Result[bool]:
        conversation_id = str(conversation_id)
        result = await self.api.delete_conversation(conversation_id)
        if result.ok:
            self._drop_conversation(conversation_id)
        return result

    # -- messages --------------------------------------------------------

    async def send_message(
        self,
        conversation_id: str,
        content: Optional[str] = None,
        attachment: Optional[AttachmentFile] = None,
    ) -> Result[SentMessage]:
        result = await self.api.send_message(str(conversation_id), content, attachment)
        if not result.ok:
            return result
        sent = result.unwrap()
        self.conversations.upsert_on_create(sent.conversation)
        self.conversations.apply_new_message(sent.message, self.current_user_id)
        self.messages.apply_created(sent.message, create=True)
        return result

    async def edit_message(self, conversation_id: str, message_id: str, content: str) -> Result[Message]:
        result = await self.api.edit_message(str(conversation_id), str(message_id), content)
        if result.ok:
            updated = result.unwrap()
            self.conversations.apply_message_update(updated)
            self.messages.apply_updated(updated)
        return result

    async def delete_message(self, conversation_id: str, message_id: str) -> Result[DeletedMessage]:
        conversation_id = str(conversation_id)
        result = await self.api.delete_message(conversation_id, str(message_id))
        if result.ok:
            deleted = result.unwrap()
            self.conversations.apply_message_delete(
                conversation_id,
                deleted.was_last_message,
                deleted.new_last_message,
                False,
            )
            self.messages.apply_deleted(conversation_id, deleted.deleted_id)
        return result

    async def submit(self, conversation_id: str) -> Result[Any]:
        """Send the compose buffer, or submit the edit in progress."""

        compose = self.messages.compose(conversation_id)
        draft = compose.begin_send()
        if draft is None:
            return Result.failure(ChatSyncError("nothing to send"))
        if draft.editing_id is not None:
            result: Result[Any] = await self.edit_message(draft.conversation_id, draft.editing_id, draft.content)
        else:
            result = await self.send_message(draft.conversation_id, draft.content)
        compose.finish_send(result.ok)
        return result

    async def close(self) -> None:
        self._unwatch_session()
        self.subscriptions.close()
        await self.drain()
