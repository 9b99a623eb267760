from __future__ import annotations

import logging
from typing import Awaitable, Callable, Optional

from .conversation_store import ConversationStore
from .models import Message
from .result import Result

logger = logging.getLogger(__name__)

ReadReceiptSender = Callable[[str], Awaitable[Result[bool]]]


class ActiveConversationTracker:
    """Tracks the one conversation currently open on screen.

    Opening a conversation clears its unread flag locally before any network
    call completes; the read receipt is sent afterwards.
    """

    def __init__(self, store: ConversationStore, send_read_receipt: ReadReceiptSender) -> None:
        self._store = store
        self._send_read_receipt = send_read_receipt

    @property
    def active_id(self) -> Optional[str]:
        return self._store.active_id

    def is_active(self, conversation_id: str) -> bool:
        return self._store.active_id is not None and self._store.active_id == str(conversation_id)

    def activate(self, conversation_id: str) -> None:
        self._store.set_active(str(conversation_id))

    async def enter(self, conversation_id: str) -> Result[bool]:
        conversation_id = str(conversation_id)
        self.activate(conversation_id)
        return await self.send_receipt(conversation_id)

    def leave(self, conversation_id: Optional[str] = None) -> bool:
        """Clear the active conversation.

        With ``conversation_id`` the call only clears if it is still the
        active one, so a late leave from a previous screen is harmless.
        """

        if conversation_id is not None and not self.is_active(conversation_id):
            return False
        self._store.set_active(None)
        return True

    def needs_receipt(self, message: Message, current_user_id: Optional[str]) -> bool:
        if not self.is_active(message.conversation_id):
            return False
        return current_user_id is None or message.sender_id != str(current_user_id)

    async def send_receipt(self, conversation_id: str) -> Result[bool]:
        result = await self._send_read_receipt(conversation_id)
        if result.ok:
            self._store.mark_read(conversation_id)
        else:
            logger.warning("read receipt for conversation %s failed: %s", conversation_id, result.error)
        return result
