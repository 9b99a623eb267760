"""Per-conversation composition state machine.

    IDLE -> COMPOSING -> SENDING -> IDLE            (send)
    IDLE -> EDITING(message) -> SENDING -> IDLE     (edit submit)
    EDITING(message) -> IDLE                        (cancel, or message deleted elsewhere)
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Optional

from .errors import ComposeStateError
from .models import Message


class ComposeState(enum.Enum):
    IDLE = "idle"
    COMPOSING = "composing"
    SENDING = "sending"
    EDITING = "editing"


@dataclass(frozen=True)
class Draft:
    conversation_id: str
    content: str
    editing_id: Optional[str] = None

    @property
    def is_edit(self) -> bool:
        return self.editing_id is not None


class ComposeSession:
    def __init__(self, conversation_id: str) -> None:
        self.conversation_id = conversation_id
        self.state = ComposeState.IDLE
        self.text = ""
        self.editing: Optional[Message] = None
        self._resume_state = ComposeState.IDLE

    @property
    def editing_id(self) -> Optional[str]:
        return self.editing.id if self.editing is not None else None

    def set_text(self, text: str) -> None:
        if self.state is ComposeState.SENDING:
            raise ComposeStateError("cannot change text while sending")
        self.text = text
        if self.state is ComposeState.EDITING:
            return
        self.state = ComposeState.COMPOSING if text else ComposeState.IDLE

    def begin_edit(self, message: Message) -> None:
        if self.state is ComposeState.SENDING:
            raise ComposeStateError("cannot start editing while sending")
        if message.conversation_id != self.conversation_id:
            raise ComposeStateError(
                f"message {message.id} belongs to conversation {message.conversation_id}"
            )
        self.editing = message
        self.text = message.content or ""
        self.state = ComposeState.EDITING

    def cancel_edit(self) -> None:
        if self.state is not ComposeState.EDITING:
            raise ComposeStateError(f"no edit to cancel in state {self.state.value}")
        self._clear()

    def begin_send(self) -> Optional[Draft]:
        """Enter SENDING and return the draft, or None when there is nothing to send."""

        if self.state is ComposeState.SENDING:
            raise ComposeStateError("a send is already in flight")
        content = self.text.strip()
        if not content:
            return None
        self._resume_state = self.state
        self.state = ComposeState.SENDING
        return Draft(conversation_id=self.conversation_id, content=content, editing_id=self.editing_id)

    def finish_send(self, ok: bool) -> None:
        if self.state is not ComposeState.SENDING:
            raise ComposeStateError(f"no send in flight in state {self.state.value}")
        if ok:
            self._clear()
            return
        if self._resume_state is ComposeState.EDITING and self.editing is None:
            # The edited message was deleted while the edit was in flight.
            self._clear()
            return
        self.state = self._resume_state

    def force_cancel(self, message_id: str) -> bool:
        """Drop the edit session if it targets ``message_id``."""

        if self.editing is None or self.editing.id != str(message_id):
            return False
        self.editing = None
        if self.state is ComposeState.SENDING:
            return True
        self._clear()
        return True

    def _clear(self) -> None:
        self.state = ComposeState.IDLE
        self.text = ""
        self.editing = None
        self._resume_state = ComposeState.IDLE
