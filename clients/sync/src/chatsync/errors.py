from __future__ import annotations


class ChatSyncError(Exception):
    """Base class for errors raised or returned by the sync engine."""


class PayloadError(ChatSyncError, ValueError):
    """A server response or real-time payload is missing required fields."""


class ApiError(ChatSyncError):
    def __init__(self, status: int, message: str, *, code: str | None = None, path: str = ""):
        self.status = status
        self.code = code
        self.message = message
        self.path = path
        super().__init__(f"HTTP {status} for {path or 'request'}: {message}")


class PageLoadRejected(ChatSyncError):
    """A page load was refused without touching the network."""

    def __init__(self, conversation_id: str, reason: str):
        self.conversation_id = conversation_id
        self.reason = reason
        super().__init__(f"page load for conversation {conversation_id} rejected: {reason}")


class ComposeStateError(ChatSyncError):
    """An invalid transition was requested on a compose session."""
