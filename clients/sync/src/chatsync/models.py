"""Domain records decoded from the chat API's camelCase JSON."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .errors import PayloadError

DEFAULT_PER_PAGE = 30


def parse_timestamp(value: Any, *, key: str = "timestamp") -> datetime:
    """Parse an ISO-8601 timestamp into an aware ``datetime``.

    A trailing ``Z`` means UTC. Naive values are interpreted as local time.
    """

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value:
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as exc:
            raise PayloadError(f"{key} is not an ISO-8601 timestamp: {value!r}") from exc
    else:
        raise PayloadError(f"{key} must be an ISO-8601 string")
    if parsed.tzinfo is None:
        # Local-time conversion fails near datetime.min and datetime.max.
        try:
            parsed = parsed.astimezone()
        except (ValueError, OverflowError) as exc:
            raise PayloadError(f"{key} is outside the supported range: {value!r}") from exc
    return parsed


def _optional_timestamp(value: Any, key: str) -> Optional[datetime]:
    if value is None or value == "":
        return None
    return parse_timestamp(value, key=key)


def _format_timestamp(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _require(payload: Dict[str, Any], key: str) -> Any:
    if key not in payload or payload[key] is None:
        raise PayloadError(f"{key} required")
    return payload[key]


def _require_id(payload: Dict[str, Any], key: str) -> str:
    value = _require(payload, key)
    if isinstance(value, bool) or not isinstance(value, (str, int)):
        raise PayloadError(f"{key} must be a string or integer id")
    text = str(value).strip()
    if not text:
        raise PayloadError(f"{key} must not be empty")
    return text


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)


def _expect_dict(payload: Any, what: str) -> Dict[str, Any]:
    if not isinstance(payload, dict):
        raise PayloadError(f"{what} payload must be an object")
    return payload


@dataclass
class Avatar:
    original: str
    medium: str
    small: str

    @classmethod
    def from_payload(cls, payload: Any) -> Optional["Avatar"]:
        if not isinstance(payload, dict):
            return None
        return cls(
            original=str(payload.get("original") or ""),
            medium=str(payload.get("medium") or ""),
            small=str(payload.get("small") or ""),
        )

    def to_payload(self) -> Dict[str, str]:
        return {"original": self.original, "medium": self.medium, "small": self.small}


@dataclass
class User:
    id: str
    name: str
    tag: str = ""
    email: str = ""
    avatar: Optional[Avatar] = None
    is_email_verified: Optional[bool] = None

    @classmethod
    def from_payload(cls, payload: Any) -> "User":
        data = _expect_dict(payload, "user")
        verified = data.get("isEmailVerified")
        return cls(
            id=_require_id(data, "id"),
            name=str(data.get("name") or ""),
            tag=str(data.get("tag") or ""),
            email=str(data.get("email") or ""),
            avatar=Avatar.from_payload(data.get("avatar")),
            is_email_verified=verified if isinstance(verified, bool) else None,
        )

    def to_payload(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "tag": self.tag,
            "email": self.email,
            "avatar": self.avatar.to_payload() if self.avatar else None,
            "isEmailVerified": self.is_email_verified,
        }


@dataclass
class Sender:
    id: str
    name: str = ""
    tag: str = ""
    avatar: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Any) -> Optional["Sender"]:
        if not isinstance(payload, dict) or payload.get("id") is None:
            return None
        return cls(
            id=str(payload["id"]),
            name=str(payload.get("name") or ""),
            tag=str(payload.get("tag") or ""),
            avatar=_optional_str(payload.get("avatar")),
        )

    def to_payload(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "tag": self.tag, "avatar": self.avatar}


@dataclass
class Attachment:
    id: str
    original: str = ""
    type: str = ""
    size: int = 0
    mime_type: str = ""
    original_name: str = ""
    thumbnail: Optional[str] = None
    url: str = ""
    thumbnail_url: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Any) -> Optional["Attachment"]:
        if not isinstance(payload, dict) or payload.get("id") is None:
            return None
        data = payload.get("data") if isinstance(payload.get("data"), dict) else {}
        urls = payload.get("urls") if isinstance(payload.get("urls"), dict) else {}
        size = data.get("size")
        return cls(
            id=str(payload["id"]),
            original=str(data.get("original") or ""),
            type=str(data.get("type") or ""),
            size=size if isinstance(size, int) and not isinstance(size, bool) else 0,
            mime_type=str(data.get("mime_type") or ""),
            original_name=str(data.get("original_name") or ""),
            thumbnail=_optional_str(data.get("thumbnail")),
            url=str(urls.get("original") or ""),
            thumbnail_url=_optional_str(urls.get("thumbnail")),
        )

    def to_payload(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "original": self.original,
            "type": self.type,
            "size": self.size,
            "mime_type": self.mime_type,
            "original_name": self.original_name,
        }
        urls: Dict[str, Any] = {"original": self.url}
        if self.thumbnail is not None:
            data["thumbnail"] = self.thumbnail
        if self.thumbnail_url is not None:
            urls["thumbnail"] = self.thumbnail_url
        return {"id": self.id, "data": data, "urls": urls}


@dataclass
class Message:
    id: str
    content: Optional[str]
    sender_id: str
    conversation_id: str
    created_at: datetime
    edited_at: Optional[datetime] = None
    sender: Optional[Sender] = None
    attachment: Optional[Attachment] = None

    @classmethod
    def from_payload(cls, payload: Any) -> "Message":
        data = _expect_dict(payload, "message")
        content = data.get("content")
        if content is not None and not isinstance(content, str):
            raise PayloadError("content must be a string or null")
        return cls(
            id=_require_id(data, "id"),
            content=content,
            sender_id=_require_id(data, "senderId"),
            conversation_id=_require_id(data, "conversationId"),
            created_at=parse_timestamp(_require(data, "createdAt"), key="createdAt"),
            edited_at=_optional_timestamp(data.get("editedAt"), "editedAt"),
            sender=Sender.from_payload(data.get("sender")),
            attachment=Attachment.from_payload(data.get("attachment")),
        )

    @property
    def preview(self) -> str:
        """One-line text for list previews."""

        text = (self.content or "").strip()
        if text:
            return text
        if self.attachment is not None and self.attachment.url:
            return "[attachment]"
        return ""

    def to_payload(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "content": self.content,
            "senderId": self.sender_id,
            "conversationId": self.conversation_id,
            "editedAt": _format_timestamp(self.edited_at),
            "createdAt": _format_timestamp(self.created_at),
            "sender": self.sender.to_payload() if self.sender else None,
            "attachment": self.attachment.to_payload() if self.attachment else None,
        }


@dataclass
class Conversation:
    id: str
    title: str
    type: str
    created_at: datetime
    updated_at: datetime
    user_tag: Optional[str] = None
    description: Optional[str] = None
    last_message: Optional[Message] = None
    has_unread: bool = False
    avatar: Optional[Avatar] = None
    participants: List[User] = field(default_factory=list)
    last_seen_at: Optional[datetime] = None

    @classmethod
    def from_payload(cls, payload: Any) -> "Conversation":
        data = _expect_dict(payload, "conversation")
        conv_id = _require_id(data, "id")
        last_message = None
        if data.get("lastMessage") is not None:
            last_message = Message.from_payload(data["lastMessage"])
            if last_message.conversation_id != conv_id:
                raise PayloadError("lastMessage belongs to a different conversation")
        participants = data.get("participants") or []
        if not isinstance(participants, list):
            raise PayloadError("participants must be a list")
        seen_participants: Dict[str, User] = {}
        for entry in participants:
            user = User.from_payload(entry)
            seen_participants.setdefault(user.id, user)
        return cls(
            id=conv_id,
            title=str(data.get("title") or ""),
            type=str(data.get("type") or "private"),
            created_at=parse_timestamp(_require(data, "createdAt"), key="createdAt"),
            updated_at=parse_timestamp(_require(data, "updatedAt"), key="updatedAt"),
            user_tag=_optional_str(data.get("userTag")),
            description=_optional_str(data.get("description")),
            last_message=last_message,
            has_unread=bool(data.get("hasUnread", False)),
            avatar=Avatar.from_payload(data.get("avatar")),
            participants=list(seen_participants.values()),
            last_seen_at=_optional_timestamp(data.get("lastSeenAt"), "lastSeenAt"),
        )

    def display_title(self, current_user_id: Optional[str] = None) -> str:
        """Name of the other participant for 1:1 chats, else the title."""

        for participant in self.participants:
            if participant.id != current_user_id and participant.name:
                return participant.name
        return self.title or "Conversation"

    def to_payload(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "userTag": self.user_tag,
            "title": self.title,
            "description": self.description,
            "lastMessage": self.last_message.to_payload() if self.last_message else None,
            "hasUnread": self.has_unread,
            "avatar": self.avatar.to_payload() if self.avatar else None,
            "type": self.type,
            "participants": [participant.to_payload() for participant in self.participants],
            "lastSeenAt": _format_timestamp(self.last_seen_at),
            "createdAt": _format_timestamp(self.created_at),
            "updatedAt": _format_timestamp(self.updated_at),
        }


@dataclass(frozen=True)
class PageMeta:
    current_page: int
    last_page: int
    per_page: int = DEFAULT_PER_PAGE
    total: int = 0

    @property
    def has_more(self) -> bool:
        return self.current_page < self.last_page

    @classmethod
    def from_payload(cls, payload: Any, *, fallback_page: int = 1) -> "PageMeta":
        data = payload if isinstance(payload, dict) else {}

        def _int(key: str, default: int) -> int:
            value = data.get(key)
            if isinstance(value, int) and not isinstance(value, bool):
                return value
            return default

        current = _int("current_page", fallback_page)
        return cls(
            current_page=current,
            last_page=_int("last_page", current),
            per_page=_int("per_page", DEFAULT_PER_PAGE),
            total=_int("total", 0),
        )


@dataclass
class MessagePage:
    messages: List[Message]
    meta: PageMeta

    @classmethod
    def from_payload(cls, payload: Any, *, fallback_page: int = 1) -> "MessagePage":
        data = _expect_dict(payload, "page")
        items = data.get("data")
        if not isinstance(items, list):
            raise PayloadError("page data must be a list")
        return cls(
            messages=[Message.from_payload(item) for item in items],
            meta=PageMeta.from_payload(data.get("meta"), fallback_page=fallback_page),
        )
