"""aiohttp client for the chat REST API.

Every public coroutine returns a :class:`Result`; transport errors, HTTP
errors and undecodable bodies become failures instead of exceptions. No
retries happen here.
"""

from __future__ import annotations

import asyncio
import json
import logging
import mimetypes
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

import aiohttp

from .errors import ApiError, PayloadError
from .models import Conversation, Message, MessagePage, User
from .result import Result

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_S = 15.0


@dataclass(frozen=True)
class AttachmentFile:
    name: str
    data: bytes
    content_type: str = "application/octet-stream"

    @classmethod
    def from_path(cls, path: Union[Path, str], content_type: Optional[str] = None) -> "AttachmentFile":
        source = Path(path).expanduser()
        guessed = content_type or mimetypes.guess_type(source.name)[0] or "application/octet-stream"
        return cls(name=source.name, data=source.read_bytes(), content_type=guessed)


@dataclass(frozen=True)
class SentMessage:
    message: Message
    conversation: Conversation


@dataclass(frozen=True)
class DeletedMessage:
    deleted_id: str
    was_last_message: bool
    new_last_message: Optional[Message]


def _build_url(base_url: str, path: str) -> str:
    return f"{base_url.rstrip('/')}{path}"


def _data_field(body: Any) -> Any:
    if not isinstance(body, dict) or "data" not in body:
        raise PayloadError("response missing data")
    return body["data"]


def _parse_error(status: int, raw: str, path: str) -> ApiError:
    message = raw.strip() or f"HTTP {status}"
    code: Optional[str] = None
    try:
        payload = json.loads(raw) if raw else {}
    except json.JSONDecodeError:
        payload = {}
    if isinstance(payload, dict):
        if isinstance(payload.get("message"), str) and payload["message"]:
            message = payload["message"]
        if isinstance(payload.get("code"), str):
            code = payload["code"]
    return ApiError(status, message, code=code, path=path)


def _decode_conversations(body: Any) -> List[Conversation]:
    items = _data_field(body)
    if not isinstance(items, list):
        raise PayloadError("conversation list must be a list")
    return [Conversation.from_payload(item) for item in items]


def _decode_users(body: Any) -> List[User]:
    items = _data_field(body)
    if not isinstance(items, list):
        raise PayloadError("user list must be a list")
    return [User.from_payload(item) for item in items]


def _decode_sent(body: Any) -> SentMessage:
    data = _data_field(body)
    if not isinstance(data, dict):
        raise PayloadError("send response must be an object")
    message = Message.from_payload(data.get("message"))
    conversation = Conversation.from_payload(data.get("conversation"))
    if message.conversation_id != conversation.id:
        raise PayloadError("sent message and conversation ids disagree")
    return SentMessage(message=message, conversation=conversation)


def _decode_deleted(body: Any) -> DeletedMessage:
    data = body.get("data") if isinstance(body, dict) and isinstance(body.get("data"), dict) else body
    if not isinstance(data, dict) or data.get("deletedId") is None:
        raise PayloadError("deletedId required")
    new_last = data.get("newLastMessage")
    return DeletedMessage(
        deleted_id=str(data["deletedId"]),
        was_last_message=bool(data.get("wasLastMessage", False)),
        new_last_message=Message.from_payload(new_last) if new_last is not None else None,
    )


def _decode_private_conversation(body: Any) -> Union[Conversation, bool]:
    payload = body.get("data") if isinstance(body, dict) and body.get("data") is not None else body
    if not isinstance(payload, dict):
        return True
    candidate = payload.get("conversation")
    if candidate is None and payload.get("id") is not None:
        candidate = payload
    if isinstance(candidate, dict) and candidate.get("id") is not None:
        return Conversation.from_payload(candidate)
    return True


class ChatApiClient:
    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        *,
        session: Optional[aiohttp.ClientSession] = None,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        socket_id: Optional[Callable[[], Optional[str]]] = None,
    ) -> None:
        self.base_url = base_url
        self.token = token
        self._session = session
        self._owns_session = session is None
        self._timeout = aiohttp.ClientTimeout(total=timeout_s)
        self._socket_id = socket_id

    async def __aenter__(self) -> "ChatApiClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        if self._owns_session:
            self._session = None

    def set_socket_id_provider(self, provider: Optional[Callable[[], Optional[str]]]) -> None:
        self._socket_id = provider

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        socket_id = self._socket_id() if self._socket_id is not None else None
        if socket_id:
            headers["X-Socket-ID"] = socket_id
        return headers

    def _client(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True
        return self._session

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        url = _build_url(self.base_url, path)
        async with self._client().request(
            method, url, headers=self._headers(), timeout=self._timeout, **kwargs
        ) as response:
            raw = await response.text()
            if response.status >= 400:
                raise _parse_error(response.status, raw, path)
        if not raw.strip():
            return {}
        try:
            return json.loads(raw)
        except json.JSONDecodeError as exc:
            raise PayloadError(f"{method} {path} returned invalid JSON") from exc

    async def _call(self, method: str, path: str, decode: Callable[[Any], Any], **kwargs: Any) -> Result[Any]:
        try:
            body = await self._request(method, path, **kwargs)
            return Result.success(decode(body))
        except ApiError as exc:
            logger.warning("%s %s failed with status %d: %s", method, path, exc.status, exc.message)
            return Result.failure(exc)
        except PayloadError as exc:
            logger.warning("%s %s returned an unexpected payload: %s", method, path, exc)
            return Result.failure(exc)
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.warning("%s %s failed: %r", method, path, exc)
            return Result.failure(exc)

    # -- users -----------------------------------------------------------

    async def load_user(self) -> Result[User]:
        """Fetch the user the bearer token belongs to."""

        return await self._call("GET", "/user", lambda body: User.from_payload(_data_field(body)))

    async def search_users(self, query: str) -> Result[List[User]]:
        query = query.strip()
        if not query:
            return Result.success([])
        return await self._call("GET", "/users/search", _decode_users, params={"query": query})

    # -- conversations ---------------------------------------------------

    async def list_conversations(self) -> Result[List[Conversation]]:
        return await self._call("GET", "/conversations", _decode_conversations)

    async def get_conversation(self, conversation_id: str) -> Result[Conversation]:
        return await self._call(
            "GET",
            f"/conversations/private/{conversation_id}",
            lambda body: Conversation.from_payload(_data_field(body)),
        )

    async def create_private_conversation(
        self, user_id: str, should_join_now: bool = False
    ) -> Result[Union[Conversation, bool]]:
        payload = {"user_id": user_id, "should_join_now": should_join_now}
        return await self._call("POST", "/conversations/private", _decode_private_conversation, json=payload)

    async def delete_conversation(self, conversation_id: str) -> Result[bool]:
        return await self._call("DELETE", f"/conversations/{conversation_id}", lambda _: True)

    async def mark_read(self, conversation_id: str) -> Result[bool]:
        return await self._call("POST", f"/conversations/{conversation_id}/mark-as-read", lambda _: True)

    # -- messages --------------------------------------------------------

    async def get_messages(self, conversation_id: str, page: Optional[int] = None) -> Result[MessagePage]:
        params = {"page": str(page)} if page is not None else None
        return await self._call(
            "GET",
            f"/conversations/{conversation_id}/messages",
            lambda body: MessagePage.from_payload(body, fallback_page=page or 1),
            params=params,
        )

    async def send_message(
        self,
        conversation_id: str,
        content: Optional[str] = None,
        attachment: Optional[AttachmentFile] = None,
    ) -> Result[SentMessage]:
        if not content and attachment is None:
            return Result.failure(ValueError("content or attachment required"))
        form = aiohttp.FormData()
        if content:
            form.add_field("content", content)
        if attachment is not None:
            form.add_field(
                "attachment",
                attachment.data,
                filename=attachment.name or "attachment",
                content_type=attachment.content_type,
            )
        return await self._call("POST", f"/conversations/{conversation_id}/messages", _decode_sent, data=form)

    async def edit_message(self, conversation_id: str, message_id: str, content: str) -> Result[Message]:
        return await self._call(
            "PATCH",
            f"/conversations/{conversation_id}/messages/{message_id}",
            lambda body: Message.from_payload(_data_field(body)),
            json={"content": content},
        )

    async def delete_message(self, conversation_id: str, message_id: str) -> Result[DeletedMessage]:
        return await self._call(
            "DELETE",
            f"/conversations/{conversation_id}/messages/{message_id}",
            _decode_deleted,
        )

    # -- realtime --------------------------------------------------------

    async def authorize_channel(self, socket_id: str, channel_name: str) -> Result[Dict[str, Any]]:
        def _decode(body: Any) -> Dict[str, Any]:
            if not isinstance(body, dict) or not isinstance(body.get("auth"), str):
                raise PayloadError("channel authorization missing auth")
            return body

        return await self._call(
            "POST",
            "/broadcasting/auth",
            _decode,
            json={"socket_id": socket_id, "channel_name": channel_name},
        )
