"""Command line entry point for chatsync."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Any, Callable, Dict, Iterable, List, Optional, TextIO, Union

from .api_client import AttachmentFile, ChatApiClient, DeletedMessage, SentMessage
from .config import load_config
from .engine import ChatEngine
from .errors import ChatSyncError, PayloadError
from .hub import LocalHub
from .identity import SessionProvider
from .logging_config import configure_logging
from .models import Conversation, Message, MessagePage, PageMeta, User
from .result import Result
from .subscriptions import user_topic
from .token_store import clear_token, load_token, save_token

Output = Union[TextIO, Callable[[str], Any], None]


def _emit(output: Output, line: str) -> None:
    stream = output or print
    if callable(stream):
        stream(line)
    else:
        stream.write(line + "\n")


def _fail(message: str) -> int:
    sys.stderr.write(f"error: {message}\n")
    return 1


def snapshot(conversations: Iterable[Conversation], active_id: Optional[str] = None) -> List[Dict[str, Any]]:
    """Compact view of a conversation list, one dict per row."""

    rows: List[Dict[str, Any]] = []
    for conversation in conversations:
        last = conversation.last_message
        rows.append(
            {
                "id": conversation.id,
                "title": conversation.title,
                "hasUnread": conversation.has_unread,
                "lastMessage": last.preview if last is not None else None,
                "active": conversation.id == active_id,
            }
        )
    return rows


class OfflineApi:
    """REST stand-in for ``simulate``: reads succeed empty, writes fail."""

    def __init__(self) -> None:
        self.read_receipts: List[str] = []

    async def list_conversations(self) -> Result[List[Conversation]]:
        return Result.success([])

    async def get_messages(self, conversation_id: str, page: Optional[int] = None) -> Result[MessagePage]:
        current = page or 1
        return Result.success(MessagePage(messages=[], meta=PageMeta(current_page=current, last_page=current)))

    async def mark_read(self, conversation_id: str) -> Result[bool]:
        self.read_receipts.append(conversation_id)
        return Result.success(True)

    async def send_message(
        self, conversation_id: str, content: Optional[str] = None, attachment: Optional[AttachmentFile] = None
    ) -> Result[SentMessage]:
        return Result.failure(ChatSyncError("offline"))

    async def edit_message(self, conversation_id: str, message_id: str, content: str) -> Result[Message]:
        return Result.failure(ChatSyncError("offline"))

    async def delete_message(self, conversation_id: str, message_id: str) -> Result[DeletedMessage]:
        return Result.failure(ChatSyncError("offline"))

    async def create_private_conversation(
        self, user_id: str, should_join_now: bool = False
    ) -> Result[Union[Conversation, bool]]:
        return Result.failure(ChatSyncError("offline"))

    async def delete_conversation(self, conversation_id: str) -> Result[bool]:
        return Result.failure(ChatSyncError("offline"))

    async def load_user(self) -> Result[User]:
        return Result.failure(ChatSyncError("offline"))


def _read_frames(lines: Iterable[str]) -> List[Dict[str, Any]]:
    frames: List[Dict[str, Any]] = []
    for lineno, line in enumerate(lines, start=1):
        if not line.strip():
            continue
        try:
            frame = json.loads(line)
        except json.JSONDecodeError as exc:
            raise PayloadError(f"line {lineno}: invalid JSON ({exc.msg})") from exc
        if not isinstance(frame, dict) or not isinstance(frame.get("t"), str):
            raise PayloadError(f"line {lineno}: frame must be an object with a 't' field")
        frames.append(frame)
    return frames


async def run_simulation(frames: List[Dict[str, Any]], user_id: str) -> ChatEngine:
    """Replay frames through an engine wired to an in-process hub."""

    hub = LocalHub()
    session = SessionProvider(User(id=user_id, name=user_id))
    engine = ChatEngine(OfflineApi(), hub, session)
    topic = user_topic(user_id)
    try:
        for frame in frames:
            kind = frame["t"]
            if kind == "hydrate":
                items = frame.get("conversations") or []
                if not isinstance(items, list):
                    raise PayloadError("hydrate conversations must be a list")
                engine.conversations.hydrate(Conversation.from_payload(item) for item in items)
            elif kind == "event":
                hub.publish(topic, str(frame.get("name", "")), frame.get("payload"))
            elif kind == "open":
                await engine.open_conversation(str(frame["id"]))
            elif kind == "close":
                engine.close_conversation(str(frame["id"]) if frame.get("id") is not None else None)
            elif kind == "read":
                await engine.mark_read(str(frame["id"]))
            else:
                raise PayloadError(f"unknown frame type {kind!r}")
            await engine.drain()
    finally:
        await engine.close()
    return engine


def handle_simulate(args: argparse.Namespace, output: Output) -> int:
    try:
        if args.file == "-":
            frames = _read_frames(sys.stdin)
        else:
            with open(args.file, encoding="utf-8") as handle:
                frames = _read_frames(handle)
        engine = asyncio.run(run_simulation(frames, args.user))
    except (OSError, KeyError, PayloadError) as exc:
        return _fail(str(exc))

    for row in snapshot(engine.conversations.ordered(), engine.conversations.active_id):
        _emit(output, json.dumps(row, sort_keys=True))
    return 0


async def _fetch_conversations(api_url: str, token: str, timeout_s: float) -> Result[List[Conversation]]:
    async with ChatApiClient(api_url, token, timeout_s=timeout_s) as client:
        return await client.list_conversations()


def handle_conversations(args: argparse.Namespace, output: Output) -> int:
    config = load_config(args.config)
    token = load_token(config.token_path)
    if token is None:
        return _fail("no token stored; run 'chatsync token set TOKEN' first")

    result = asyncio.run(_fetch_conversations(config.api_url, token, config.request_timeout_s))
    if not result.ok:
        return _fail(str(result.error))
    for row in snapshot(result.unwrap()):
        row.pop("active")
        _emit(output, json.dumps(row, sort_keys=True))
    return 0


def handle_token(args: argparse.Namespace, output: Output) -> int:
    config = load_config(args.config)
    if args.token_command == "set":
        try:
            save_token(args.token, config.token_path)
        except ValueError as exc:
            return _fail(str(exc))
        _emit(output, f"token saved to {config.token_path}")
        return 0
    if clear_token(config.token_path):
        _emit(output, f"token removed from {config.token_path}")
    else:
        _emit(output, "no token stored")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="chatsync", description="Chat conversation sync client")
    parser.add_argument("--log-level", default=None, help="override the configured log level")
    parser.add_argument("--json-logs", action="store_true", help="emit log records as JSON")
    subparsers = parser.add_subparsers(dest="command", required=True)

    simulate = subparsers.add_parser("simulate", help="replay JSON-lines frames offline")
    simulate.add_argument("--user", default="me", help="id of the signed-in user")
    simulate.add_argument("file", help="frames file, or - for stdin")

    conversations = subparsers.add_parser("conversations", help="list conversations from the API")
    conversations.add_argument("--config", default=None, help="settings file path")

    token = subparsers.add_parser("token", help="manage the stored API token")
    token.add_argument("--config", default=None, help="settings file path")
    token_sub = token.add_subparsers(dest="token_command", required=True)
    token_set = token_sub.add_parser("set", help="store a bearer token")
    token_set.add_argument("token")
    token_sub.add_parser("clear", help="remove the stored token")

    return parser


def main(argv: list[str] | None = None, output: Output = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        level = args.log_level or ("WARNING" if args.command == "simulate" else load_config(args.config).log_level)
        configure_logging(level, json_output=args.json_logs, stream=sys.stderr)

        if args.command == "simulate":
            return handle_simulate(args, output)
        if args.command == "conversations":
            return handle_conversations(args, output)
        if args.command == "token":
            return handle_token(args, output)
    except ValueError as exc:
        return _fail(str(exc))

    parser.error(f"unknown command {args.command}")
    return 2


if __name__ == "__main__":  # pragma: no cover - convenience execution
    raise SystemExit(main())
