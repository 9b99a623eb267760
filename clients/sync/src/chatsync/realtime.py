"""Pusher-protocol WebSocket transport (Laravel Reverb) over aiohttp.

``subscribe``/``unsubscribe`` are synchronous: they update the local
subscription table and queue wire commands. ``run`` owns the socket; it
drains the queue, answers pings, dispatches channel events to callbacks and
reconnects with capped backoff, re-joining every live topic.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections import deque
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional, Tuple

import aiohttp

from .config import ChatConfig
from .hub import EventCallback, Subscription
from .result import Result

logger = logging.getLogger(__name__)

Authorizer = Callable[[str, str], Awaitable[Result[Dict[str, Any]]]]

PRIVATE_PREFIX = "private-"


def _decode_data(data: Any) -> Any:
    if isinstance(data, str):
        try:
            return json.loads(data)
        except json.JSONDecodeError:
            return data
    return data


class PusherTransport:
    def __init__(
        self,
        ws_url: str,
        *,
        authorizer: Optional[Authorizer] = None,
        session: Optional[aiohttp.ClientSession] = None,
        heartbeat_s: float = 20.0,
        receive_timeout_s: float = 1.0,
        max_backoff_s: float = 5.0,
    ) -> None:
        self.ws_url = ws_url
        self._authorizer = authorizer
        self._session = session
        self._owns_session = session is None
        self._heartbeat_s = heartbeat_s
        self._receive_timeout_s = receive_timeout_s
        self._max_backoff_s = max_backoff_s
        self._subscriptions: Dict[str, List[Subscription]] = {}
        self._commands: Deque[Tuple[str, str]] = deque()
        self._joined: set[str] = set()
        self._socket_id: Optional[str] = None
        self._stop = asyncio.Event()
        self.connected = asyncio.Event()

    @classmethod
    def from_config(cls, config: ChatConfig, authorizer: Optional[Authorizer] = None) -> "PusherTransport":
        return cls(config.resolved_ws_url, authorizer=authorizer, heartbeat_s=config.heartbeat_s)

    @property
    def socket_id(self) -> Optional[str]:
        return self._socket_id

    def topics(self) -> List[str]:
        return sorted(self._subscriptions)

    # -- transport interface ---------------------------------------------

    def subscribe(self, topic: str, callback: EventCallback) -> Subscription:
        subscription = Subscription(topic=topic, callback=callback)
        subs = self._subscriptions.setdefault(topic, [])
        subs.append(subscription)
        if len(subs) == 1:
            self._commands.append(("subscribe", topic))
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
            self._commands.append(("unsubscribe", subscription.topic))

    # -- connection loop -------------------------------------------------

    def stop(self) -> None:
        self._stop.set()

    async def run(self) -> None:
        backoff_s = 0.5
        try:
            while not self._stop.is_set():
                try:
                    async with self._client().ws_connect(self.ws_url, heartbeat=self._heartbeat_s) as ws:
                        logger.info("connected to %s", self.ws_url)
                        await self._serve(ws)
                        backoff_s = 0.5
                except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as exc:
                    logger.warning("realtime connection to %s failed: %r", self.ws_url, exc)
                finally:
                    self._socket_id = None
                    self._joined.clear()
                    self.connected.clear()
                if self._stop.is_set():
                    break
                try:
                    await asyncio.wait_for(self._stop.wait(), timeout=backoff_s)
                except asyncio.TimeoutError:
                    pass
                backoff_s = min(backoff_s * 2, self._max_backoff_s)
        finally:
            if self._owns_session and self._session is not None:
                await self._session.close()
                self._session = None

    def _client(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def _serve(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        while not self._stop.is_set():
            if self._socket_id is not None:
                await self._flush_commands(ws)
            try:
                msg = await ws.receive(timeout=self._receive_timeout_s)
            except asyncio.TimeoutError:
                continue
            if msg.type == aiohttp.WSMsgType.TEXT:
                try:
                    frame = json.loads(msg.data)
                except json.JSONDecodeError:
                    logger.warning("dropping non-JSON frame")
                    continue
                if isinstance(frame, dict):
                    await self._handle_frame(ws, frame)
            elif msg.type in (aiohttp.WSMsgType.CLOSE, aiohttp.WSMsgType.CLOSED, aiohttp.WSMsgType.ERROR):
                logger.info("realtime socket closed (%s)", msg.type)
                return
        await ws.close()

    async def _handle_frame(self, ws: aiohttp.ClientWebSocketResponse, frame: Dict[str, Any]) -> None:
        event = frame.get("event")
        if not isinstance(event, str):
            return
        if event == "pusher:connection_established":
            data = _decode_data(frame.get("data"))
            socket_id = data.get("socket_id") if isinstance(data, dict) else None
            if not isinstance(socket_id, str):
                logger.warning("connection_established without socket_id")
                return
            self._socket_id = socket_id
            # Re-join everything after (re)connect; stale commands are superseded.
            self._commands.clear()
            for topic in self.topics():
                self._commands.append(("subscribe", topic))
            self.connected.set()
            await self._flush_commands(ws)
            return
        if event == "pusher:ping":
            await ws.send_json({"event": "pusher:pong", "data": {}})
            return
        if event == "pusher:error":
            logger.warning("realtime server error: %s", frame.get("data"))
            return
        if event.startswith("pusher_internal:") or event.startswith("pusher:"):
            logger.debug("control frame %s on %s", event, frame.get("channel"))
            return
        channel = frame.get("channel")
        if not isinstance(channel, str):
            return
        payload = _decode_data(frame.get("data"))
        for subscription in list(self._subscriptions.get(channel, [])):
            subscription.deliver(event, payload)

    async def _flush_commands(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        while self._commands:
            action, topic = self._commands.popleft()
            if action == "subscribe":
                if topic in self._joined or topic not in self._subscriptions:
                    continue
                data: Dict[str, Any] = {"channel": topic}
                if topic.startswith(PRIVATE_PREFIX):
                    auth = await self._authorize(topic)
                    if auth is None:
                        continue
                    data.update(auth)
                await ws.send_json({"event": "pusher:subscribe", "data": data})
                self._joined.add(topic)
                logger.debug("joined %s", topic)
            elif action == "unsubscribe":
                if topic not in self._joined or topic in self._subscriptions:
                    continue
                await ws.send_json({"event": "pusher:unsubscribe", "data": {"channel": topic}})
                self._joined.discard(topic)
                logger.debug("left %s", topic)

    async def _authorize(self, topic: str) -> Optional[Dict[str, Any]]:
        if self._authorizer is None or self._socket_id is None:
            logger.warning("no authorizer for private channel %s", topic)
            return None
        result = await self._authorizer(self._socket_id, topic)
        if not result.ok or not isinstance(result.data, dict):
            logger.warning("authorization for %s failed: %s", topic, result.error)
            return None
        auth: Dict[str, Any] = {"auth": result.data["auth"]}
        if "channel_data" in result.data:
            auth["channel_data"] = result.data["channel_data"]
        return auth
