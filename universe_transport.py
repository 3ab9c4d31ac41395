"""
universe_transport.py

Push-channel client that keeps the SnapshotStore in sync with the server.

Lifecycle
---------
    DISCONNECTED --connect()--> CONNECTING --open--> CONNECTED
    CONNECTED --close--> DISCONNECTED (+ reconnect in 3 s unless code 1000)
    CONNECTING/CONNECTED --error--> ERROR (never reconnects by itself)

While connected a text "ping" goes out every 30 s; the server answers "pong".
Reconnection is driven by the close event only, with a fixed delay and no
backoff, so a long outage means a retry every 3 s for as long as it lasts.

Dependencies
-----------
    pip install websockets
"""

import asyncio
import json
import logging
from enum import Enum
from typing import Callable, List, Optional

import websockets

from snapshot_store import SnapshotStore
from universe_model import SnapshotError, parse_snapshot

logger = logging.getLogger(__name__)

HEARTBEAT_INTERVAL = 30.0
RECONNECT_DELAY = 3.0
CLOSE_WAIT = 2.0
NORMAL_CLOSURE = 1000
ABNORMAL_CLOSURE = 1006
HEARTBEAT_TOKEN = "ping"
HEARTBEAT_ACK = "pong"
UNIVERSE_UPDATE = "universe_update"


class ConnectionState(Enum):
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    ERROR = "error"


async def open_channel(url: str):
    """Open a websocket; the text heartbeat replaces protocol-level pings."""
    return await websockets.connect(url, ping_interval=None)


class _Session:
    """The channel handle and both timers; only TransportManager touches it."""

    def __init__(self):
        self.channel = None
        self.reader: Optional[asyncio.Task] = None
        self.heartbeat = None
        self.reconnect = None

    def cancel_heartbeat(self):
        if self.heartbeat is not None:
            self.heartbeat.cancel()
            self.heartbeat = None

    def cancel_reconnect(self):
        if self.reconnect is not None:
            self.reconnect.cancel()
            self.reconnect = None

    def reading(self) -> bool:
        return self.reader is not None and not self.reader.done()

    def release(self):
        """Cancel both timers and hand back the channel (if any) for closing."""
        self.cancel_heartbeat()
        self.cancel_reconnect()
        channel, self.channel = self.channel, None
        return channel


class TransportManager:
    """Owns one push channel at a time and feeds decoded snapshots to the store."""

    def __init__(
        self,
        store: SnapshotStore,
        url: Optional[str] = None,
        opener=open_channel,
        scheduler=None,
        heartbeat_interval: float = HEARTBEAT_INTERVAL,
        reconnect_delay: float = RECONNECT_DELAY,
    ):
        self.store = store
        self.url = url
        self.heartbeat_interval = heartbeat_interval
        self.reconnect_delay = reconnect_delay
        self.state = ConnectionState.DISCONNECTED
        self.last_error: Optional[str] = None
        self.reconnect_attempts = 0

        self._opener = opener
        self._scheduler = scheduler
        self._session = _Session()
        self._closed = False
        self._listeners: List[Callable[[ConnectionState, Optional[str]], None]] = []
        self._sends = set()

    # --- public API ---

    def on_state_change(self, listener: Callable[[ConnectionState, Optional[str]], None]):
        self._listeners.append(listener)

    def connect(self, url: Optional[str] = None):
        """Start connecting; needs a running event loop."""
        if url is not None:
            self.url = url
        if not self.url:
            raise ValueError("No channel URL configured.")
        if self._session.channel is not None or self._session.reading():
            logger.debug("Channel already active; connect() ignored")
            return
        self._closed = False
        self._session.cancel_reconnect()
        self._set_state(ConnectionState.CONNECTING)
        logger.info("Connecting to %s", self.url)
        loop = asyncio.get_running_loop()
        self._session.reader = loop.create_task(self._run(self.url))

    def send_raw(self, text: str) -> bool:
        """Queue `text` on the live channel. False when there is none."""
        channel = self._session.channel
        if channel is None:
            return False
        task = asyncio.get_running_loop().create_task(self._send(channel, text))
        self._sends.add(task)
        task.add_done_callback(self._sends.discard)
        return True

    async def close(self, reason: str = "Session closed"):
        """Tear the session down: timers off, channel closed with 1000, no reconnect."""
        if self._closed:
            return
        self._closed = True
        channel = self._session.release()
        reader, self._session.reader = self._session.reader, None
        if channel is not None:
            try:
                await channel.close(NORMAL_CLOSURE, reason)
            except (OSError, websockets.WebSocketException) as exc:
                logger.warning("Error while closing channel: %s", exc)
        if reader is not None and not reader.done():
            done, _ = await asyncio.wait({reader}, timeout=CLOSE_WAIT)
            if not done:
                reader.cancel()
                await asyncio.gather(reader, return_exceptions=True)
        self._set_state(ConnectionState.DISCONNECTED)
        logger.info("Session closed")

    # --- channel events ---

    def handle_open(self, channel):
        self._session.channel = channel
        self.last_error = None
        self._set_state(ConnectionState.CONNECTED)
        logger.info("Channel connected")
        self._schedule_heartbeat()

    def handle_message(self, payload):
        if isinstance(payload, bytes):
            try:
                payload = payload.decode("utf-8")
            except UnicodeDecodeError as exc:
                logger.warning("Dropping non UTF-8 frame: %s", exc)
                return
        if payload == HEARTBEAT_ACK:
            return
        try:
            data = json.loads(payload)
        except json.JSONDecodeError as exc:
            logger.warning("Failed to parse message: %s", exc)
            return
        if not isinstance(data, dict):
            logger.debug("Ignoring non-object message")
            return

        msg_type = data.get("type")
        if msg_type != UNIVERSE_UPDATE:
            logger.debug("Ignoring message of type %r", msg_type)
            return
        try:
            snapshot = parse_snapshot(data)
        except SnapshotError as exc:
            logger.warning("Dropping malformed universe update: %s", exc)
            return
        self.store.replace(snapshot)

    def handle_close(self, code: int, reason: str = ""):
        logger.info("Channel closed: code=%s reason=%r", code, reason)
        self._session.cancel_heartbeat()
        self._session.channel = None
        self._set_state(ConnectionState.DISCONNECTED)
        if code != NORMAL_CLOSURE and not self._closed:
            self._session.cancel_reconnect()
            self._session.reconnect = self._get_scheduler().call_later(
                self.reconnect_delay, self._reconnect
            )
            logger.info("Reconnecting in %.1f s", self.reconnect_delay)

    def handle_error(self, message: str):
        logger.error("Channel error: %s", message)
        self.last_error = message
        self._set_state(ConnectionState.ERROR)

    # --- internals ---

    async def _run(self, url: str):
        try:
            channel = await self._opener(url)
        except (websockets.InvalidURI, ValueError) as exc:
            logger.error("Cannot open channel to %s: %s", url, exc)
            self.handle_error("Failed to create connection")
            return
        except (OSError, asyncio.TimeoutError, websockets.WebSocketException) as exc:
            logger.error("Failed to open channel to %s: %s", url, exc)
            self.handle_error("Connection failed")
            self.handle_close(ABNORMAL_CLOSURE, str(exc))
            return

        if self._closed:
            try:
                await channel.close(NORMAL_CLOSURE, "Session closed")
            except (OSError, websockets.WebSocketException) as exc:
                logger.warning("Error while closing channel: %s", exc)
            return

        self.handle_open(channel)
        try:
            async for payload in channel:
                self.handle_message(payload)
        except websockets.ConnectionClosedError as exc:
            logger.warning("Channel dropped: %s", exc)
            self.handle_error("Connection lost")
        except websockets.ConnectionClosed:
            pass

        code = channel.close_code
        if code is None:
            code = ABNORMAL_CLOSURE
        self.handle_close(code, channel.close_reason or "")

    async def _send(self, channel, text: str):
        try:
            await channel.send(text)
        except websockets.ConnectionClosed as exc:
            logger.warning("Could not send %r: %s", text, exc)

    def _schedule_heartbeat(self):
        self._session.heartbeat = self._get_scheduler().call_later(
            self.heartbeat_interval, self._heartbeat
        )

    def _heartbeat(self):
        self._session.heartbeat = None
        if self._session.channel is None:
            return
        self.send_raw(HEARTBEAT_TOKEN)
        self._schedule_heartbeat()

    def _reconnect(self):
        self._session.reconnect = None
        if self._closed:
            return
        self.reconnect_attempts += 1
        self.connect()

    def _get_scheduler(self):
        if self._scheduler is not None:
            return self._scheduler
        return asyncio.get_running_loop()

    def _set_state(self, state: ConnectionState):
        self.state = state
        for listener in list(self._listeners):
            try:
                listener(state, self.last_error)
            except Exception:
                logger.exception("Connection listener %r failed", listener)
