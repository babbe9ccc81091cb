"""
Transport adapter for the OpenAI Realtime websocket.

Commands are enqueued synchronously (fire-and-forget) onto one ordered send
queue, so the order commands are emitted in is the order they hit the wire.
Inbound events are parsed and handed to `on_event` strictly in arrival order.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Dict, Optional, Protocol

import structlog
import websockets

from src.trigger_agent.config import Config
from src.trigger_agent.realtime_protocol import (
    RealtimeEventType,
    create_audio_append,
    encode_event,
    parse_realtime_event,
)

logger = structlog.get_logger(__name__)

EventHandler = Callable[[RealtimeEventType, Any], None]


class CommandSink(Protocol):
    """What the session controller needs from a transport."""

    def send_command(self, message: Dict[str, Any]) -> None: ...

    def send_audio(self, pcm_bytes: bytes) -> None: ...


class RealtimeTransport:
    """
    Websocket connection to the realtime model.

    Lifecycle: `connect()` then `close()`. `on_event` is invoked from the receive
    loop for every parsed server event; `on_closed` once when the socket ends.
    """

    def __init__(
        self,
        config: Config,
        *,
        on_event: Optional[EventHandler] = None,
        on_closed: Optional[Callable[[], None]] = None,
        max_queue: int = 2000,
    ) -> None:
        self.config = config
        self.on_event = on_event
        self.on_closed = on_closed

        self._ws: Optional[Any] = None
        self._send_queue: asyncio.Queue[Optional[Dict[str, Any]]] = asyncio.Queue(maxsize=max_queue)
        self._send_task: Optional[asyncio.Task] = None
        self._recv_task: Optional[asyncio.Task] = None
        self._is_running: bool = False
        self._closed_notified: bool = False

    @property
    def is_connected(self) -> bool:
        return self._is_running and self._ws is not None

    async def connect(self) -> None:
        if self._ws:
            return

        api_key = (self.config.openai_api_key or "").strip()
        if not api_key:
            raise RuntimeError("OpenAI Realtime requires OPENAI_API_KEY")

        headers = {"Authorization": f"Bearer {api_key}"}
        self._ws = await websockets.connect(
            self.config.realtime_ws_url,
            additional_headers=headers,
            open_timeout=10,
            max_size=None,
        )
        self._is_running = True
        self._send_task = asyncio.create_task(self._send_loop())
        self._recv_task = asyncio.create_task(self._receive_loop())

        logger.info("Realtime transport connected", model=self.config.openai_realtime_model)

    async def close(self) -> None:
        if not self._is_running and not self._ws:
            return

        self._is_running = False
        try:
            self._send_queue.put_nowait(None)
        except asyncio.QueueFull:
            pass

        for task in (self._send_task, self._recv_task):
            if task and not task.done():
                task.cancel()
        await asyncio.gather(
            *[t for t in (self._send_task, self._recv_task) if t],
            return_exceptions=True,
        )

        if self._ws:
            try:
                await self._ws.close()
            except Exception as e:
                logger.debug("Realtime socket close failed", error=str(e))

        self._ws = None
        self._send_task = None
        self._recv_task = None
        logger.info("Realtime transport closed")

    def send_command(self, message: Dict[str, Any]) -> None:
        if not self._is_running:
            logger.debug("Transport not running; dropping command", type=message.get("type"))
            return
        try:
            self._send_queue.put_nowait(message)
        except asyncio.QueueFull:
            logger.warning("Realtime send queue full; dropping command", type=message.get("type"))

    def send_audio(self, pcm_bytes: bytes) -> None:
        if not pcm_bytes:
            return
        self.send_command(create_audio_append(pcm_bytes))

    async def _send_loop(self) -> None:
        ws = self._ws
        if not ws:
            return

        try:
            while self._is_running:
                item = await self._send_queue.get()
                if item is None:
                    break
                try:
                    await ws.send(encode_event(item))
                except Exception as e:
                    logger.error("Realtime send failed", error=str(e), type=item.get("type"))
                    break
        except asyncio.CancelledError:
            pass

    async def _receive_loop(self) -> None:
        ws = self._ws
        if not ws:
            return

        try:
            async for raw in ws:
                if not self._is_running:
                    break
                try:
                    event_type, event = parse_realtime_event(raw)
                except ValueError as e:
                    logger.warning("Failed to parse realtime event", error=str(e))
                    continue

                if self.on_event is None:
                    continue
                try:
                    self.on_event(event_type, event)
                except Exception:
                    logger.exception("Realtime event handler failed", type=event_type.value)
        except asyncio.CancelledError:
            return
        except websockets.exceptions.ConnectionClosed as e:
            logger.warning("Realtime connection closed", reason=str(e))
        except Exception as e:
            logger.error("Realtime receive loop failed", error=str(e))

        self._notify_closed()

    def _notify_closed(self) -> None:
        if self._closed_notified:
            return
        self._closed_notified = True
        self._is_running = False
        if self.on_closed:
            self.on_closed()
