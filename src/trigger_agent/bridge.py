"""
Client <-> OpenAI Realtime bridge.

One bridge per client WebSocket connection. It owns the realtime transport, the
paced playback sink and the trigger session, and streams:

Client mic (PCM16 24kHz) -> OpenAI Realtime (text-only until triggered) -> Client speaker

Interface is compatible with `server/app.py`:
- `start()`
- `stop()`
- `handle_message(raw_message)`
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Optional

import structlog

from src.trigger_agent.client_protocol import (
    ClientAudioEvent,
    ClientEventType,
    ClientTriggerEvent,
    create_error_message,
    create_status_message,
    create_transcripts_message,
    parse_client_message,
)
from src.trigger_agent.config import Config, get_config
from src.trigger_agent.models import TriggerKind
from src.trigger_agent.playback import PacedPlaybackSink
from src.trigger_agent.realtime_protocol import ErrorEvent
from src.trigger_agent.session import SessionNotice, TriggerSession
from src.trigger_agent.transport import RealtimeTransport

logger = structlog.get_logger(__name__)


class SessionBridge:
    def __init__(
        self,
        send_message: Callable[[str], Awaitable[None]],
        *,
        config: Optional[Config] = None,
        transport: Optional[Any] = None,
    ):
        self.config = config or get_config()
        self._send_message = send_message

        self.sink = PacedPlaybackSink(send_message)
        self.transport = transport or RealtimeTransport(self.config)
        self.session = TriggerSession(self.config, self.transport, self.sink)

        self.transport.on_event = self.session.handle_event
        self.transport.on_closed = self._on_transport_closed
        self.session.add_listener(self._on_session_notice)

        self._is_running: bool = False
        self._connected: bool = False

    @property
    def is_running(self) -> bool:
        return self._is_running

    async def start(self) -> None:
        if self._is_running:
            return
        self._is_running = True
        await self.sink.start()
        try:
            await self.transport.connect()
        except Exception as e:
            logger.error("Realtime connect failed", error=str(e))
            await self._send_direct(create_error_message("Failed to connect to the realtime model", "connect_failed"))
            await self.stop()
            raise
        self._connected = True
        self._push_status()
        logger.info("Session bridge started")

    async def stop(self) -> None:
        if not self._is_running:
            return
        self._is_running = False
        self._connected = False

        self.session.close()
        try:
            await self.transport.close()
        except Exception as e:
            logger.error("Error closing realtime transport", error=str(e))
        await self.sink.stop()

        logger.info("Session bridge stopped", interrupts=self.session.interrupts.interrupt_count)

    async def handle_message(self, raw_message: str) -> None:
        try:
            event_type, event = parse_client_message(raw_message)
        except ValueError as e:
            logger.warning("Failed to parse client message", error=str(e))
            return

        if event_type == ClientEventType.AUDIO:
            await self._handle_audio(event)
            return

        if event_type == ClientEventType.TRIGGER:
            self._handle_trigger(event)
            return

        if event_type == ClientEventType.INTERRUPT:
            self.session.interrupt()
            return

        if event_type == ClientEventType.STOP:
            await self.stop()
            return

    async def _handle_audio(self, event: ClientAudioEvent) -> None:
        if not self._is_running or not event.payload:
            return
        self.transport.send_audio(event.payload)

    def _handle_trigger(self, event: ClientTriggerEvent) -> None:
        if not self._is_running:
            return
        if event.kind is TriggerKind.SHORT_HINT:
            self.session.trigger_short_hint()
        else:
            self.session.trigger_full_guidance()

    def _on_session_notice(self, notice: SessionNotice, payload: Any) -> None:
        if notice in (SessionNotice.MODE, SessionNotice.PLAYING, SessionNotice.READY):
            self._push_status()
        elif notice is SessionNotice.TRANSCRIPTS:
            self.sink.send_control(create_transcripts_message(payload))
        elif notice is SessionNotice.ERROR and isinstance(payload, ErrorEvent):
            self.sink.send_control(create_error_message(payload.message or "Realtime error", payload.code))
        elif notice is SessionNotice.DISCONNECTED:
            self._connected = False
            self._push_status()
            self.sink.send_control(create_error_message("Realtime connection lost", "disconnected"))

    def _on_transport_closed(self) -> None:
        self.session.on_transport_closed()

    def _push_status(self) -> None:
        self.sink.send_control(
            create_status_message(
                self.session.mode,
                playing=self.session.is_playing,
                connected=self._connected,
            )
        )

    async def _send_direct(self, message: str) -> None:
        try:
            await self._send_message(message)
        except Exception as e:
            logger.warning("Failed to send client message", error=str(e))


async def create_bridge(
    send_message: Callable[[str], Awaitable[None]],
    *,
    config: Optional[Config] = None,
) -> SessionBridge:
    """Create and start a bridge for one client connection."""
    bridge = SessionBridge(send_message, config=config)
    await bridge.start()
    return bridge
