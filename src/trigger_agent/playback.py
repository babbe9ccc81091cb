"""
Playback sink: paced forwarding of agent audio to the client.

Frames are paced at real time so the client-side buffer stays small and a
`stop_and_discard()` silences the agent almost immediately. Control messages
(status, transcripts, clear) take a separate path and are never held behind
queued audio.
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from dataclasses import dataclass
from typing import Awaitable, Callable, Deque, Optional, Protocol

import structlog

from src.trigger_agent.audio import PCM_FRAME_SIZE, chunk_audio, pcm_duration_ms
from src.trigger_agent.client_protocol import create_audio_message, create_clear_message

logger = structlog.get_logger(__name__)


class PlaybackSink(Protocol):
    @property
    def pending_seconds(self) -> float: ...

    def enqueue(self, fragment: bytes, turn_id: str) -> None: ...

    def stop_and_discard(self) -> None: ...


@dataclass(frozen=True)
class OutboundMessage:
    message: str
    duration_s: float = 0.0  # 0 = control message, sent without pacing


class PacedPlaybackSink:
    """
    Client-facing playback sink.

    Interface:
    - `start()` / `stop()` run the pacer task
    - `enqueue(fragment, turn_id)` frames and queues PCM audio
    - `send_control(message)` sends an unpaced message ahead of queued audio
    - `stop_and_discard()` drops queued audio and tells the client to clear
    - `pending_seconds` is how much audio has yet to reach the client
    """

    def __init__(self, send_message: Callable[[str], Awaitable[None]]):
        self._send_message = send_message
        self._audio: Deque[OutboundMessage] = deque()
        self._control: Deque[OutboundMessage] = deque()
        self._wake = asyncio.Event()
        self._pacer_task: Optional[asyncio.Task] = None
        self._running: bool = False
        self._queued_s: float = 0.0
        self._next_send_time: float = 0.0

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def queued(self) -> int:
        return len(self._audio) + len(self._control)

    @property
    def pending_seconds(self) -> float:
        """Queued audio plus the remainder of the frame currently playing out."""
        if not self._running:
            return 0.0
        return self._queued_s + max(0.0, self._next_send_time - time.monotonic())

    async def start(self) -> None:
        if self._running and self._pacer_task and not self._pacer_task.done():
            return
        self._audio.clear()
        self._control.clear()
        self._queued_s = 0.0
        self._next_send_time = time.monotonic()
        self._wake = asyncio.Event()
        self._running = True
        self._pacer_task = asyncio.create_task(self._pacer())

    async def stop(self) -> None:
        self._running = False
        self._drain_audio()
        self._control.clear()
        self._wake.set()
        if self._pacer_task and not self._pacer_task.done():
            self._pacer_task.cancel()
            try:
                await self._pacer_task
            except asyncio.CancelledError:
                pass
        self._pacer_task = None

    def enqueue(self, fragment: bytes, turn_id: str) -> None:
        if not fragment or not self._running:
            return
        for frame in chunk_audio(fragment, PCM_FRAME_SIZE):
            outbound = OutboundMessage(
                message=create_audio_message(turn_id, frame),
                duration_s=pcm_duration_ms(frame) / 1000.0,
            )
            self._audio.append(outbound)
            self._queued_s += outbound.duration_s
        self._wake.set()

    def send_control(self, message: str) -> None:
        if not self._running:
            return
        self._control.append(OutboundMessage(message=message))
        self._wake.set()

    def stop_and_discard(self) -> None:
        """Drop queued audio frames (control messages survive) and clear the client."""
        dropped = self._drain_audio()
        self._next_send_time = min(self._next_send_time, time.monotonic())
        if self._running:
            self.send_control(create_clear_message())
        logger.info("Playback discarded", dropped_frames=dropped)

    def _drain_audio(self) -> int:
        dropped = len(self._audio)
        self._audio.clear()
        self._queued_s = 0.0
        return dropped

    async def _wait(self, timeout: Optional[float] = None) -> None:
        self._wake.clear()
        if timeout is None:
            await self._wake.wait()
            return
        try:
            await asyncio.wait_for(self._wake.wait(), timeout)
        except asyncio.TimeoutError:
            pass

    async def _pacer(self) -> None:
        try:
            while self._running:
                if self._control:
                    await self._send_message(self._control.popleft().message)
                    continue

                if not self._audio:
                    await self._wait()
                    continue

                now = time.monotonic()
                if now < self._next_send_time:
                    # Wakes early for control messages or a discard.
                    await self._wait(self._next_send_time - now)
                    continue

                outbound = self._audio.popleft()
                self._queued_s = max(0.0, self._queued_s - outbound.duration_s)
                await self._send_message(outbound.message)
                self._next_send_time = max(
                    self._next_send_time + outbound.duration_s, time.monotonic()
                )
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.error("Playback pacer failed", error=str(e))
