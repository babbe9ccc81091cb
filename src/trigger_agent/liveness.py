"""
Playback liveness tracking.

"Response finished" on the wire and "the speaker fell silent" are different
events: audio still queued for pacing, plus whatever the client has buffered,
keeps playing after the server is done. The flag is set on the first audio
fragment and cleared only once the playback sink has drained and a grace delay
has passed, or immediately on interrupt.
"""

from __future__ import annotations

import asyncio
from typing import Callable, Optional

import structlog

logger = structlog.get_logger(__name__)


def _nothing_pending() -> float:
    return 0.0


class PlaybackLiveness:
    def __init__(
        self,
        *,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        on_change: Optional[Callable[[bool], None]] = None,
        pending_seconds: Optional[Callable[[], float]] = None,
    ) -> None:
        self._loop = loop
        self._on_change = on_change
        self._pending_seconds = pending_seconds or _nothing_pending
        self._playing: bool = False
        self._grace_seconds: float = 0.0
        self._clear_handle: Optional[asyncio.TimerHandle] = None

    @property
    def is_playing(self) -> bool:
        return self._playing

    @property
    def clear_pending(self) -> bool:
        return self._clear_handle is not None

    def mark_playing(self) -> None:
        self._cancel_timer()
        self._set(True)

    def schedule_clear(self, grace_seconds: float) -> None:
        """Clear the flag once queued playback drains plus `grace_seconds`."""
        self._cancel_timer()
        if not self._playing:
            return
        self._grace_seconds = max(0.0, grace_seconds)
        delay = self._pending_seconds() + self._grace_seconds
        if delay <= 0:
            self._set(False)
            return
        self._arm(delay)

    def clear(self) -> None:
        self._cancel_timer()
        self._set(False)

    def _arm(self, delay: float) -> None:
        loop = self._loop or asyncio.get_running_loop()
        self._clear_handle = loop.call_later(delay, self._on_grace_elapsed)
        logger.debug("Playback clear scheduled", delay_seconds=round(delay, 3))

    def _on_grace_elapsed(self) -> None:
        self._clear_handle = None
        remaining = self._pending_seconds()
        if remaining > 0:
            # Pacing drifted behind wall time; wait out the rest.
            self._arm(remaining + self._grace_seconds)
            return
        logger.debug("Playback grace elapsed")
        self._set(False)

    def _cancel_timer(self) -> None:
        if self._clear_handle is not None:
            self._clear_handle.cancel()
            self._clear_handle = None

    def _set(self, playing: bool) -> None:
        if self._playing == playing:
            return
        self._playing = playing
        if self._on_change:
            self._on_change(playing)
