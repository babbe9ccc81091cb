"""
Interrupt controller.

Cuts off the agent on barge-in or on a verbal/manual interrupt. Both are
accepted while a response is in flight or its audio is still audible. State is
updated before any outbound I/O, so a second signal arriving right behind the
first finds nothing to interrupt.
"""

from __future__ import annotations

from typing import Optional

import structlog

from src.trigger_agent.coordinator import ModalityCoordinator
from src.trigger_agent.liveness import PlaybackLiveness
from src.trigger_agent.models import Modality
from src.trigger_agent.playback import PlaybackSink
from src.trigger_agent.realtime_protocol import (
    create_output_modality_update,
    create_response_cancel,
)
from src.trigger_agent.transport import CommandSink

logger = structlog.get_logger(__name__)


class InterruptController:
    def __init__(
        self,
        coordinator: ModalityCoordinator,
        liveness: PlaybackLiveness,
        commands: CommandSink,
        sink: Optional[PlaybackSink] = None,
    ) -> None:
        self._coordinator = coordinator
        self._liveness = liveness
        self._commands = commands
        self._sink = sink
        self.interrupt_count: int = 0

    def on_speech_started(self) -> bool:
        """Barge-in: user speech while audio is audible or a response is in flight."""
        if not (self._liveness.is_playing or self._coordinator.is_busy):
            logger.debug("Speech started; nothing to interrupt")
            return False
        return self._cut_off("barge_in")

    def interrupt(self, reason: str = "manual") -> bool:
        """Verbal or UI interrupt; accepted while busy or while audio is still audible."""
        if not (self._coordinator.is_busy or self._liveness.is_playing):
            logger.debug("Interrupt ignored; nothing in flight or audible", reason=reason)
            return False
        return self._cut_off(reason)

    def _cut_off(self, reason: str) -> bool:
        was_mode = self._coordinator.mode
        was_playing = self._liveness.is_playing

        # 1. state first
        self._liveness.clear()
        self._coordinator.force_listening()
        self.interrupt_count += 1

        # 2. silence local playback
        if self._sink is not None:
            try:
                self._sink.stop_and_discard()
            except Exception:
                logger.exception("Playback stop failed")

        # 3. cancel, 4. back to text
        self._commands.send_command(create_response_cancel())
        self._commands.send_command(create_output_modality_update(Modality.TEXT))

        logger.info(
            "Agent interrupted",
            reason=reason,
            was_mode=was_mode.value,
            was_playing=was_playing,
        )
        return True
