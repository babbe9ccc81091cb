"""
Modality coordinator.

Owns the session mode and keeps the remote output modality in step with it:

    listening --trigger-fired--> generating --response-started--> speaking
        ^                            |                                |
        +------ response-finished / interrupt -----------------------+

Entering `generating` always emits set-output-modality(audio) first and then,
after a short deferral, create-response. Leaving for `listening` through completion
emits set-output-modality(text). Interrupts go through `force_listening()` and
the interrupt controller emits its own cancel/modality commands.
"""

from __future__ import annotations

import asyncio
from collections import deque
from typing import Callable, Deque, Optional, Tuple

import structlog

from src.trigger_agent.models import (
    BUSY_MODES,
    Modality,
    Mode,
    ModeTransition,
    TransitionCause,
    TriggerEvent,
)
from src.trigger_agent.realtime_protocol import (
    create_output_modality_update,
    create_response_create,
)
from src.trigger_agent.transport import CommandSink

logger = structlog.get_logger(__name__)

TransitionListener = Callable[[ModeTransition], None]


class ModalityCoordinator:
    def __init__(
        self,
        commands: CommandSink,
        *,
        response_create_delay_ms: int = 100,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        on_transition: Optional[TransitionListener] = None,
        max_transitions: int = 100,
    ) -> None:
        self._commands = commands
        self._delay_s = max(0, response_create_delay_ms) / 1000.0
        self._loop = loop
        self._on_transition = on_transition

        self._mode: Mode = Mode.LISTENING
        self._transitions: Deque[ModeTransition] = deque(maxlen=max_transitions)
        self._response_seq: int = 0
        self._pending_create: Optional[asyncio.TimerHandle] = None

    @property
    def mode(self) -> Mode:
        return self._mode

    @property
    def is_busy(self) -> bool:
        return self._mode in BUSY_MODES

    @property
    def transitions(self) -> Tuple[ModeTransition, ...]:
        return tuple(self._transitions)

    @property
    def create_pending(self) -> bool:
        return self._pending_create is not None

    @property
    def response_count(self) -> int:
        """Responses started over the session lifetime."""
        return self._response_seq

    def begin_response(self, trigger: TriggerEvent, instructions: str) -> bool:
        """
        Start a spoken response for an accepted trigger.

        Returns False (and does nothing) if a response is already in flight.
        """
        if self._mode is not Mode.LISTENING:
            logger.info(
                "Trigger ignored; response in flight",
                mode=self._mode.value,
                trigger=trigger.kind.value,
                turn_id=trigger.turn_id,
            )
            return False

        self._response_seq += 1
        seq = self._response_seq

        # Remote must be in audio before anyone observes `generating`.
        self._commands.send_command(create_output_modality_update(Modality.AUDIO))
        self._transition(Mode.GENERATING, TransitionCause.TRIGGER_FIRED)

        if seq != self._response_seq or self._mode is not Mode.GENERATING:
            logger.info("Response cut off before create", trigger=trigger.kind.value)
            return True

        logger.info(
            "Response requested",
            trigger=trigger.kind.value,
            phrase=trigger.phrase,
            turn_id=trigger.turn_id,
            context_size=len(trigger.context),
        )

        if self._delay_s <= 0:
            self._emit_create(seq, instructions, trigger.context)
            return True

        loop = self._loop or asyncio.get_running_loop()
        self._pending_create = loop.call_later(
            self._delay_s, self._emit_create, seq, instructions, trigger.context
        )
        return True

    def on_audio_fragment(self) -> bool:
        """First audio fragment of the in-flight response: generating -> speaking."""
        if self._mode is Mode.GENERATING:
            self._transition(Mode.SPEAKING, TransitionCause.RESPONSE_STARTED)
            return True
        return False

    def on_response_finished(self) -> bool:
        """
        Remote reported the response complete.

        Emits set-output-modality(text) and returns to listening. No-op (no
        command) when an interrupt already put the session back in listening.
        """
        if self._mode is Mode.LISTENING:
            return False

        self._cancel_pending_create()
        self._commands.send_command(create_output_modality_update(Modality.TEXT))
        self._transition(Mode.LISTENING, TransitionCause.RESPONSE_FINISHED)
        return True

    def force_listening(self) -> bool:
        """
        Interrupt path: drop straight to listening without emitting anything.

        The caller owns the cancel / modality commands that follow.
        """
        self._cancel_pending_create()
        if self._mode is Mode.LISTENING:
            return False
        self._transition(Mode.LISTENING, TransitionCause.INTERRUPT)
        return True

    def close(self) -> None:
        self._cancel_pending_create()

    def _emit_create(self, seq: int, instructions: str, context: Tuple[str, ...]) -> None:
        self._pending_create = None
        if seq != self._response_seq or self._mode is not Mode.GENERATING:
            logger.info("Deferred response create dropped", mode=self._mode.value)
            return
        self._commands.send_command(create_response_create(instructions, context))

    def _cancel_pending_create(self) -> None:
        if self._pending_create is not None:
            self._pending_create.cancel()
            self._pending_create = None

    def _transition(self, to_mode: Mode, cause: TransitionCause) -> None:
        if to_mode is Mode.GENERATING:
            assert self._mode is Mode.LISTENING, f"cannot start a response from {self._mode.value}"

        transition = ModeTransition(from_mode=self._mode, to_mode=to_mode, cause=cause)
        self._mode = to_mode
        self._transitions.append(transition)
        logger.debug(
            "Mode transition",
            from_mode=transition.from_mode.value,
            to_mode=to_mode.value,
            cause=cause.value,
        )
        if self._on_transition:
            self._on_transition(transition)
