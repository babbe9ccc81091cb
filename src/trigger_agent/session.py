"""
Trigger session: the root of one connection.

Receives parsed realtime events in arrival order, keeps the transcript cache and
history reconciled, runs trigger/interrupt detection on resolved user
transcripts, and drives the modality coordinator. The UI only calls the public
entry points (`trigger_short_hint`, `trigger_full_guidance`, `interrupt`) and
reads the observers; it never writes state.
"""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

import structlog

from src.trigger_agent.config import Config
from src.trigger_agent.coordinator import ModalityCoordinator
from src.trigger_agent.interrupts import InterruptController
from src.trigger_agent.liveness import PlaybackLiveness
from src.trigger_agent.models import (
    Mode,
    Modality,
    ModeTransition,
    Role,
    TranscriptItem,
    TriggerEvent,
    TriggerKind,
)
from src.trigger_agent.playback import PlaybackSink
from src.trigger_agent.prompts import resolve_agent_instructions, trigger_instructions
from src.trigger_agent.realtime_protocol import (
    AudioDeltaEvent,
    AudioTranscriptEvent,
    ConversationItemEvent,
    ErrorEvent,
    InputTranscriptionEvent,
    RealtimeEventType,
    ResponseEvent,
    SpeechEvent,
    create_audio_commit,
    create_session_configure,
)
from src.trigger_agent.transcripts import ConversationHistory, TranscriptCache, UtteranceWindow
from src.trigger_agent.transport import CommandSink
from src.trigger_agent.triggers import DetectionAction, TriggerPhrase, detect, triggers_from_config

logger = structlog.get_logger(__name__)


class SessionNotice(str, Enum):
    READY = "ready"
    MODE = "mode"
    PLAYING = "playing"
    TRANSCRIPTS = "transcripts"
    ERROR = "error"
    DISCONNECTED = "disconnected"


SessionListener = Callable[[SessionNotice, Any], None]


class TriggerSession:
    def __init__(
        self,
        config: Config,
        commands: CommandSink,
        sink: Optional[PlaybackSink] = None,
        *,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> None:
        self.config = config
        self._commands = commands
        self._sink = sink

        self._triggers: Tuple[TriggerPhrase, ...] = triggers_from_config(config)
        self._triggers_by_kind: Dict[TriggerKind, TriggerPhrase] = {t.kind: t for t in self._triggers}
        self._interrupt_phrases: Tuple[str, ...] = tuple(
            p for p in config.interrupt_phrases if p and p.strip()
        )

        self.cache = TranscriptCache()
        self.history = ConversationHistory(self.cache)
        self.utterances = UtteranceWindow(config.context_window_size)

        self.liveness = PlaybackLiveness(
            loop=loop,
            on_change=self._on_playing_changed,
            pending_seconds=self._pending_playback,
        )
        self.coordinator = ModalityCoordinator(
            commands,
            response_create_delay_ms=config.response_create_delay_ms,
            loop=loop,
            on_transition=self._on_transition,
        )
        self.interrupts = InterruptController(self.coordinator, self.liveness, commands, sink)

        self.is_ready: bool = False
        self.last_error: Optional[ErrorEvent] = None
        self.error_count: int = 0

        self._listeners: List[SessionListener] = []
        self._detected_turns: Set[str] = set()
        self._active_response_id: Optional[str] = None
        self._stale_response_ids: Set[str] = set()

        self._handlers: Dict[RealtimeEventType, Callable[[Any], None]] = {
            RealtimeEventType.SESSION_CREATED: self._on_session_created,
            RealtimeEventType.SESSION_UPDATED: self._on_session_updated,
            RealtimeEventType.SPEECH_STARTED: self._on_speech_started,
            RealtimeEventType.SPEECH_STOPPED: self._on_speech_stopped,
            RealtimeEventType.ITEM_CREATED: self._on_conversation_item,
            RealtimeEventType.ITEM_ADDED: self._on_conversation_item,
            RealtimeEventType.ITEM_DONE: self._on_conversation_item,
            RealtimeEventType.INPUT_TRANSCRIPTION_COMPLETED: self._on_input_transcription,
            RealtimeEventType.RESPONSE_CREATED: self._on_response_created,
            RealtimeEventType.AUDIO_DELTA: self._on_audio_delta,
            RealtimeEventType.AUDIO_TRANSCRIPT_DONE: self._on_audio_transcript,
            RealtimeEventType.RESPONSE_DONE: self._on_response_done,
            RealtimeEventType.ERROR: self._on_error,
        }

    # -- observers -----------------------------------------------------------

    @property
    def mode(self) -> Mode:
        return self.coordinator.mode

    @property
    def is_playing(self) -> bool:
        return self.liveness.is_playing

    @property
    def transcripts(self) -> List[TranscriptItem]:
        return self.history.items()

    @property
    def transitions(self) -> Tuple[ModeTransition, ...]:
        return self.coordinator.transitions

    def add_listener(self, listener: SessionListener) -> None:
        self._listeners.append(listener)

    # -- UI entry points -----------------------------------------------------

    def trigger_short_hint(self) -> bool:
        return self._fire(self._triggers_by_kind[TriggerKind.SHORT_HINT], turn_id=None)

    def trigger_full_guidance(self) -> bool:
        return self._fire(self._triggers_by_kind[TriggerKind.FULL_GUIDANCE], turn_id=None)

    def interrupt(self) -> bool:
        return self._interrupt("manual")

    # -- transport entry points ----------------------------------------------

    def handle_event(self, event_type: RealtimeEventType, event: Any) -> None:
        handler = self._handlers.get(event_type)
        if handler is None:
            return
        handler(event)

    def on_transport_closed(self) -> None:
        self.is_ready = False
        logger.warning("Realtime transport disconnected", mode=self.mode.value)
        self._notify(SessionNotice.DISCONNECTED, None)

    def close(self) -> None:
        self.coordinator.close()
        self.liveness.clear()

    # -- event handlers ------------------------------------------------------

    def _on_session_created(self, event: Dict[str, Any]) -> None:
        instructions = resolve_agent_instructions(self.config)
        self._commands.send_command(create_session_configure(self.config, instructions))
        self.is_ready = True
        logger.info("Session created; configured for silent listening")
        self._notify(SessionNotice.READY, None)

    def _on_session_updated(self, event: Dict[str, Any]) -> None:
        session = event.get("session") or {}
        logger.debug("Session updated", output_modalities=session.get("output_modalities"))

    def _on_speech_started(self, event: SpeechEvent) -> None:
        active = self._active_response_id
        if self.interrupts.on_speech_started():
            self._mark_stale(active)
            logger.debug("Barge-in", item_id=event.item_id, audio_start_ms=event.audio_ms)

    def _on_speech_stopped(self, event: Any) -> None:
        if self.config.commit_on_speech_stop:
            self._commands.send_command(create_audio_commit())

    def _on_conversation_item(self, event: ConversationItemEvent) -> None:
        if event.role is None or not event.item_id:
            return
        if self.history.observe(event.item_id, event.role, event.modality, event.text):
            self._notify_transcripts()

    def _on_input_transcription(self, event: InputTranscriptionEvent) -> None:
        if not event.item_id:
            return

        changed = self.history.observe(event.item_id, Role.USER, Modality.AUDIO, event.transcript)
        text = self.cache.get(event.item_id)
        if changed:
            self._notify_transcripts()

        if not text.strip():
            return
        if event.item_id in self._detected_turns:
            return
        self._detected_turns.add(event.item_id)

        logger.info("User transcript", turn_id=event.item_id, text=text[:200])
        self.utterances.append(text)
        self._detect(text, event.item_id)

    def _on_response_created(self, event: ResponseEvent) -> None:
        if not self.coordinator.is_busy:
            # Created after an interrupt already cancelled it.
            if event.response_id:
                self._stale_response_ids.add(event.response_id)
            logger.debug("Stale response created", response_id=event.response_id)
            return
        self._active_response_id = event.response_id or None
        logger.debug("Response created", response_id=event.response_id)

    def _on_audio_delta(self, event: AudioDeltaEvent) -> None:
        if self._is_stale(event.response_id) or not self.coordinator.is_busy:
            return
        if not event.payload:
            return

        self.liveness.mark_playing()
        self.coordinator.on_audio_fragment()
        if event.item_id and self.history.observe(event.item_id, Role.AGENT, Modality.AUDIO):
            self._notify_transcripts()

        if self._sink is not None:
            try:
                self._sink.enqueue(event.payload, event.item_id)
            except Exception:
                logger.exception("Playback enqueue failed")

    def _on_audio_transcript(self, event: AudioTranscriptEvent) -> None:
        if not event.item_id:
            return
        self.cache.update(event.item_id, event.transcript)
        if self.history.observe(event.item_id, Role.AGENT, Modality.AUDIO, event.transcript):
            self._notify_transcripts()

    def _on_response_done(self, event: ResponseEvent) -> None:
        if self._is_stale(event.response_id) or event.status == "cancelled":
            if event.response_id:
                self._stale_response_ids.discard(event.response_id)
            logger.debug("Cancelled response finished", response_id=event.response_id)
            return

        self._active_response_id = None
        if self.coordinator.on_response_finished():
            self.liveness.schedule_clear(self.config.playback_grace_seconds)
            logger.info("Response finished; back to silent listening", status=event.status)

    def _on_error(self, event: ErrorEvent) -> None:
        if event.is_benign:
            logger.debug("Suppressed benign realtime error", code=event.code)
            return

        self.last_error = event
        self.error_count += 1
        logger.error(
            "Realtime error",
            code=event.code,
            error_type=event.error_type,
            message=event.message,
            mode=self.mode.value,
        )
        self._notify(SessionNotice.ERROR, event)

    # -- internals -----------------------------------------------------------

    def _detect(self, text: str, turn_id: str) -> None:
        detection = detect(
            text,
            self._triggers,
            self._interrupt_phrases,
            busy=self.coordinator.is_busy,
            audible=self.liveness.is_playing,
        )

        if detection.action is DetectionAction.INTERRUPT:
            logger.info("Interrupt phrase detected", phrase=detection.phrase, turn_id=turn_id)
            self._interrupt("phrase")
        elif detection.action is DetectionAction.TRIGGER and detection.trigger is not None:
            logger.info("Trigger phrase detected", phrase=detection.phrase, turn_id=turn_id)
            self._fire(detection.trigger, turn_id=turn_id)
        elif detection.action is DetectionAction.IGNORED:
            logger.info(
                "Trigger ignored while busy",
                phrase=detection.phrase,
                mode=self.mode.value,
                turn_id=turn_id,
            )

    def _fire(self, trigger: TriggerPhrase, *, turn_id: Optional[str]) -> bool:
        if trigger.kind is TriggerKind.SHORT_HINT:
            context = self.utterances.recent(self.config.quick_hint_context_size)
        else:
            context = self.utterances.all()

        event = TriggerEvent(
            turn_id=turn_id,
            kind=trigger.kind,
            phrase=trigger.phrase,
            context=context,
        )
        instructions = trigger_instructions(trigger.kind, trigger.duration_seconds)
        return self.coordinator.begin_response(event, instructions)

    def _interrupt(self, reason: str) -> bool:
        active = self._active_response_id
        if not self.interrupts.interrupt(reason):
            return False
        self._mark_stale(active)
        return True

    def _is_stale(self, response_id: str) -> bool:
        return bool(response_id) and response_id in self._stale_response_ids

    def _mark_stale(self, response_id: Optional[str]) -> None:
        if response_id:
            self._stale_response_ids.add(response_id)
        self._active_response_id = None

    def _pending_playback(self) -> float:
        if self._sink is None:
            return 0.0
        return self._sink.pending_seconds

    def _on_transition(self, transition: ModeTransition) -> None:
        self._notify(SessionNotice.MODE, transition)

    def _on_playing_changed(self, playing: bool) -> None:
        self._notify(SessionNotice.PLAYING, playing)

    def _notify_transcripts(self) -> None:
        self._notify(SessionNotice.TRANSCRIPTS, self.history.items())

    def _notify(self, notice: SessionNotice, payload: Any) -> None:
        for listener in list(self._listeners):
            try:
                listener(notice, payload)
            except Exception:
                logger.exception("Session listener failed", notice=notice.value)
