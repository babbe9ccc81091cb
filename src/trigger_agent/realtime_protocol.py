"""
OpenAI Realtime protocol handling.

Inbound server events are parsed into small typed records; only the events the
session controller reacts to get their own type, everything else is passed
through as UNKNOWN and ignored.

Outbound client events are built as plain dicts and encoded by the transport:
- session.update: session configuration / output modality switch
- response.create: request a spoken response
- response.cancel: cut off the in-flight response
- input_audio_buffer.append / commit: microphone audio
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

import msgspec
import structlog

from src.trigger_agent.audio import PCM_SAMPLE_RATE, b64decode_audio, b64encode_audio
from src.trigger_agent.models import Modality, Role

logger = structlog.get_logger(__name__)

decoder = msgspec.json.Decoder()
encoder = msgspec.json.Encoder()

# Errors that only mean a command was redundant.
# - input_audio_buffer_commit_empty: VAD fired before any audio was appended
# - response_cancel_not_active: natural completion raced ahead of an interrupt
BENIGN_ERROR_CODES = frozenset({
    "input_audio_buffer_commit_empty",
    "response_cancel_not_active",
})


class RealtimeEventType(str, Enum):
    """Realtime server event types the controller cares about."""
    SESSION_CREATED = "session.created"
    SESSION_UPDATED = "session.updated"
    SPEECH_STARTED = "input_audio_buffer.speech_started"
    SPEECH_STOPPED = "input_audio_buffer.speech_stopped"
    AUDIO_COMMITTED = "input_audio_buffer.committed"
    ITEM_CREATED = "conversation.item.created"
    ITEM_ADDED = "conversation.item.added"
    ITEM_DONE = "conversation.item.done"
    INPUT_TRANSCRIPTION_DELTA = "conversation.item.input_audio_transcription.delta"
    INPUT_TRANSCRIPTION_COMPLETED = "conversation.item.input_audio_transcription.completed"
    RESPONSE_CREATED = "response.created"
    AUDIO_DELTA = "response.output_audio.delta"
    AUDIO_DONE = "response.output_audio.done"
    AUDIO_TRANSCRIPT_DELTA = "response.output_audio_transcript.delta"
    AUDIO_TRANSCRIPT_DONE = "response.output_audio_transcript.done"
    RESPONSE_DONE = "response.done"
    ERROR = "error"
    UNKNOWN = "unknown"


# Beta API names for the same events.
_ALIASES: Dict[str, RealtimeEventType] = {
    "response.audio.delta": RealtimeEventType.AUDIO_DELTA,
    "response.audio.done": RealtimeEventType.AUDIO_DONE,
    "response.audio_transcript.delta": RealtimeEventType.AUDIO_TRANSCRIPT_DELTA,
    "response.audio_transcript.done": RealtimeEventType.AUDIO_TRANSCRIPT_DONE,
}


@dataclass
class SpeechEvent:
    """Server VAD speech start/stop."""
    item_id: str
    audio_ms: int = 0

    @classmethod
    def from_message(cls, message: Dict[str, Any]) -> "SpeechEvent":
        audio_ms = message.get("audio_start_ms", message.get("audio_end_ms", 0))
        return cls(
            item_id=message.get("item_id") or "",
            audio_ms=int(audio_ms or 0),
        )


@dataclass
class InputTranscriptionEvent:
    """User audio transcription (delta or completed)."""
    item_id: str
    transcript: str
    is_final: bool

    @classmethod
    def from_message(cls, message: Dict[str, Any], *, is_final: bool) -> "InputTranscriptionEvent":
        text = message.get("transcript") if is_final else message.get("delta")
        return cls(
            item_id=message.get("item_id") or "",
            transcript=text if isinstance(text, str) else "",
            is_final=is_final,
        )


@dataclass
class ConversationItemEvent:
    """A conversation item as reported by the history view."""
    item_id: str
    role: Optional[Role]
    modality: Modality
    text: str = ""

    @classmethod
    def from_message(cls, message: Dict[str, Any]) -> "ConversationItemEvent":
        item = message.get("item") or {}
        role_str = item.get("role")
        if role_str == "user":
            role: Optional[Role] = Role.USER
        elif role_str == "assistant":
            role = Role.AGENT
        else:
            role = None

        modality = Modality.TEXT
        texts: List[str] = []
        for content in item.get("content") or []:
            if not isinstance(content, dict):
                continue
            content_type = content.get("type", "")
            if content_type in ("input_audio", "output_audio", "audio"):
                modality = Modality.AUDIO
                value = content.get("transcript")
            else:
                value = content.get("text")
            if isinstance(value, str) and value.strip():
                texts.append(value.strip())

        return cls(
            item_id=item.get("id") or message.get("item_id") or "",
            role=role,
            modality=modality,
            text=" ".join(texts),
        )


@dataclass
class ResponseEvent:
    """response.created / response.done."""
    response_id: str
    status: str = ""

    @classmethod
    def from_message(cls, message: Dict[str, Any]) -> "ResponseEvent":
        response = message.get("response") or {}
        return cls(
            response_id=response.get("id") or message.get("response_id") or "",
            status=response.get("status") or "",
        )


@dataclass
class AudioDeltaEvent:
    """Agent audio fragment (PCM16 mono 24 kHz)."""
    response_id: str
    item_id: str
    payload: bytes

    @property
    def length(self) -> int:
        return len(self.payload)

    @classmethod
    def from_message(cls, message: Dict[str, Any]) -> "AudioDeltaEvent":
        delta = message.get("delta") or message.get("audio") or ""
        payload = b64decode_audio(delta) if isinstance(delta, str) else b""
        return cls(
            response_id=message.get("response_id") or "",
            item_id=message.get("item_id") or "",
            payload=payload,
        )


@dataclass
class AudioTranscriptEvent:
    """Agent audio transcript (final)."""
    response_id: str
    item_id: str
    transcript: str

    @classmethod
    def from_message(cls, message: Dict[str, Any]) -> "AudioTranscriptEvent":
        transcript = message.get("transcript")
        return cls(
            response_id=message.get("response_id") or "",
            item_id=message.get("item_id") or "",
            transcript=transcript if isinstance(transcript, str) else "",
        )


@dataclass
class ErrorEvent:
    code: str
    message: str = ""
    error_type: str = ""
    event_id: str = ""
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_benign(self) -> bool:
        return self.code in BENIGN_ERROR_CODES

    @classmethod
    def from_message(cls, message: Dict[str, Any]) -> "ErrorEvent":
        error = message.get("error") or {}
        return cls(
            code=error.get("code") or "",
            message=error.get("message") or "",
            error_type=error.get("type") or "",
            event_id=error.get("event_id") or "",
            details=error,
        )


def parse_realtime_event(raw_message: Any) -> Tuple[RealtimeEventType, Any]:
    """
    Parse a raw Realtime server event.

    Args:
        raw_message: Raw JSON text or bytes from the websocket

    Returns:
        Tuple of (event_type, parsed_event). Event types the controller does not
        handle come back as (UNKNOWN, raw dict).

    Raises:
        ValueError: If message cannot be parsed
    """
    try:
        message = decoder.decode(raw_message.encode("utf-8") if isinstance(raw_message, str) else raw_message)
    except msgspec.DecodeError as e:
        raise ValueError(f"Invalid JSON: {e}")

    if not isinstance(message, dict):
        raise ValueError("Realtime event is not a JSON object")

    type_str = message.get("type", "")
    event_type = _ALIASES.get(type_str)
    if event_type is None:
        try:
            event_type = RealtimeEventType(type_str)
        except ValueError:
            return RealtimeEventType.UNKNOWN, message

    if event_type in (RealtimeEventType.SPEECH_STARTED, RealtimeEventType.SPEECH_STOPPED):
        return event_type, SpeechEvent.from_message(message)
    if event_type == RealtimeEventType.INPUT_TRANSCRIPTION_DELTA:
        return event_type, InputTranscriptionEvent.from_message(message, is_final=False)
    if event_type == RealtimeEventType.INPUT_TRANSCRIPTION_COMPLETED:
        return event_type, InputTranscriptionEvent.from_message(message, is_final=True)
    if event_type in (
        RealtimeEventType.ITEM_CREATED,
        RealtimeEventType.ITEM_ADDED,
        RealtimeEventType.ITEM_DONE,
    ):
        return event_type, ConversationItemEvent.from_message(message)
    if event_type in (RealtimeEventType.RESPONSE_CREATED, RealtimeEventType.RESPONSE_DONE):
        return event_type, ResponseEvent.from_message(message)
    if event_type == RealtimeEventType.AUDIO_DELTA:
        return event_type, AudioDeltaEvent.from_message(message)
    if event_type == RealtimeEventType.AUDIO_TRANSCRIPT_DONE:
        return event_type, AudioTranscriptEvent.from_message(message)
    if event_type == RealtimeEventType.ERROR:
        return event_type, ErrorEvent.from_message(message)
    return event_type, message


def encode_event(message: Dict[str, Any]) -> str:
    return encoder.encode(message).decode("utf-8")


def create_session_configure(config, instructions: str = "") -> Dict[str, Any]:
    """
    Session configuration for silent listening.

    Text-only output, transcription on, server VAD without auto-response so the
    model never speaks unless a trigger asks it to.
    """
    transcription: Dict[str, Any] = {"model": config.openai_transcription_model}
    if config.transcription_language:
        transcription["language"] = config.transcription_language

    session: Dict[str, Any] = {
        "type": "realtime",
        "output_modalities": [Modality.TEXT.value],
        "audio": {
            "input": {
                "format": {"type": "audio/pcm", "rate": PCM_SAMPLE_RATE},
                "transcription": transcription,
                "turn_detection": {
                    "type": "server_vad",
                    "create_response": False,
                    "interrupt_response": False,
                },
            },
            "output": {
                "format": {"type": "audio/pcm", "rate": PCM_SAMPLE_RATE},
                "voice": config.openai_realtime_voice,
            },
        },
    }
    if instructions:
        session["instructions"] = instructions

    return {"type": "session.update", "session": session}


def create_output_modality_update(modality: Modality) -> Dict[str, Any]:
    return {
        "type": "session.update",
        "session": {
            "type": "realtime",
            "output_modalities": [modality.value],
        },
    }


def render_context(context: Sequence[str]) -> str:
    if not context:
        return ""
    lines = "\n".join(f"- {utterance}" for utterance in context)
    return f"Recent conversation (oldest first):\n{lines}"


def create_response_create(instructions: str, context: Sequence[str] = ()) -> Dict[str, Any]:
    text = instructions.strip()
    context_block = render_context(context)
    if context_block:
        text = f"{text}\n\n{context_block}"
    return {
        "type": "response.create",
        "response": {"instructions": text},
    }


def create_response_cancel() -> Dict[str, Any]:
    return {"type": "response.cancel"}


def create_audio_append(pcm_bytes: bytes) -> Dict[str, Any]:
    return {
        "type": "input_audio_buffer.append",
        "audio": b64encode_audio(pcm_bytes),
    }


def create_audio_commit() -> Dict[str, Any]:
    return {"type": "input_audio_buffer.commit"}
