"""
Client (UI) WebSocket protocol.

The client sends JSON messages with events:
- audio: microphone audio as base64 PCM16 (or float32) mono 24kHz
- trigger: manual trigger button, kind = short_hint | full_guidance
- interrupt: manual stop button
- stop: client is going away

Outbound messages:
- audio: agent audio frame as base64 PCM16 mono 24kHz
- clear: drop any buffered, unplayed agent audio
- status: current mode / playback / connection flags
- transcripts: the reconciled transcript list
- error: operator-facing error (UI shows an error state)
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, Tuple

import msgspec
import structlog

from src.trigger_agent.audio import b64decode_audio, b64encode_audio, float32_to_pcm16
from src.trigger_agent.models import Mode, TranscriptItem, TriggerKind

logger = structlog.get_logger(__name__)

decoder = msgspec.json.Decoder()
encoder = msgspec.json.Encoder()


class ClientEventType(str, Enum):
    """Client WebSocket event types."""
    AUDIO = "audio"
    TRIGGER = "trigger"
    INTERRUPT = "interrupt"
    STOP = "stop"


@dataclass
class ClientAudioEvent:
    """Parsed client audio event (always PCM16 after parsing)."""
    payload: bytes

    @classmethod
    def from_message(cls, message: Dict[str, Any]) -> "ClientAudioEvent":
        payload = b64decode_audio(message.get("audio", "") or "")
        if (message.get("format") or "pcm16") == "float32":
            payload = float32_to_pcm16(payload)
        return cls(payload=payload)


@dataclass
class ClientTriggerEvent:
    """Parsed manual trigger event."""
    kind: TriggerKind

    @classmethod
    def from_message(cls, message: Dict[str, Any]) -> "ClientTriggerEvent":
        kind_str = message.get("kind", "")
        try:
            kind = TriggerKind(kind_str)
        except ValueError:
            raise ValueError(f"Unknown trigger kind: {kind_str}")
        return cls(kind=kind)


def parse_client_message(raw_message: Any) -> Tuple[ClientEventType, Any]:
    """
    Parse a raw client WebSocket message.

    Args:
        raw_message: Raw JSON string from the client

    Returns:
        Tuple of (event_type, parsed_event)

    Raises:
        ValueError: If message cannot be parsed
    """
    try:
        message = decoder.decode(raw_message.encode("utf-8") if isinstance(raw_message, str) else raw_message)
    except msgspec.DecodeError as e:
        raise ValueError(f"Invalid JSON: {e}")

    if not isinstance(message, dict):
        raise ValueError("Client message is not a JSON object")

    event_type_str = message.get("event", "")

    try:
        event_type = ClientEventType(event_type_str)
    except ValueError:
        raise ValueError(f"Unknown event type: {event_type_str}")

    if event_type == ClientEventType.AUDIO:
        return event_type, ClientAudioEvent.from_message(message)
    elif event_type == ClientEventType.TRIGGER:
        return event_type, ClientTriggerEvent.from_message(message)
    else:
        return event_type, message


def _encode(message: Dict[str, Any]) -> str:
    return encoder.encode(message).decode("utf-8")


def create_audio_message(turn_id: str, audio_payload: bytes) -> str:
    return _encode({
        "event": "audio",
        "turnId": turn_id,
        "audio": b64encode_audio(audio_payload),
    })


def create_clear_message() -> str:
    return _encode({"event": "clear"})


def create_status_message(mode: Mode, *, playing: bool, connected: bool) -> str:
    return _encode({
        "event": "status",
        "mode": mode.value,
        "playing": playing,
        "connected": connected,
    })


def create_transcripts_message(items: Iterable[TranscriptItem]) -> str:
    return _encode({
        "event": "transcripts",
        "items": [item.to_dict() for item in items],
    })


def create_error_message(message: str, code: str = "") -> str:
    return _encode({
        "event": "error",
        "code": code,
        "message": message,
    })
