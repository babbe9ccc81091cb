"""
Core types shared by the session controller.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple


class Mode(str, Enum):
    LISTENING = "listening"
    GENERATING = "generating"
    SPEAKING = "speaking"


class Role(str, Enum):
    USER = "user"
    AGENT = "agent"


class Modality(str, Enum):
    TEXT = "text"
    AUDIO = "audio"


class TriggerKind(str, Enum):
    SHORT_HINT = "short_hint"
    FULL_GUIDANCE = "full_guidance"


class TransitionCause(str, Enum):
    TRIGGER_FIRED = "trigger-fired"
    RESPONSE_STARTED = "response-started"
    RESPONSE_FINISHED = "response-finished"
    INTERRUPT = "interrupt"


BUSY_MODES = frozenset({Mode.GENERATING, Mode.SPEAKING})


@dataclass
class Turn:
    """One user or agent conversational unit, keyed by the remote item id."""
    turn_id: str
    role: Role
    modality: Modality
    transcript: Optional[str] = None

    def observe_transcript(self, text: Optional[str]) -> bool:
        """
        Record a transcript observation.

        Last non-empty wins: an empty observation never replaces a non-empty
        transcript. Returns True if the stored transcript changed.
        """
        if not text or not text.strip():
            return False
        if text == self.transcript:
            return False
        self.transcript = text
        return True


@dataclass(frozen=True)
class TriggerEvent:
    """A trigger decision, consumed immediately by the coordinator."""
    turn_id: Optional[str]
    kind: TriggerKind
    phrase: str
    context: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ModeTransition:
    from_mode: Mode
    to_mode: Mode
    cause: TransitionCause
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True)
class TranscriptItem:
    """Read-only transcript row exposed to the UI."""
    id: str
    role: Role
    text: str

    def to_dict(self) -> dict:
        return {"id": self.id, "role": self.role.value, "text": self.text}
