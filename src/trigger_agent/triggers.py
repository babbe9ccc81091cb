"""
Trigger and interrupt phrase detection.

Pure functions over a resolved user transcript. Matching is case-insensitive
substring containment; interim transcripts are never passed in here.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import re
import unicodedata
from typing import Iterable, Optional, Sequence, Tuple

from src.trigger_agent.models import TriggerKind


def normalize(text: str) -> str:
    text = (text or "").strip().casefold()
    text = text.replace("’", "'")
    text = unicodedata.normalize("NFKD", text)
    text = "".join(ch for ch in text if not unicodedata.combining(ch))
    text = re.sub(r"\s+", " ", text)
    return text


@dataclass(frozen=True)
class TriggerPhrase:
    """A configured trigger phrase, its kind and advisory spoken duration."""
    kind: TriggerKind
    phrase: str
    duration_seconds: int


class DetectionAction(str, Enum):
    NONE = "none"
    INTERRUPT = "interrupt"
    TRIGGER = "trigger"
    IGNORED = "ignored"  # trigger matched while a response is in flight


@dataclass(frozen=True)
class Detection:
    action: DetectionAction
    phrase: str = ""
    trigger: Optional[TriggerPhrase] = None


NO_DETECTION = Detection(action=DetectionAction.NONE)


def match_interrupt(text: str, phrases: Iterable[str]) -> Optional[str]:
    """Return the first interrupt phrase contained in `text`, if any."""
    normalized = normalize(text)
    if not normalized:
        return None
    for phrase in phrases:
        needle = normalize(phrase)
        if needle and needle in normalized:
            return phrase
    return None


def match_trigger(text: str, triggers: Sequence[TriggerPhrase]) -> Optional[TriggerPhrase]:
    """
    Return the first trigger (in priority order) whose phrase is contained in `text`.

    A turn can fire at most one trigger.
    """
    normalized = normalize(text)
    if not normalized:
        return None
    for trigger in triggers:
        needle = normalize(trigger.phrase)
        if needle and needle in normalized:
            return trigger
    return None


def detect(
    text: str,
    triggers: Sequence[TriggerPhrase],
    interrupt_phrases: Iterable[str],
    *,
    busy: bool,
    audible: bool = False,
) -> Detection:
    """
    Classify a resolved user transcript.

    Interrupt phrases are checked first. While a response is in flight, or its
    audio is still audible, an interrupt match wins and trigger matching is
    skipped. A trigger match while busy is reported as IGNORED (never queued).
    """
    if busy or audible:
        phrase = match_interrupt(text, interrupt_phrases)
        if phrase is not None:
            return Detection(action=DetectionAction.INTERRUPT, phrase=phrase)

    trigger = match_trigger(text, triggers)
    if trigger is None:
        return NO_DETECTION
    if busy:
        return Detection(action=DetectionAction.IGNORED, phrase=trigger.phrase, trigger=trigger)
    return Detection(action=DetectionAction.TRIGGER, phrase=trigger.phrase, trigger=trigger)


def triggers_from_config(config) -> Tuple[TriggerPhrase, ...]:
    """Build the trigger list in priority order (short hint first)."""
    return (
        TriggerPhrase(
            kind=TriggerKind.SHORT_HINT,
            phrase=config.quick_hint_phrase,
            duration_seconds=config.quick_hint_duration_seconds,
        ),
        TriggerPhrase(
            kind=TriggerKind.FULL_GUIDANCE,
            phrase=config.full_guidance_phrase,
            duration_seconds=config.full_guidance_duration_seconds,
        ),
    )
