"""
Transcript cache and conversation history reconciliation.

The remote side can report a turn's content and its final transcript as separate,
out-of-order events. Everything that needs a stable text for a turn (UI list,
trigger matching, response context) goes through `TranscriptCache.resolve()`.
"""

from __future__ import annotations

from collections import deque
from typing import Deque, Dict, List, Optional, Tuple

import structlog

from src.trigger_agent.models import Modality, Role, TranscriptItem, Turn

logger = structlog.get_logger(__name__)


def _has_text(text: Optional[str]) -> bool:
    return bool(text and text.strip())


class TranscriptCache:
    """
    Side table of turn id -> transcript text.

    Values are monotonic: an empty value never overwrites a cached non-empty one,
    a different non-empty value does. Entries live for the whole session.
    """

    def __init__(self) -> None:
        self._entries: Dict[str, str] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, turn_id: object) -> bool:
        return turn_id in self._entries

    def get(self, turn_id: str) -> str:
        return self._entries.get(turn_id, "")

    def update(self, turn_id: str, text: Optional[str]) -> bool:
        """Store `text` for `turn_id`. Returns True if the cached value changed."""
        if not turn_id or not _has_text(text):
            return False
        if self._entries.get(turn_id) == text:
            return False
        self._entries[turn_id] = text  # type: ignore[assignment]
        return True

    def resolve(self, turn_id: str, candidate: Optional[str] = None) -> str:
        """
        Stable text for a turn.

        Prefer the value carried on the latest content-bearing event, else the
        cached value, else "". A non-empty candidate is cached as a side effect.
        """
        if _has_text(candidate):
            self.update(turn_id, candidate)
            return candidate  # type: ignore[return-value]
        return self.get(turn_id)


class ConversationHistory:
    """Ordered registry of turns, reconciled through a `TranscriptCache`."""

    def __init__(self, cache: TranscriptCache) -> None:
        self._cache = cache
        self._turns: Dict[str, Turn] = {}

    def __len__(self) -> int:
        return len(self._turns)

    def get(self, turn_id: str) -> Optional[Turn]:
        return self._turns.get(turn_id)

    def observe(
        self,
        turn_id: str,
        role: Role,
        modality: Modality,
        transcript: Optional[str] = None,
    ) -> bool:
        """
        Register a turn (if new) and reconcile its transcript.

        Returns True if anything visible changed (new turn or new text).
        """
        if not turn_id:
            return False

        turn = self._turns.get(turn_id)
        created = turn is None
        if turn is None:
            turn = Turn(turn_id=turn_id, role=role, modality=modality)
            self._turns[turn_id] = turn
        elif modality == Modality.AUDIO and turn.modality != Modality.AUDIO:
            turn.modality = modality

        text = self._cache.resolve(turn_id, transcript)
        changed = turn.observe_transcript(text)
        return created or changed

    def items(self) -> List[TranscriptItem]:
        """Transcript rows for turns with resolved text, in creation order."""
        rows: List[TranscriptItem] = []
        for turn in self._turns.values():
            text = turn.transcript or self._cache.get(turn.turn_id)
            if _has_text(text):
                rows.append(TranscriptItem(id=turn.turn_id, role=turn.role, text=text))
        return rows


class UtteranceWindow:
    """Rolling window of recent resolved user utterances (response context)."""

    def __init__(self, size: int = 10) -> None:
        self._items: Deque[str] = deque(maxlen=max(1, size))

    def __len__(self) -> int:
        return len(self._items)

    def append(self, text: str) -> None:
        if _has_text(text):
            self._items.append(text.strip())

    def recent(self, count: int) -> Tuple[str, ...]:
        if count <= 0:
            return ()
        return tuple(self._items)[-count:]

    def all(self) -> Tuple[str, ...]:
        return tuple(self._items)
