"""
Prompt text for the realtime model.

Session-level agent instructions come from the environment (inline text or a
prompt file) and fall back to a built-in default. Each trigger kind has its own
per-response instruction template.
"""

from __future__ import annotations

from pathlib import Path

import structlog

from src.trigger_agent.config import Config
from src.trigger_agent.models import TriggerKind

logger = structlog.get_logger(__name__)

_DEFAULT_MAX_PROMPT_CHARS = 40_000

DEFAULT_AGENT_INSTRUCTIONS = (
    "You are a helpful voice assistant. ALWAYS respond in English, regardless of the "
    "language used in the conversation.\n\n"
    "When asked to provide a hint or guidance, base your response on the recent "
    "conversation context.\n\n"
    "For quick hints ({QUICK_HINT_DURATION} seconds): Provide brief, actionable advice "
    "in 1-2 sentences.\n"
    "For full guidance ({FULL_GUIDANCE_DURATION} seconds): Provide comprehensive "
    "step-by-step explanations with context and examples.\n\n"
    "Always be concise, helpful, and base responses on what the user was discussing."
)

_TRIGGER_TEMPLATES = {
    TriggerKind.SHORT_HINT: (
        "RESPOND IN ENGLISH ONLY. Provide a quick hint (around {duration} seconds) based on "
        "the recent conversation context. Be brief and actionable, 1-2 sentences."
    ),
    TriggerKind.FULL_GUIDANCE: (
        "RESPOND IN ENGLISH ONLY. Provide full guidance (around {duration} seconds) based on "
        "the entire conversation context. Be comprehensive with steps and examples."
    ),
}


def _repo_root() -> Path:
    # src/trigger_agent/prompts.py -> repo root is ../../
    return Path(__file__).resolve().parents[2]


def _read_text_file(path: str, *, max_chars: int) -> str:
    if not path:
        return ""

    file_path = Path(path)
    if not file_path.is_absolute():
        file_path = _repo_root() / file_path

    try:
        content = file_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        logger.warning("Prompt file not found", path=str(file_path))
        return ""
    except UnicodeDecodeError:
        try:
            content = file_path.read_text(encoding="utf-8-sig")
        except Exception:
            logger.warning("Prompt file decode failed", path=str(file_path))
            return ""
    except Exception:
        logger.exception("Prompt file read failed", path=str(file_path))
        return ""

    content = content.strip()
    if not content:
        return ""

    if len(content) > max_chars:
        logger.warning("Prompt truncated (too long)", path=str(file_path), max_chars=max_chars)
        content = content[:max_chars]

    return content


def _apply_placeholders(prompt: str, config: Config) -> str:
    if not prompt:
        return ""

    replacements = {
        "{QUICK_HINT_DURATION}": str(config.quick_hint_duration_seconds),
        "{FULL_GUIDANCE_DURATION}": str(config.full_guidance_duration_seconds),
        "{QUICK_HINT_PHRASE}": config.quick_hint_phrase,
        "{FULL_GUIDANCE_PHRASE}": config.full_guidance_phrase,
    }
    for key, value in replacements.items():
        prompt = prompt.replace(key, value)

    return prompt


def resolve_agent_instructions(config: Config, *, max_chars: int = _DEFAULT_MAX_PROMPT_CHARS) -> str:
    """
    Session-level agent instructions: inline text, else file, else the default.

    Applies duration/phrase placeholder substitution.
    """
    prompt = (config.agent_instructions or "").strip()
    if not prompt:
        prompt = _read_text_file(config.agent_instructions_file, max_chars=max_chars)
    if not prompt:
        prompt = DEFAULT_AGENT_INSTRUCTIONS

    return _apply_placeholders(prompt, config)


def trigger_instructions(kind: TriggerKind, duration_seconds: int) -> str:
    """Per-response instruction text; the duration is advisory only."""
    return _TRIGGER_TEMPLATES[kind].format(duration=duration_seconds)
