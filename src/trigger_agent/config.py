"""
Configuration management for the trigger-phrase voice agent.

Loads environment variables and provides a strongly-typed configuration object.
Validates required keys at startup.
"""

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Tuple

from dotenv import load_dotenv
import structlog

load_dotenv()

logger = structlog.get_logger(__name__)

QUICK_HINT_DURATION_RANGE = (5, 60)
FULL_GUIDANCE_DURATION_RANGE = (5, 120)


class ConfigError(Exception):
    """Raised when configuration is invalid or missing."""
    pass


@dataclass(frozen=True)
class Config:
    """Strongly-typed configuration object."""

    # Server
    port: int = 7860
    log_level: str = "INFO"

    # OpenAI Realtime
    openai_api_key: str = ""
    openai_realtime_model: str = "gpt-realtime"
    openai_realtime_url: str = "wss://api.openai.com/v1/realtime"
    openai_realtime_voice: str = "alloy"
    openai_transcription_model: str = "gpt-4o-transcribe"
    transcription_language: str = "en"

    # Triggers
    # - quick hint is checked before full guidance when both phrases appear
    # - durations only shape the instruction text; nothing times out on them
    quick_hint_phrase: str = "good question"
    full_guidance_phrase: str = "let me think"
    interrupt_phrases: Tuple[str, ...] = ("got it",)
    quick_hint_duration_seconds: int = 10
    full_guidance_duration_seconds: int = 20

    # Agent instructions (inline text wins over file)
    agent_instructions: str = ""
    agent_instructions_file: str = ""

    # Timing
    playback_grace_seconds: float = 5.0
    response_create_delay_ms: int = 100

    # Context
    context_window_size: int = 10
    quick_hint_context_size: int = 3

    # Transport
    commit_on_speech_stop: bool = False

    @property
    def realtime_ws_url(self) -> str:
        """Get the WebSocket URL for the realtime model."""
        return f"{self.openai_realtime_url}?model={self.openai_realtime_model}"

    def validate(self) -> None:
        """Validate that all required configuration is present."""
        missing = []

        if not self.openai_api_key:
            missing.append("OPENAI_API_KEY")
        if not self.openai_realtime_model:
            missing.append("OPENAI_REALTIME_MODEL")
        if not self.quick_hint_phrase.strip():
            missing.append("QUICK_HINT_PHRASE")
        if not self.full_guidance_phrase.strip():
            missing.append("FULL_GUIDANCE_PHRASE")

        if missing:
            raise ConfigError(
                f"Missing required environment variables: {', '.join(missing)}\n"
                "Please check your .env file."
            )

        low, high = QUICK_HINT_DURATION_RANGE
        if not low <= self.quick_hint_duration_seconds <= high:
            raise ConfigError(
                f"QUICK_HINT_DURATION_SECONDS must be between {low} and {high}, "
                f"got {self.quick_hint_duration_seconds}"
            )

        low, high = FULL_GUIDANCE_DURATION_RANGE
        if not low <= self.full_guidance_duration_seconds <= high:
            raise ConfigError(
                f"FULL_GUIDANCE_DURATION_SECONDS must be between {low} and {high}, "
                f"got {self.full_guidance_duration_seconds}"
            )

        if self.playback_grace_seconds < 0:
            raise ConfigError("PLAYBACK_GRACE_SECONDS must not be negative")
        if self.response_create_delay_ms < 0:
            raise ConfigError("RESPONSE_CREATE_DELAY_MS must not be negative")
        if self.context_window_size < 1:
            raise ConfigError("CONTEXT_WINDOW_SIZE must be at least 1")
        if not 1 <= self.quick_hint_context_size <= self.context_window_size:
            raise ConfigError(
                "QUICK_HINT_CONTEXT_SIZE must be between 1 and CONTEXT_WINDOW_SIZE"
            )

    def log_config(self) -> None:
        """Log configuration (without secrets)."""
        logger.info(
            "Configuration loaded",
            port=self.port,
            log_level=self.log_level,
            realtime_model=self.openai_realtime_model,
            realtime_voice=self.openai_realtime_voice,
            transcription_model=self.openai_transcription_model,
            transcription_language=self.transcription_language,
            quick_hint_phrase=self.quick_hint_phrase,
            full_guidance_phrase=self.full_guidance_phrase,
            interrupt_phrases=list(self.interrupt_phrases),
            quick_hint_duration_seconds=self.quick_hint_duration_seconds,
            full_guidance_duration_seconds=self.full_guidance_duration_seconds,
            playback_grace_seconds=self.playback_grace_seconds,
            response_create_delay_ms=self.response_create_delay_ms,
            context_window_size=self.context_window_size,
            commit_on_speech_stop=self.commit_on_speech_stop,
            openai_key_set=bool(self.openai_api_key),
        )


def _get_bool(key: str, default: bool = False) -> bool:
    """Get a boolean from environment variable."""
    value = os.getenv(key, str(default)).lower()
    return value in ("true", "1", "yes", "on")


def _get_int(key: str, default: int) -> int:
    """Get an integer from environment variable."""
    try:
        return int(os.getenv(key, str(default)))
    except ValueError:
        return default


def _get_float(key: str, default: float) -> float:
    """Get a float from environment variable."""
    try:
        return float(os.getenv(key, str(default)))
    except ValueError:
        return default


def _get_list(key: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
    """Get a comma-separated list from environment variable."""
    raw = os.getenv(key)
    if raw is None:
        return default
    return tuple(part.strip() for part in raw.split(",") if part.strip())


@lru_cache(maxsize=1)
def get_config() -> Config:
    """
    Get the application configuration.

    Uses lru_cache to ensure we only load config once.
    """
    config = Config(
        # Server
        port=_get_int("PORT", 7860),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),

        # OpenAI Realtime
        openai_api_key=os.getenv("OPENAI_API_KEY", ""),
        openai_realtime_model=os.getenv("OPENAI_REALTIME_MODEL", "gpt-realtime"),
        openai_realtime_url=os.getenv("OPENAI_REALTIME_URL", "wss://api.openai.com/v1/realtime"),
        openai_realtime_voice=os.getenv("OPENAI_REALTIME_VOICE", "alloy"),
        openai_transcription_model=os.getenv("OPENAI_TRANSCRIPTION_MODEL", "gpt-4o-transcribe"),
        transcription_language=os.getenv("TRANSCRIPTION_LANGUAGE", "en"),

        # Triggers
        quick_hint_phrase=os.getenv("QUICK_HINT_PHRASE", "good question"),
        full_guidance_phrase=os.getenv("FULL_GUIDANCE_PHRASE", "let me think"),
        interrupt_phrases=_get_list("INTERRUPT_PHRASES", ("got it",)),
        quick_hint_duration_seconds=_get_int("QUICK_HINT_DURATION_SECONDS", 10),
        full_guidance_duration_seconds=_get_int("FULL_GUIDANCE_DURATION_SECONDS", 20),

        # Agent instructions
        agent_instructions=os.getenv("AGENT_INSTRUCTIONS", ""),
        agent_instructions_file=os.getenv("AGENT_INSTRUCTIONS_FILE", ""),

        # Timing
        playback_grace_seconds=_get_float("PLAYBACK_GRACE_SECONDS", 5.0),
        response_create_delay_ms=_get_int("RESPONSE_CREATE_DELAY_MS", 100),

        # Context
        context_window_size=_get_int("CONTEXT_WINDOW_SIZE", 10),
        quick_hint_context_size=_get_int("QUICK_HINT_CONTEXT_SIZE", 3),

        # Transport
        commit_on_speech_stop=_get_bool("COMMIT_ON_SPEECH_STOP", False),
    )

    return config


def init_config() -> Config:
    """
    Initialize and validate configuration.

    Call this at application startup to fail fast if config is invalid.
    """
    config = get_config()
    config.validate()
    config.log_config()
    return config
