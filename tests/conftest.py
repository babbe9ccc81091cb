"""
Pytest configuration and fixtures.
"""

import os
from typing import Any, Dict, List, Tuple
from unittest.mock import patch

import pytest

from src.trigger_agent.config import Config
from src.trigger_agent.realtime_protocol import create_audio_append


@pytest.fixture(autouse=True)
def mock_env_vars():
    """Mock environment variables for tests."""
    env_vars = {
        "PORT": "7860",
        "LOG_LEVEL": "DEBUG",
        "OPENAI_API_KEY": "test_openai_key",
        "OPENAI_REALTIME_MODEL": "gpt-realtime",
        "QUICK_HINT_PHRASE": "good question",
        "FULL_GUIDANCE_PHRASE": "let me think",
        "INTERRUPT_PHRASES": "got it",
    }

    with patch.dict(os.environ, env_vars):
        # Clear config cache
        from src.trigger_agent.config import get_config
        get_config.cache_clear()
        yield
        get_config.cache_clear()


class RecordingTransport:
    """Command sink that records everything the session emits."""

    def __init__(self) -> None:
        self.commands: List[Dict[str, Any]] = []
        self.audio: List[bytes] = []
        self.on_event = None
        self.on_closed = None
        self.connected = False

    async def connect(self) -> None:
        self.connected = True

    async def close(self) -> None:
        self.connected = False

    def send_command(self, message: Dict[str, Any]) -> None:
        self.commands.append(message)

    def send_audio(self, pcm_bytes: bytes) -> None:
        # Same queue as commands, like the realtime transport.
        self.audio.append(pcm_bytes)
        self.commands.append(create_audio_append(pcm_bytes))

    @property
    def types(self) -> List[str]:
        return [c["type"] for c in self.commands]

    def modalities(self) -> List[str]:
        """Output modality of every session.update switch, in order."""
        return [
            c["session"]["output_modalities"][0]
            for c in self.commands
            if c["type"] == "session.update" and "audio" not in c["session"]
        ]

    def clear(self) -> None:
        self.commands.clear()


class RecordingSink:
    """Playback sink that records enqueue / stop calls."""

    def __init__(self) -> None:
        self.fragments: List[Tuple[bytes, str]] = []
        self.stops = 0
        self.pending_seconds = 0.0

    def enqueue(self, fragment: bytes, turn_id: str) -> None:
        self.fragments.append((fragment, turn_id))

    def stop_and_discard(self) -> None:
        self.stops += 1
        self.fragments.clear()


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def config():
    """Config with short timers so tests run fast."""
    return Config(
        openai_api_key="test_openai_key",
        playback_grace_seconds=0.05,
        response_create_delay_ms=0,
    )


@pytest.fixture
def deferred_config():
    """Config that keeps the modality-switch -> response-create deferral."""
    return Config(
        openai_api_key="test_openai_key",
        playback_grace_seconds=0.05,
        response_create_delay_ms=20,
    )


@pytest.fixture
def sample_pcm_audio():
    """Sample PCM audio (silence), 20ms at 24kHz."""
    return b"\x00\x00" * 480
