"""
Tests for the paced playback sink.
"""

import asyncio
import json
from unittest.mock import AsyncMock

import pytest

from src.trigger_agent.audio import PCM_FRAME_SIZE
from src.trigger_agent.playback import PacedPlaybackSink


def _events(send):
    return [json.loads(call.args[0])["event"] for call in send.await_args_list]


@pytest.mark.asyncio
async def test_enqueue_before_start_is_dropped():
    send = AsyncMock()
    sink = PacedPlaybackSink(send)

    sink.enqueue(b"\x00" * PCM_FRAME_SIZE, "item_1")
    assert sink.queued == 0


@pytest.mark.asyncio
async def test_fragment_is_framed_and_sent():
    send = AsyncMock()
    sink = PacedPlaybackSink(send)
    await sink.start()

    sink.enqueue(b"\x00" * (PCM_FRAME_SIZE * 2 + 10), "item_1")
    assert sink.queued == 3

    await asyncio.sleep(0.1)
    assert _events(send) == ["audio", "audio", "audio"]
    first = json.loads(send.await_args_list[0].args[0])
    assert first["turnId"] == "item_1"

    await sink.stop()
    assert sink.is_running is False


@pytest.mark.asyncio
async def test_stop_and_discard_keeps_control_messages():
    send = AsyncMock()
    sink = PacedPlaybackSink(send)
    await sink.start()

    # Nothing is consumed until the pacer task gets a turn.
    sink.enqueue(b"\x00" * PCM_FRAME_SIZE * 5, "item_1")
    sink.send_control('{"event": "status"}')
    sink.stop_and_discard()

    assert sink.pending_seconds == 0
    await asyncio.sleep(0.05)
    assert _events(send) == ["status", "clear"]

    await sink.stop()


@pytest.mark.asyncio
async def test_frames_are_paced_in_real_time():
    send = AsyncMock()
    sink = PacedPlaybackSink(send)
    await sink.start()

    # 10 frames = 200ms of audio
    sink.enqueue(b"\x00" * PCM_FRAME_SIZE * 10, "item_1")
    await asyncio.sleep(0.05)

    assert 0 < send.await_count < 10

    await sink.stop()


@pytest.mark.asyncio
async def test_send_failure_does_not_kill_start_stop():
    send = AsyncMock(side_effect=RuntimeError("socket gone"))
    sink = PacedPlaybackSink(send)
    await sink.start()

    sink.send_control('{"event": "status"}')
    await asyncio.sleep(0.02)
    await sink.stop()

    assert sink.is_running is False


@pytest.mark.asyncio
async def test_control_messages_skip_queued_audio():
    send = AsyncMock()
    sink = PacedPlaybackSink(send)
    await sink.start()

    # 50 frames = 1s of audio ahead of the status message
    sink.enqueue(b"\x00" * PCM_FRAME_SIZE * 50, "item_1")
    await asyncio.sleep(0.03)
    sink.send_control('{"event": "status"}')
    await asyncio.sleep(0.03)

    events = _events(send)
    assert "status" in events
    assert events.count("audio") < 10

    await sink.stop()


@pytest.mark.asyncio
async def test_pending_seconds_tracks_queued_audio():
    send = AsyncMock()
    sink = PacedPlaybackSink(send)
    assert sink.pending_seconds == 0

    await sink.start()
    sink.enqueue(b"\x00" * PCM_FRAME_SIZE * 50, "item_1")
    assert sink.pending_seconds == pytest.approx(1.0, abs=0.05)

    await asyncio.sleep(0.2)
    assert 0.6 < sink.pending_seconds < 0.95

    sink.stop_and_discard()
    assert sink.pending_seconds == 0

    await sink.stop()
