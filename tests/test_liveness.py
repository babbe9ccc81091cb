"""
Tests for playback liveness tracking.
"""

import asyncio

import pytest

from src.trigger_agent.liveness import PlaybackLiveness


def test_mark_and_clear():
    changes = []
    liveness = PlaybackLiveness(on_change=changes.append)

    liveness.mark_playing()
    liveness.mark_playing()
    assert liveness.is_playing is True

    liveness.clear()
    assert liveness.is_playing is False
    assert changes == [True, False]


def test_schedule_clear_when_not_playing_is_noop():
    liveness = PlaybackLiveness()
    liveness.schedule_clear(5.0)
    assert liveness.clear_pending is False


def test_zero_grace_clears_immediately():
    liveness = PlaybackLiveness()
    liveness.mark_playing()
    liveness.schedule_clear(0)
    assert liveness.is_playing is False


@pytest.mark.asyncio
async def test_flag_outlives_response_for_grace_interval():
    liveness = PlaybackLiveness()
    liveness.mark_playing()
    liveness.schedule_clear(0.05)

    await asyncio.sleep(0.01)
    assert liveness.is_playing is True
    assert liveness.clear_pending is True

    await asyncio.sleep(0.1)
    assert liveness.is_playing is False
    assert liveness.clear_pending is False


@pytest.mark.asyncio
async def test_new_audio_cancels_pending_clear():
    liveness = PlaybackLiveness()
    liveness.mark_playing()
    liveness.schedule_clear(0.03)
    liveness.mark_playing()

    await asyncio.sleep(0.08)
    assert liveness.is_playing is True


@pytest.mark.asyncio
async def test_clear_cancels_timer():
    changes = []
    liveness = PlaybackLiveness(on_change=changes.append)
    liveness.mark_playing()
    liveness.schedule_clear(0.03)
    liveness.clear()

    await asyncio.sleep(0.08)
    assert liveness.is_playing is False
    assert changes == [True, False]


@pytest.mark.asyncio
async def test_clear_waits_for_queued_playback():
    liveness = PlaybackLiveness(pending_seconds=lambda: 0.1)
    liveness.mark_playing()
    liveness.schedule_clear(0.02)

    await asyncio.sleep(0.06)
    assert liveness.is_playing is True

    await asyncio.sleep(0.1)
    assert liveness.is_playing is False


@pytest.mark.asyncio
async def test_clear_rearms_while_sink_still_draining():
    remaining = [0.05]
    liveness = PlaybackLiveness(pending_seconds=lambda: remaining[0])
    liveness.mark_playing()
    liveness.schedule_clear(0.01)

    # Timer fires while the sink still reports queued audio.
    await asyncio.sleep(0.02)
    remaining[0] = 0.1
    await asyncio.sleep(0.06)
    assert liveness.is_playing is True
    assert liveness.clear_pending is True

    remaining[0] = 0.0
    await asyncio.sleep(0.2)
    assert liveness.is_playing is False
