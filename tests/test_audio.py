"""
Tests for PCM framing utilities.
"""

import numpy as np

from src.trigger_agent.audio import (
    PCM_FRAME_SIZE,
    PCM_SAMPLE_RATE,
    b64decode_audio,
    b64encode_audio,
    chunk_audio,
    float32_to_pcm16,
    pcm_duration_ms,
)


class TestDuration:
    def test_empty(self):
        assert pcm_duration_ms(b"") == 0.0

    def test_one_frame(self):
        assert pcm_duration_ms(b"\x00" * PCM_FRAME_SIZE) == 20.0

    def test_one_second(self):
        assert pcm_duration_ms(b"\x00\x00" * PCM_SAMPLE_RATE) == 1000.0


class TestChunking:
    def test_exact_frames(self):
        chunks = list(chunk_audio(b"\x00" * PCM_FRAME_SIZE * 3))
        assert len(chunks) == 3
        assert all(len(c) == PCM_FRAME_SIZE for c in chunks)

    def test_short_tail_not_padded(self):
        chunks = list(chunk_audio(b"\x00" * (PCM_FRAME_SIZE + 100)))
        assert [len(c) for c in chunks] == [PCM_FRAME_SIZE, 100]

    def test_empty(self):
        assert list(chunk_audio(b"")) == []


class TestFloatConversion:
    def test_empty(self):
        assert float32_to_pcm16(b"") == b""

    def test_scaling_and_clipping(self):
        floats = np.array([0.0, 0.5, -1.0, 2.0], dtype="<f4").tobytes()
        samples = np.frombuffer(float32_to_pcm16(floats), dtype="<i2")

        assert samples[0] == 0
        assert samples[1] == 16383
        assert samples[2] == -32767
        assert samples[3] == 32767

    def test_trailing_partial_sample_dropped(self):
        floats = np.zeros(2, dtype="<f4").tobytes() + b"\x00"
        assert len(float32_to_pcm16(floats)) == 4


class TestBase64:
    def test_encode_decode(self, sample_pcm_audio):
        assert b64decode_audio(b64encode_audio(sample_pcm_audio)) == sample_pcm_audio

    def test_bad_input(self):
        assert b64decode_audio("!!!") == b""
