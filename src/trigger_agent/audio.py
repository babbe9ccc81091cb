"""
PCM framing utilities.

The realtime model and the browser client both use 24 kHz, 16-bit, mono PCM,
so the only work here is framing, duration math and float32 -> int16 conversion
for clients that capture Web Audio floats.
"""

import base64
from typing import Generator

import numpy as np

PCM_SAMPLE_RATE = 24000
PCM_SAMPLE_WIDTH = 2  # 16-bit
FRAME_DURATION_MS = 20
PCM_FRAME_SIZE = int(PCM_SAMPLE_RATE * PCM_SAMPLE_WIDTH * FRAME_DURATION_MS / 1000)  # 960 bytes for 20ms


def pcm_duration_ms(pcm_bytes: bytes) -> float:
    """
    Playback duration of 16-bit mono PCM at 24 kHz.

    Args:
        pcm_bytes: Raw PCM bytes

    Returns:
        Duration in milliseconds
    """
    if not pcm_bytes:
        return 0.0
    samples = len(pcm_bytes) // PCM_SAMPLE_WIDTH
    return samples * 1000.0 / PCM_SAMPLE_RATE


def chunk_audio(audio_bytes: bytes, chunk_size: int = PCM_FRAME_SIZE) -> Generator[bytes, None, None]:
    """
    Chunk audio into fixed-size frames.

    The last frame may be shorter; it is not padded (the client plays PCM as-is).
    Odd trailing bytes are never split across frames since chunk_size is even.

    Args:
        audio_bytes: Raw audio bytes
        chunk_size: Size of each chunk in bytes (default: 960 for 20ms)

    Yields:
        Audio chunks of at most chunk_size bytes
    """
    for i in range(0, len(audio_bytes), chunk_size):
        yield audio_bytes[i:i + chunk_size]


def float32_to_pcm16(float_bytes: bytes) -> bytes:
    """
    Convert little-endian float32 samples in [-1, 1] to 16-bit PCM.

    Args:
        float_bytes: Raw float32 sample bytes

    Returns:
        PCM 16-bit bytes
    """
    if not float_bytes:
        return b""
    usable = len(float_bytes) - (len(float_bytes) % 4)
    samples = np.frombuffer(float_bytes[:usable], dtype="<f4")
    samples = np.clip(samples * 32767, -32768, 32767).astype("<i2")
    return samples.tobytes()


def b64encode_audio(data: bytes) -> str:
    return base64.b64encode(data).decode("utf-8")


def b64decode_audio(data: str) -> bytes:
    try:
        return base64.b64decode(data)
    except Exception:
        return b""
