"""PCM conversion utilities (pure, numpy)."""

from __future__ import annotations

import math
from typing import Literal

import numpy as np

from constants import (
    AUDIO_SAMPLE_RATE_HZ,
    PCM16_NEGATIVE_SCALE,
    PCM16_POSITIVE_SCALE,
)

ResampleMethod = Literal["linear", "nearest"]


def resample_to_16k(
    block: np.ndarray,
    capture_rate: float,
    *,
    method: ResampleMethod = "linear",
) -> np.ndarray:
    """
    Decimate one capture block to 16 kHz.

    ratio r = capture_rate / 16000:
    - r <= 1: block returned unchanged (no upsampling, ever)
    - r > 1: output length is floor(len / r); sample i comes from source
      position i*r, either linearly interpolated between floor(i*r) and
      floor(i*r)+1 ("linear") or taken at floor(i*r) ("nearest").

    No state is carried between blocks.
    """
    samples = np.asarray(block, dtype=np.float32).reshape(-1)
    ratio = capture_rate / AUDIO_SAMPLE_RATE_HZ
    if ratio <= 1:
        return samples

    out_len = math.floor(len(samples) / ratio)
    src = np.arange(out_len, dtype=np.float64) * ratio
    idx = np.floor(src).astype(np.int64)

    if method == "nearest":
        return samples[idx]
    if method != "linear":
        raise ValueError(f"Unknown resample method: {method}")

    # Last source sample has no right neighbour; clamping makes it hold.
    nxt = np.minimum(idx + 1, len(samples) - 1)
    frac = (src - idx).astype(np.float32)
    return samples[idx] * (1.0 - frac) + samples[nxt] * frac


def float_to_pcm16(samples: np.ndarray) -> bytes:
    """
    Convert float samples to PCM16 little-endian bytes.

    Values are clamped to [-1, 1]; negatives scale by 32768 and
    non-negatives by 32767, so -1.0 -> -32768 and 1.0 -> 32767.
    """
    x = np.clip(np.asarray(samples, dtype=np.float64), -1.0, 1.0)
    scaled = np.where(x < 0, x * PCM16_NEGATIVE_SCALE, x * PCM16_POSITIVE_SCALE)
    return np.round(scaled).astype("<i2").tobytes()


def pcm16le_to_float32(pcm_bytes: bytes) -> np.ndarray:
    """
    Convert PCM16 little-endian mono bytes to float32 in [-1.0, 1.0).

    No resampling. No channel mixing.
    """
    if len(pcm_bytes) % 2 != 0:
        # Truncated sample; caller should treat as malformed frame upstream.
        pcm_bytes = pcm_bytes[: len(pcm_bytes) - 1]

    audio_i16 = np.frombuffer(pcm_bytes, dtype="<i2")
    return audio_i16.astype(np.float32) / PCM16_NEGATIVE_SCALE


def peak_level(pcm_bytes: bytes) -> float:
    """Peak absolute amplitude of a PCM16 chunk in [0, 1] (observability only)."""
    audio = pcm16le_to_float32(pcm_bytes)
    if audio.size == 0:
        return 0.0
    return float(np.max(np.abs(audio)))
