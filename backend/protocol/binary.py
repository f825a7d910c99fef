# backend/protocol/binary.py
"""
Binary framing for STT audio chunks.

Client → Server (mic):
    4 bytes  seq_num (u32, little-endian)
    N bytes  PCM16 audio (N > 0, N even)

Chunk size follows the capture block, so N varies with the device rate
(1024 samples @ 48 kHz -> 341 samples -> 682 bytes).

Usage example:

    frame = decode_audio_chunk(payload, ts_ms=now_ms)

    result = check_sequence_gap(last_seq=prev_seq, current_seq=frame.sequence_num)
    if result.gap:
        log_event({
            "event_type": "SEQ_GAP_DETECTED",
            "expected": result.expected,
            "actual": result.actual,
            "gap_size": result.gap_size,
        })
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import Optional

from audio.frames import AudioFrame
from constants import (
    AUDIO_SAMPLE_WIDTH_BYTES,
    C2S_SEQ_NUM_BYTES,
    SEQ_NUM_START,
    SEQ_NUM_MAX,
)


# -------------------------
# Exceptions
# -------------------------

class BinaryProtocolError(Exception):
    """Base class for binary protocol errors."""


class InvalidFrameLength(BinaryProtocolError):
    """
    Raised when an audio chunk is empty, truncated or not sample-aligned.

    The chunk is unsafe to forward to the recognizer and must be dropped.
    """


class InvalidSequenceNumber(BinaryProtocolError):
    """
    Raised when a sequence number is outside the valid range.

    Indicates a protocol violation that would break ordering or gap detection.
    """


# -------------------------
# Low-level helpers
# -------------------------

def _u32_le(value: int) -> bytes:
    return struct.pack("<I", value)


def _read_u32_le(buf: bytes, offset: int = 0) -> int:
    return struct.unpack_from("<I", buf, offset)[0]


def next_seq(prev: int) -> int:
    """Sequence number following `prev`, with u32 wraparound."""
    if prev >= SEQ_NUM_MAX:
        return SEQ_NUM_START
    return prev + 1


def is_seq_next(prev: int, current: int) -> bool:
    """
    Return True if `current` is the expected next sequence number
    after `prev`, accounting for wraparound.
    """
    return current == next_seq(prev)


def _validate_pcm(pcm_bytes: bytes) -> None:
    if not pcm_bytes:
        raise InvalidFrameLength("PCM payload is empty")
    if len(pcm_bytes) % AUDIO_SAMPLE_WIDTH_BYTES != 0:
        raise InvalidFrameLength(
            f"PCM length {len(pcm_bytes)} is not a multiple of {AUDIO_SAMPLE_WIDTH_BYTES}"
        )


# -------------------------
# Client → Server (mic)
# -------------------------

def encode_audio_chunk(*, sequence_num: int, pcm_bytes: bytes) -> bytes:
    """Encode one PCM16 chunk for the wire."""
    if sequence_num < SEQ_NUM_START or sequence_num > SEQ_NUM_MAX:
        raise InvalidSequenceNumber(f"Invalid seq_num: {sequence_num}")

    _validate_pcm(pcm_bytes)

    return _u32_le(sequence_num) + pcm_bytes


def decode_audio_chunk(payload: bytes, *, ts_ms: int) -> AudioFrame:
    """Decode a client→server audio chunk."""
    if len(payload) <= C2S_SEQ_NUM_BYTES:
        raise InvalidFrameLength(
            f"Chunk length {len(payload)} leaves no PCM after the header"
        )

    seq = _read_u32_le(payload, 0)

    if seq < SEQ_NUM_START:
        raise InvalidSequenceNumber(f"Invalid seq_num: {seq}")

    pcm_bytes = payload[C2S_SEQ_NUM_BYTES:]
    _validate_pcm(pcm_bytes)

    return AudioFrame(
        sequence_num=seq,
        pcm_bytes=pcm_bytes,
        ts_ms=ts_ms,
    )


# -------------------------
# Sequence gap detection
# -------------------------

@dataclass(frozen=True)
class SeqCheckResult:
    """
    Result of a sequence continuity check.
    """
    gap: bool
    expected: int
    actual: int

    @property
    def gap_size(self) -> int:
        """
        Number of chunks skipped (0 if no gap).

        Handles wraparound correctly.
        """
        if not self.gap:
            return 0

        # Linear (no wrap)
        if self.actual > self.expected:
            return self.actual - self.expected

        # Wraparound
        return (SEQ_NUM_MAX - self.expected + 1) + (self.actual - SEQ_NUM_START)


def check_sequence_gap(
    *,
    last_seq: Optional[int],
    current_seq: int,
) -> SeqCheckResult:
    """
    Check whether `current_seq` follows `last_seq`.

    Pure function; never raises.
    """
    if last_seq is None or is_seq_next(last_seq, current_seq):
        return SeqCheckResult(
            gap=False,
            expected=current_seq,
            actual=current_seq,
        )

    return SeqCheckResult(
        gap=True,
        expected=next_seq(last_seq),
        actual=current_seq,
    )
