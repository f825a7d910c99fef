"""
Audio frame primitives.

Pure data containers only.
No behavior, no queues, no timing logic.
"""

from __future__ import annotations
from dataclasses import dataclass


@dataclass(frozen=True)
class AudioFrame:
    """
    One PCM16 chunk as received over the STT transport.

    sequence_num:
        Monotonic sequence number provided by the sender.
        Used for gap detection and debugging only.

    pcm_bytes:
        Raw PCM16 mono 16 kHz audio bytes (even, non-empty length).

    ts_ms:
        Wall-clock timestamp (milliseconds) when the chunk was received.
        Used for observability only (not control logic).
    """
    sequence_num: int
    pcm_bytes: bytes
    ts_ms: int

    @property
    def sample_count(self) -> int:
        return len(self.pcm_bytes) // 2
