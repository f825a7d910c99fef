"""
CONSTANTS
---------
Single source of truth for all behavioral constants in the system.

Rules:
- If changing a value changes runtime behavior, it belongs here.
- No magic numbers elsewhere in the codebase.
- Deployment-specific values (keys, URLs) belong in config.py instead.
"""

from __future__ import annotations

from typing import Final

# =============================================================================
# Audio Format (PCM16 mono @ 16kHz)
# =============================================================================

AUDIO_SAMPLE_RATE_HZ: Final[int] = 16_000
AUDIO_CHANNELS: Final[int] = 1
AUDIO_SAMPLE_WIDTH_BYTES: Final[int] = 2  # PCM16 (signed 16-bit)

# One capture callback's worth of samples at the device rate
CAPTURE_BLOCK_SAMPLES: Final[int] = 1024

# Asymmetric int16 scaling
PCM16_NEGATIVE_SCALE: Final[float] = 32768.0
PCM16_POSITIVE_SCALE: Final[float] = 32767.0

# =============================================================================
# Binary WebSocket Frame Format (client → server audio chunk)
# =============================================================================
# 4B seq_num (u32 LE) + variable-length PCM16 payload

C2S_SEQ_NUM_BYTES: Final[int] = 4

SEQ_NUM_START: Final[int] = 1
SEQ_NUM_MAX: Final[int] = 2**32 - 1  # u32 wraparound

# =============================================================================
# STT Session
# =============================================================================

STT_HANDSHAKE_TIMEOUT_S: Final[float] = 10.0
STT_DEFAULT_LANGUAGE: Final[str] = "zh-TW"

# Deepgram sends interim results; identical partials are not re-emitted
STT_MIN_PARTIAL_EMIT_INTERVAL_MS: Final[int] = 50

# =============================================================================
# Avatar Session Lifecycle
# =============================================================================

# Vendor never reports speech completion; speaking -> ready after this delay
SPEAK_SETTLE_DELAY_S: Final[float] = 2.0

# Stopped sessions stay queryable for this long
STOPPED_SESSION_RETENTION_S: Final[float] = 60.0

# Sweeper stops sessions idle longer than this (unless speaking)
SESSION_IDLE_TIMEOUT_S: Final[float] = 10 * 60.0
SESSION_SWEEP_INTERVAL_S: Final[float] = 5 * 60.0

# WebSocket status push
STATUS_MONITOR_INTERVAL_S: Final[float] = 5.0
STATUS_MONITOR_MAX_S: Final[float] = 10 * 60.0

# =============================================================================
# Avatar Vendor API
# =============================================================================

VENDOR_SUCCESS_CODE: Final[int] = 100
VENDOR_TIMEOUT_S: Final[float] = 30.0
VENDOR_API_URL_DEFAULT: Final[str] = "https://api.heygen.com"
VENDOR_API_VERSION: Final[str] = "v2"
VENDOR_TASK_TYPE: Final[str] = "repeat"

# Token accepted for any session (open demo use)
AUTH_BYPASS_TOKEN_DEFAULT: Final[str] = "default"
