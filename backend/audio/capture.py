"""
Microphone capture pipeline.

Responsibilities:
- Acquire the default (or given) input device through a sounddevice-compatible API
- Per capture block: resample to 16 kHz, encode PCM16, hand to the STT session
- Classify acquisition failures into PermissionDenied / DeviceUnavailable / NoDeviceFound
- Release the device on stop()

Non-responsibilities:
- No retries (the caller decides what to tell the user)
- No transport buffering (SttSession.send_audio is fire-and-forget)

The block callback runs on the audio driver's thread. It does numpy math and a
thread-safe hand-off only.
"""

from __future__ import annotations

from typing import Any, Callable, Protocol

import numpy as np

from audio.pcm import ResampleMethod, float_to_pcm16, resample_to_16k
from constants import AUDIO_CHANNELS, AUDIO_SAMPLE_RATE_HZ, CAPTURE_BLOCK_SAMPLES
from errors import (
    AudioCaptureError,
    DeviceUnavailable,
    NoDeviceFound,
    PermissionDenied,
)
from observability.logger import log_event


class AudioSink(Protocol):
    """What the pipeline needs from an STT session."""

    @property
    def active(self) -> bool: ...

    def send_audio(self, pcm_bytes: bytes) -> None: ...


# PortAudio error codes (portaudio.h)
_PA_DEVICE_UNAVAILABLE = -9985
_PA_INVALID_DEVICE = -9996
_PA_NO_DEVICE = -1

_PERMISSION_HINTS = ("permission", "not permitted", "access denied", "not authorized")
_BUSY_HINTS = ("device unavailable", "busy", "in use")
_MISSING_HINTS = (
    "no default input device",
    "error querying device -1",
    "invalid device",
    "no such device",
    "no input device",
)


def classify_device_error(exc: BaseException) -> AudioCaptureError:
    """
    Map a PortAudio/sounddevice failure to an acquisition error kind.

    sounddevice.PortAudioError carries (message, errcode, hosterror) in args;
    query failures surface as ValueError with a message.
    """
    message = str(exc.args[0]) if exc.args else str(exc)
    code = exc.args[1] if len(exc.args) > 1 and isinstance(exc.args[1], int) else None
    lowered = message.lower()

    if any(hint in lowered for hint in _PERMISSION_HINTS):
        return PermissionDenied(message)
    if code == _PA_DEVICE_UNAVAILABLE or any(hint in lowered for hint in _BUSY_HINTS):
        return DeviceUnavailable(message)
    if code in (_PA_INVALID_DEVICE, _PA_NO_DEVICE) or any(hint in lowered for hint in _MISSING_HINTS):
        return NoDeviceFound(message)
    return AudioCaptureError(message)


class MicrophonePipeline:
    """
    Capture → resample → PCM16 → STT session.

    device_api:
        The `sounddevice` module or an object with the same surface
        (query_devices, InputStream, PortAudioError).
    session_provider:
        Returns the current STT session, or None. Frames are dropped while
        it returns None or an inactive session.
    """

    def __init__(
        self,
        *,
        device_api: Any,
        session_provider: Callable[[], AudioSink | None],
        block_size: int = CAPTURE_BLOCK_SAMPLES,
        device: int | str | None = None,
        method: ResampleMethod = "linear",
    ) -> None:
        for attr in ("query_devices", "InputStream", "PortAudioError"):
            if not hasattr(device_api, attr):
                raise TypeError(f"device_api is missing {attr!r}")

        self._api = device_api
        self._session_provider = session_provider
        self._block_size = block_size
        self._device = device
        self._method = method

        self._stream: Any = None
        self.capture_rate: float | None = None
        self.frames_sent = 0
        self.frames_dropped = 0

    @property
    def started(self) -> bool:
        return self._stream is not None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """
        Acquire the microphone and begin streaming.

        Raises:
            PermissionDenied, DeviceUnavailable, NoDeviceFound, AudioCaptureError
        """
        if self._stream is not None:
            log_event({
                "event_type": "MIC_START_IGNORED",
                "level": "WARNING",
                "reason": "already_started",
            })
            return

        try:
            info = self._api.query_devices(self._device, kind="input")
        except (ValueError, self._api.PortAudioError) as e:
            raise classify_device_error(e) from e

        if not info or int(info.get("max_input_channels", 0)) < AUDIO_CHANNELS:
            raise NoDeviceFound("No microphone with an input channel was found")

        rate = float(info["default_samplerate"])

        # The callback may fire as soon as start() returns.
        self.capture_rate = rate
        try:
            stream = self._api.InputStream(
                device=self._device,
                samplerate=rate,
                channels=AUDIO_CHANNELS,
                dtype="float32",
                blocksize=self._block_size,
                callback=self._on_block,
            )
            stream.start()
        except (ValueError, self._api.PortAudioError) as e:
            self.capture_rate = None
            raise classify_device_error(e) from e

        self._stream = stream

        log_event({
            "event_type": "MIC_STARTED",
            "device": info.get("name"),
            "capture_rate": rate,
            "resample_ratio": rate / AUDIO_SAMPLE_RATE_HZ,
            "block_size": self._block_size,
        })

    def stop(self) -> None:
        """Release the microphone. Safe when never started and when repeated."""
        stream = self._stream
        if stream is None:
            return
        self._stream = None

        try:
            stream.stop()
        finally:
            stream.close()

        log_event({
            "event_type": "MIC_STOPPED",
            "frames_sent": self.frames_sent,
            "frames_dropped": self.frames_dropped,
        })

    # ------------------------------------------------------------------
    # Per-block processing
    # ------------------------------------------------------------------

    def process_block(self, samples: np.ndarray, capture_rate: float | None = None) -> bytes | None:
        """
        Encode one capture block and hand it to the active session.

        Returns the PCM16 bytes that were sent, or None if the frame was dropped.
        """
        rate = capture_rate if capture_rate is not None else self.capture_rate
        if rate is None:
            raise RuntimeError("capture rate unknown; start() the pipeline or pass capture_rate")

        session = self._session_provider()
        if session is None or not session.active:
            self.frames_dropped += 1
            return None

        mono = np.asarray(samples, dtype=np.float32)
        if mono.ndim == 2:
            mono = mono[:, 0]

        pcm = float_to_pcm16(resample_to_16k(mono, rate, method=self._method))
        if not pcm:
            self.frames_dropped += 1
            return None

        session.send_audio(pcm)
        self.frames_sent += 1
        return pcm

    def _on_block(self, indata: np.ndarray, frames: int, time_info: Any, status: Any) -> None:  # pylint: disable=unused-argument
        if status:
            log_event({
                "event_type": "MIC_STATUS",
                "level": "WARNING",
                "status": str(status),
            })
        self.process_block(indata)
