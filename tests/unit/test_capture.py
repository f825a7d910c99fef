# pylint: disable=missing-module-docstring,missing-function-docstring

from typing import Any

import numpy as np
import pytest

from audio.capture import MicrophonePipeline, classify_device_error
from errors import AudioCaptureError, DeviceUnavailable, NoDeviceFound, PermissionDenied


class FakePortAudioError(Exception):
    pass


class FakeStream:
    def __init__(self, **kwargs: Any) -> None:
        self.kwargs = kwargs
        self.started = False
        self.stopped = False
        self.closed = False

    def start(self) -> None:
        self.started = True

    def stop(self) -> None:
        self.stopped = True

    def close(self) -> None:
        self.closed = True


class FakeDeviceApi:
    PortAudioError = FakePortAudioError

    def __init__(self, *, info: dict[str, Any] | None = None, open_error: Exception | None = None) -> None:
        self.info = info if info is not None else {
            "name": "Built-in Microphone",
            "max_input_channels": 1,
            "default_samplerate": 48000.0,
        }
        self.open_error = open_error
        self.streams: list[FakeStream] = []

    def query_devices(self, device: Any = None, kind: str | None = None) -> dict[str, Any]:
        assert kind == "input"
        return self.info

    def InputStream(self, **kwargs: Any) -> FakeStream:  # pylint: disable=invalid-name
        if self.open_error is not None:
            raise self.open_error
        stream = FakeStream(**kwargs)
        self.streams.append(stream)
        return stream


class FakeSink:
    def __init__(self, active: bool = True) -> None:
        self.active = active
        self.chunks: list[bytes] = []

    def send_audio(self, pcm_bytes: bytes) -> None:
        self.chunks.append(pcm_bytes)


# ---------------------------------------------------------------------
# Construction / acquisition
# ---------------------------------------------------------------------

def test_rejects_incomplete_device_api():
    with pytest.raises(TypeError):
        MicrophonePipeline(device_api=object(), session_provider=lambda: None)


def test_start_opens_mono_float_stream_at_device_rate():
    api = FakeDeviceApi()
    pipeline = MicrophonePipeline(device_api=api, session_provider=lambda: None)

    pipeline.start()

    (stream,) = api.streams
    assert stream.started
    assert stream.kwargs["samplerate"] == 48000.0
    assert stream.kwargs["channels"] == 1
    assert stream.kwargs["dtype"] == "float32"
    assert stream.kwargs["blocksize"] == 1024
    assert pipeline.capture_rate == 48000.0


def test_start_twice_is_ignored(logged):
    api = FakeDeviceApi()
    pipeline = MicrophonePipeline(device_api=api, session_provider=lambda: None)

    pipeline.start()
    pipeline.start()

    assert len(api.streams) == 1
    assert "MIC_START_IGNORED" in [e["event_type"] for e in logged()]


def test_no_input_channels_is_no_device_found():
    api = FakeDeviceApi(info={"name": "HDMI", "max_input_channels": 0, "default_samplerate": 48000.0})
    pipeline = MicrophonePipeline(device_api=api, session_provider=lambda: None)

    with pytest.raises(NoDeviceFound):
        pipeline.start()
    assert not pipeline.started


@pytest.mark.parametrize(
    "error, kind",
    [
        (FakePortAudioError("Device unavailable", -9985), DeviceUnavailable),
        (FakePortAudioError("Invalid device", -9996), NoDeviceFound),
        (FakePortAudioError("Error querying device -1"), NoDeviceFound),
        (FakePortAudioError("Permission denied by the system"), PermissionDenied),
        (FakePortAudioError("Unanticipated host error", -9999), AudioCaptureError),
    ],
)
def test_open_failures_are_classified(error, kind):
    api = FakeDeviceApi(open_error=error)
    pipeline = MicrophonePipeline(device_api=api, session_provider=lambda: None)

    with pytest.raises(kind):
        pipeline.start()


def test_classify_generic_error_is_plain_capture_error():
    err = classify_device_error(FakePortAudioError("weird"))

    assert type(err) is AudioCaptureError  # pylint: disable=unidiomatic-typecheck


def test_stop_releases_stream_and_is_repeatable():
    api = FakeDeviceApi()
    pipeline = MicrophonePipeline(device_api=api, session_provider=lambda: None)

    pipeline.stop()  # never started
    pipeline.start()
    pipeline.stop()
    pipeline.stop()

    assert api.streams[0].stopped and api.streams[0].closed
    assert not pipeline.started


# ---------------------------------------------------------------------
# Per-block processing
# ---------------------------------------------------------------------

def test_block_is_resampled_encoded_and_sent():
    sink = FakeSink()
    pipeline = MicrophonePipeline(device_api=FakeDeviceApi(), session_provider=lambda: sink)
    block = np.full((1024, 1), 0.25, dtype=np.float32)

    pcm = pipeline.process_block(block, capture_rate=48000.0)

    assert pcm is not None
    assert sink.chunks == [pcm]
    assert len(pcm) == 341 * 2
    assert set(np.frombuffer(pcm, dtype="<i2").tolist()) == {8192}


def test_frames_dropped_without_active_session():
    inactive = FakeSink(active=False)
    sessions: list[FakeSink | None] = [None]
    pipeline = MicrophonePipeline(device_api=FakeDeviceApi(), session_provider=lambda: sessions[0])
    block = np.zeros(1024, dtype=np.float32)

    assert pipeline.process_block(block, capture_rate=16000.0) is None
    sessions[0] = inactive
    assert pipeline.process_block(block, capture_rate=16000.0) is None

    assert inactive.chunks == []
    assert pipeline.frames_dropped == 2
    assert pipeline.frames_sent == 0


def test_callback_feeds_blocks_after_start():
    sink = FakeSink()
    api = FakeDeviceApi()
    pipeline = MicrophonePipeline(device_api=api, session_provider=lambda: sink)
    pipeline.start()

    callback = api.streams[0].kwargs["callback"]
    callback(np.zeros((1024, 1), dtype=np.float32), 1024, None, None)

    assert len(sink.chunks) == 1
    assert pipeline.frames_sent == 1


class EagerStream(FakeStream):
    """Delivers a block from inside start(), as PortAudio may."""

    def start(self) -> None:
        super().start()
        self.kwargs["callback"](np.zeros((1024, 1), dtype=np.float32), 1024, None, None)


class EagerDeviceApi(FakeDeviceApi):
    def InputStream(self, **kwargs: Any) -> FakeStream:  # pylint: disable=invalid-name
        stream = EagerStream(**kwargs)
        self.streams.append(stream)
        return stream


def test_block_delivered_during_stream_start_is_sent():
    sink = FakeSink()
    pipeline = MicrophonePipeline(device_api=EagerDeviceApi(), session_provider=lambda: sink)

    pipeline.start()

    assert len(sink.chunks) == 1
    assert pipeline.frames_sent == 1


def test_failed_open_leaves_capture_rate_unset():
    api = FakeDeviceApi(open_error=FakePortAudioError("Device unavailable", -9985))
    pipeline = MicrophonePipeline(device_api=api, session_provider=lambda: None)

    with pytest.raises(DeviceUnavailable):
        pipeline.start()

    assert pipeline.capture_rate is None
    assert not pipeline.started
