# pylint: disable=missing-module-docstring,missing-function-docstring

import pytest

from constants import SEQ_NUM_MAX, SEQ_NUM_START
from protocol.binary import (
    InvalidFrameLength,
    InvalidSequenceNumber,
    check_sequence_gap,
    decode_audio_chunk,
    encode_audio_chunk,
    is_seq_next,
    next_seq,
)


PCM = b"\x01\x00\xff\x7f"


# ---------------------------------------------------------------------
# Framing
# ---------------------------------------------------------------------

def test_encode_prefixes_u32_le_sequence():
    payload = encode_audio_chunk(sequence_num=258, pcm_bytes=PCM)

    assert payload[:4] == b"\x02\x01\x00\x00"
    assert payload[4:] == PCM


def test_decode_returns_frame():
    frame = decode_audio_chunk((7).to_bytes(4, "little") + PCM, ts_ms=123)

    assert frame.sequence_num == 7
    assert frame.pcm_bytes == PCM
    assert frame.ts_ms == 123
    assert frame.sample_count == 2


def test_decode_accepts_variable_chunk_sizes():
    for n_samples in (1, 341, 1024):
        frame = decode_audio_chunk(b"\x01\x00\x00\x00" + b"\x00\x00" * n_samples, ts_ms=0)
        assert frame.sample_count == n_samples


# ---------------------------------------------------------------------
# Invalid frames
# ---------------------------------------------------------------------

@pytest.mark.parametrize("payload", [b"", b"\x01", b"\x01\x00\x00\x00"])
def test_decode_rejects_header_only_or_shorter(payload):
    with pytest.raises(InvalidFrameLength):
        decode_audio_chunk(payload, ts_ms=0)


def test_decode_rejects_odd_pcm_length():
    with pytest.raises(InvalidFrameLength):
        decode_audio_chunk(b"\x01\x00\x00\x00\x00\x00\x00", ts_ms=0)


def test_decode_rejects_seq_zero():
    with pytest.raises(InvalidSequenceNumber):
        decode_audio_chunk((0).to_bytes(4, "little") + PCM, ts_ms=0)


def test_encode_rejects_seq_zero_and_empty_pcm():
    with pytest.raises(InvalidSequenceNumber):
        encode_audio_chunk(sequence_num=0, pcm_bytes=PCM)

    with pytest.raises(InvalidFrameLength):
        encode_audio_chunk(sequence_num=1, pcm_bytes=b"")


# ---------------------------------------------------------------------
# Sequence numbers
# ---------------------------------------------------------------------

def test_next_seq_wraps_to_start():
    assert next_seq(1) == 2
    assert next_seq(SEQ_NUM_MAX) == SEQ_NUM_START
    assert is_seq_next(SEQ_NUM_MAX, SEQ_NUM_START)


def test_no_gap_on_first_chunk_or_consecutive():
    assert not check_sequence_gap(last_seq=None, current_seq=42).gap
    assert not check_sequence_gap(last_seq=41, current_seq=42).gap


def test_gap_detected_with_size():
    result = check_sequence_gap(last_seq=10, current_seq=14)

    assert result.gap
    assert result.expected == 11
    assert result.actual == 14
    assert result.gap_size == 3


def test_gap_size_across_wraparound():
    result = check_sequence_gap(last_seq=SEQ_NUM_MAX - 1, current_seq=2)

    assert result.gap
    assert result.expected == SEQ_NUM_MAX
    assert result.gap_size == 2
