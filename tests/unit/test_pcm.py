# pylint: disable=missing-module-docstring,missing-function-docstring

import numpy as np
import pytest

from audio.pcm import float_to_pcm16, pcm16le_to_float32, peak_level, resample_to_16k


# ---------------------------------------------------------------------
# Resampling
# ---------------------------------------------------------------------

def test_resample_is_identity_at_or_below_16k():
    block = np.linspace(-1, 1, 100, dtype=np.float32)

    assert np.array_equal(resample_to_16k(block, 16000), block)
    assert np.array_equal(resample_to_16k(block, 8000), block)


@pytest.mark.parametrize(
    "rate, n_in, n_out",
    [
        (48000, 1024, 341),
        (44100, 1024, 371),
        (32000, 1024, 512),
        (48000, 2, 0),
    ],
)
def test_resample_output_length_is_floor_of_len_over_ratio(rate, n_in, n_out):
    block = np.zeros(n_in, dtype=np.float32)

    assert len(resample_to_16k(block, rate)) == n_out
    assert len(resample_to_16k(block, rate, method="nearest")) == n_out


def test_linear_interpolates_between_neighbours():
    # ratio 1.5: outputs come from positions 0, 1.5, 3, 4.5
    block = np.array([0.0, 0.2, 0.4, 0.6, 0.8, 1.0], dtype=np.float32)

    out = resample_to_16k(block, 24000)

    assert out == pytest.approx([0.0, 0.3, 0.6, 0.9], abs=1e-6)


def test_nearest_takes_floor_index():
    block = np.array([0.0, 0.2, 0.4, 0.6, 0.8, 1.0], dtype=np.float32)

    out = resample_to_16k(block, 24000, method="nearest")

    assert out == pytest.approx([0.0, 0.2, 0.6, 0.8], abs=1e-6)


def test_linear_never_reads_past_the_end():
    for rate in (16001, 22050, 44100, 48000, 96000):
        for n in (1, 2, 3, 7, 1024):
            block = np.ones(n, dtype=np.float32)

            out = resample_to_16k(block, rate)

            assert np.allclose(out, 1.0)


def test_unknown_method_raises():
    with pytest.raises(ValueError):
        resample_to_16k(np.zeros(10, dtype=np.float32), 48000, method="cubic")  # type: ignore[arg-type]


# ---------------------------------------------------------------------
# PCM16 encoding
# ---------------------------------------------------------------------

def test_pcm16_uses_asymmetric_scaling():
    pcm = float_to_pcm16(np.array([-1.0, 1.0, 0.0], dtype=np.float32))

    assert np.frombuffer(pcm, dtype="<i2").tolist() == [-32768, 32767, 0]


def test_pcm16_clamps_out_of_range():
    pcm = float_to_pcm16(np.array([-2.5, 3.0], dtype=np.float32))

    assert np.frombuffer(pcm, dtype="<i2").tolist() == [-32768, 32767]


def test_pcm16_rounds_instead_of_truncating():
    pcm = float_to_pcm16(np.array([0.5, -0.5], dtype=np.float32))

    # 0.5 * 32767 = 16383.5 -> 16384 (round half to even); -0.5 * 32768 = -16384
    assert np.frombuffer(pcm, dtype="<i2").tolist() == [16384, -16384]


def test_pcm16_output_is_little_endian_two_bytes_per_sample():
    pcm = float_to_pcm16(np.array([1.0], dtype=np.float32))

    assert pcm == b"\xff\x7f"


def test_pcm16le_to_float32_inverts_full_scale_negative():
    audio = pcm16le_to_float32(b"\x00\x80\x00\x00")

    assert audio.dtype == np.float32
    assert audio.tolist() == [-1.0, 0.0]


def test_pcm16le_to_float32_drops_trailing_odd_byte():
    assert len(pcm16le_to_float32(b"\x00\x00\x01")) == 1


def test_peak_level():
    assert peak_level(b"") == 0.0
    assert peak_level(float_to_pcm16(np.array([0.1, -0.5, 0.25]))) == pytest.approx(0.5, abs=1e-4)
