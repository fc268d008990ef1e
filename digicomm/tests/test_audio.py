# test_audio.py
#
# External audio boundary tests: WAV decoding, decimation, parameter hand-off
# and the buffered capture object.
#
# What this test suite verifies
# -----------------------------
# 1) load_wav: int16 / uint8 / float32 / stereo files decode to 2000 floats in [-1, 1]
#    with the clip duration taken from the file; unreadable files raise AudioDecodeError
# 2) decimate: floor(len / points) stride; short inputs are zero padded
# 3) ingest_wav / with_clip: parameters switch to the external source, or stay
#    unchanged with an error message on failure
# 4) BufferedCapture: start / feed / stop delivers one clip, capped at max_seconds
#
# How to run
# ----------
#   pytest -q digicomm/tests/test_audio.py


from __future__ import annotations

from typing import List

import numpy as np
import pytest
from scipy.io import wavfile

from digicomm.audio import (
    CLIP_POINTS,
    AudioClip,
    AudioDecodeError,
    BufferedCapture,
    clip_from_samples,
    decimate,
    ingest_wav,
    load_wav,
    with_clip,
)
from digicomm.params import DEFAULT_PARAMS, AudioSourceType


# =========================
# Helpers / shared utilities
# =========================

RATE = 8000


def write_wav(path, data, rate: int = RATE):
    wavfile.write(str(path), rate, data)
    return path


def sine(n: int, freq: float = 200.0, rate: int = RATE) -> np.ndarray:
    return np.sin(2 * np.pi * freq * np.arange(n) / rate)


# =========================
# 1) load_wav
# =========================

def test_int16_wav(tmp_path):
    data = (sine(16000) * 16000).astype(np.int16)
    clip = load_wav(write_wav(tmp_path / "tone.wav", data))

    assert len(clip.samples) == CLIP_POINTS
    assert clip.duration == pytest.approx(2.0)
    assert max(abs(x) for x in clip.samples) <= 1.0
    # stride 8 -> sample i is data[8 i]
    assert clip.samples[3] == pytest.approx(data[24] / 32768.0)


def test_uint8_wav_is_centred(tmp_path):
    data = np.full(4000, 128, dtype=np.uint8)
    clip = load_wav(write_wav(tmp_path / "mid.wav", data))
    assert all(x == 0.0 for x in clip.samples)


def test_float_wav_passes_through(tmp_path):
    data = (0.5 * sine(4000)).astype(np.float32)
    clip = load_wav(write_wav(tmp_path / "float.wav", data))
    assert clip.samples[1] == pytest.approx(float(data[2]), rel=1e-6)


def test_stereo_uses_first_channel(tmp_path):
    left = (sine(4000) * 10000).astype(np.int16)
    right = np.zeros(4000, dtype=np.int16)
    clip = load_wav(write_wav(tmp_path / "stereo.wav", np.column_stack([left, right])))
    assert max(abs(x) for x in clip.samples) > 0.2


def test_unreadable_file_raises(tmp_path):
    bad = tmp_path / "bad.wav"
    bad.write_bytes(b"not a wav file at all")
    with pytest.raises(AudioDecodeError):
        load_wav(bad)
    with pytest.raises(AudioDecodeError):
        load_wav(tmp_path / "missing.wav")


# =========================
# 2) decimate
# =========================

def test_decimate_stride():
    x = np.arange(10000, dtype=float)
    out = decimate(x, 2000)
    assert out.tolist()[:4] == [0.0, 5.0, 10.0, 15.0]
    assert len(out) == 2000


def test_decimate_short_input_is_zero_padded():
    out = decimate(np.array([1.0, 2.0, 3.0]), 10)
    assert out.tolist() == [1.0, 2.0, 3.0] + [0.0] * 7


def test_clip_from_samples_rejects_bad_rate():
    with pytest.raises(AudioDecodeError):
        clip_from_samples([0.0, 1.0], 0.0)


# =========================
# 3) Parameter hand-off
# =========================

def test_with_clip_switches_source():
    clip = AudioClip(samples=(0.0, 0.5, -0.5), duration=0.3)
    p = with_clip(DEFAULT_PARAMS, clip, "MICROPHONE")
    assert p.audio_source is AudioSourceType.MICROPHONE
    assert p.external_samples == clip.samples
    assert p.audio_duration == 0.3
    assert p.is_external


def test_ingest_wav_success(tmp_path):
    path = write_wav(tmp_path / "tone.wav", (sine(2400) * 8000).astype(np.int16))
    p, err = ingest_wav(DEFAULT_PARAMS, path)
    assert err is None
    assert p.audio_source is AudioSourceType.FILE
    assert p.audio_duration == pytest.approx(0.3)
    assert len(p.external_samples) == CLIP_POINTS


def test_ingest_wav_failure_keeps_params(tmp_path):
    p, err = ingest_wav(DEFAULT_PARAMS, tmp_path / "missing.wav")
    assert p is DEFAULT_PARAMS
    assert err


# =========================
# 4) BufferedCapture
# =========================

def test_capture_delivers_one_clip():
    results: List[AudioClip] = []
    cap = BufferedCapture(1000, results.append)

    cap.feed([1.0] * 100)           # ignored before start
    cap.start()
    assert cap.recording
    cap.feed(sine(500, rate=1000))
    cap.feed(sine(500, rate=1000))
    assert cap.seconds == pytest.approx(1.0)
    cap.stop()
    cap.stop()

    assert not cap.recording
    assert len(results) == 1
    assert results[0].duration == pytest.approx(1.0)
    assert len(results[0].samples) == CLIP_POINTS


def test_capture_stops_at_max_seconds():
    results: List[AudioClip] = []
    cap = BufferedCapture(100, results.append, max_seconds=2.0, points=50)
    cap.start()
    for _ in range(5):
        cap.feed(np.ones(100))

    assert not cap.recording
    assert len(results) == 1
    assert results[0].duration == pytest.approx(2.0)
    assert len(results[0].samples) == 50


def test_capture_without_frames():
    results: List[AudioClip] = []
    cap = BufferedCapture(1000, results.append)
    cap.start()
    cap.stop()
    assert results[0].duration == 0.0
    assert all(x == 0.0 for x in results[0].samples)
