from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Callable, List, Optional, Protocol, Sequence, Tuple, Union

import numpy as np
from scipy.io import wavfile

from .params import AudioSourceType, SimulationParameters, coerce_enum

logger = logging.getLogger(__name__)

CLIP_POINTS = 2000


class AudioDecodeError(Exception):
    pass


@dataclass(frozen=True)
class AudioClip:
    samples: Tuple[float, ...]    # linear PCM, nominally in [-1, 1]
    duration: float               # seconds


# -------------------------
# Decoding
# -------------------------

def _to_float(data: np.ndarray) -> np.ndarray:
    """Integer PCM -> [-1, 1]; float data passes through."""
    if np.issubdtype(data.dtype, np.floating):
        return data.astype(float)
    if data.dtype == np.uint8:
        # 8-bit WAV is unsigned, centred on 128
        return (data.astype(float) - 128.0) / 128.0
    info = np.iinfo(data.dtype)
    return data.astype(float) / float(max(abs(info.min), info.max))


def decimate(channel: np.ndarray, points: int = CLIP_POINTS) -> np.ndarray:
    """
    Keep every floor(len / points)-th sample (at least every one), `points`
    values total; positions past the end are 0.
    """
    channel = np.asarray(channel, dtype=float)
    stride = max(1, len(channel) // points)
    idx = np.arange(points) * stride
    out = np.zeros(points, dtype=float)
    valid = idx < len(channel)
    out[valid] = channel[idx[valid]]
    return out


def clip_from_samples(channel: Sequence[float], rate: float, points: int = CLIP_POINTS) -> AudioClip:
    channel = np.asarray(channel, dtype=float)
    if rate <= 0:
        raise AudioDecodeError(f"Invalid sample rate: {rate}")
    duration = len(channel) / float(rate)
    return AudioClip(samples=tuple(decimate(channel, points).tolist()), duration=duration)


def load_wav(path: Union[str, os.PathLike], points: int = CLIP_POINTS) -> AudioClip:
    try:
        rate, data = wavfile.read(path)
    except (OSError, ValueError) as e:
        raise AudioDecodeError(f"Could not decode {path}: {e}") from e

    data = np.asarray(data)
    if data.size == 0:
        raise AudioDecodeError(f"{path} contains no samples")
    channel = data[:, 0] if data.ndim > 1 else data
    return clip_from_samples(_to_float(channel), float(rate), points)


def with_clip(
    params: SimulationParameters,
    clip: AudioClip,
    source: Union[str, AudioSourceType] = AudioSourceType.FILE,
) -> SimulationParameters:
    return params.replace(
        audio_source=coerce_enum(AudioSourceType, source),
        external_samples=clip.samples,
        audio_duration=clip.duration,
    )


def ingest_wav(params: SimulationParameters, path: Union[str, os.PathLike]) -> Tuple[SimulationParameters, Optional[str]]:
    """
    File-upload path for drivers. On failure the parameters come back
    unchanged together with an error message for display.
    """
    try:
        clip = load_wav(path)
    except AudioDecodeError as e:
        logger.warning("audio ingest failed: %s", e)
        return params, str(e)
    return with_clip(params, clip, AudioSourceType.FILE), None


# -------------------------
# Capture capability
# -------------------------

class AudioCapture(Protocol):
    """Device-side recorder injected into a driver; never used by the core."""

    def start(self) -> None: ...

    def stop(self) -> None: ...


class BufferedCapture:
    """
    Capture object fed with frames by whatever owns the device (a sound card
    callback, a test). stop() delivers an AudioClip to on_result.
    """

    def __init__(
        self,
        rate: float,
        on_result: Callable[[AudioClip], None],
        *,
        max_seconds: float = 10.0,
        points: int = CLIP_POINTS,
    ):
        self.rate = float(rate)
        self.on_result = on_result
        self.max_seconds = float(max_seconds)
        self.points = int(points)
        self._frames: List[np.ndarray] = []
        self._recording = False

    @property
    def recording(self) -> bool:
        return self._recording

    @property
    def seconds(self) -> float:
        return sum(len(f) for f in self._frames) / self.rate

    def start(self) -> None:
        self._frames = []
        self._recording = True

    def feed(self, frames: Sequence[float]) -> None:
        if not self._recording:
            return
        self._frames.append(np.asarray(frames, dtype=float).ravel())
        if self.seconds >= self.max_seconds:
            self.stop()

    def stop(self) -> None:
        if not self._recording:
            return
        self._recording = False
        data = np.concatenate(self._frames) if self._frames else np.zeros(0)
        limit = int(self.max_seconds * self.rate)
        self.on_result(clip_from_samples(data[:limit], self.rate, self.points))
