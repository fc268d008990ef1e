from __future__ import annotations

from typing import Callable, Dict, List, Union
import numpy as np

from .params import LineCodeType, coerce_enum
from .utils import LineCodePoint, bit_array

POINTS_PER_BIT = 20

# ---------- Level rules (one bit, vectorized over in-bit progress) ----------
#
# Each rule gets (bit, bit_index, progress, duty) where progress is the
# array j / POINTS_PER_BIT and returns the voltages for that bit.

LevelRule = Callable[[int, int, np.ndarray, float], np.ndarray]


def _unipolar_nrz(bit: int, i: int, progress: np.ndarray, duty: float) -> np.ndarray:
    return np.full(progress.shape, 1.0 if bit else 0.0)


def _polar_nrz(bit: int, i: int, progress: np.ndarray, duty: float) -> np.ndarray:
    return np.full(progress.shape, 1.0 if bit else -1.0)


def _unipolar_rz(bit: int, i: int, progress: np.ndarray, duty: float) -> np.ndarray:
    if not bit:
        return np.zeros(progress.shape)
    return np.where(progress < duty, 1.0, 0.0)


def _bipolar_rz(bit: int, i: int, progress: np.ndarray, duty: float) -> np.ndarray:
    # Pulse polarity follows bit-index parity
    if not bit:
        return np.zeros(progress.shape)
    level = 1.0 if i % 2 == 0 else -1.0
    return np.where(progress < duty, level, 0.0)


def _manchester(bit: int, i: int, progress: np.ndarray, duty: float) -> np.ndarray:
    # IEEE-style: 1 = low->high, 0 = high->low
    first, second = (-1.0, 1.0) if bit else (1.0, -1.0)
    return np.where(progress < 0.5, first, second)


_LINE_CODES: Dict[LineCodeType, LevelRule] = {
    LineCodeType.UNIPOLAR_NRZ: _unipolar_nrz,
    LineCodeType.POLAR_NRZ: _polar_nrz,
    LineCodeType.UNIPOLAR_RZ: _unipolar_rz,
    LineCodeType.BIPOLAR_RZ: _bipolar_rz,
    LineCodeType.MANCHESTER: _manchester,
}


# ---------- Public API ----------

def line_wave(bits: str, scheme: Union[str, LineCodeType], duty_cycle: float) -> np.ndarray:
    """Baseband voltages only, POINTS_PER_BIT per bit."""
    scheme = coerce_enum(LineCodeType, scheme)
    rule = _LINE_CODES[scheme]
    values = bit_array(bits)
    if values.size == 0:
        return np.array([], dtype=float)

    progress = np.arange(POINTS_PER_BIT, dtype=float) / POINTS_PER_BIT
    duty = float(duty_cycle)
    chunks = [rule(int(b), i, progress, duty) for i, b in enumerate(values.tolist())]
    return np.concatenate(chunks)


def encode_line(bits: str, scheme: Union[str, LineCodeType], duty_cycle: float) -> List[LineCodePoint]:
    wave = line_wave(bits, scheme, duty_cycle)
    out: List[LineCodePoint] = []
    for idx, v in enumerate(wave.tolist()):
        bit = bits[idx // POINTS_PER_BIT]
        out.append(LineCodePoint(index=idx, voltage=float(v), bit_value=bit))
    return out
