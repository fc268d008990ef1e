from __future__ import annotations

import dataclasses
import logging
from typing import List, Optional
import numpy as np

from .a2d import FALLBACK_SAMPLING_FREQ, dequantize, quantizer_geometry
from .params import SimulationParameters
from .utils import SourceSample, gaussian_noise, governing_index, safe_positive

logger = logging.getLogger(__name__)

MIN_INTERP_HALF_WIDTH = 40
DEFAULT_INTERP_HALF_WIDTH = 100


# -------------------------
# PCM decode
# -------------------------

def split_codewords(bits: str, bit_depth: int) -> List[str]:
    """Cut the bitstream into bit_depth-wide words; a trailing partial word is kept."""
    n = max(1, int(bit_depth))
    return [bits[i:i + n] for i in range(0, len(bits), n)]


def parse_level(word: str) -> Optional[int]:
    if not word or any(c not in "01" for c in word):
        return None
    return int(word, 2)


def dac_values(words: List[str], params: SimulationParameters) -> np.ndarray:
    """
    Codewords -> DAC output voltages.

    Models integral non-linearity as a level-dependent offset
    dac_nonlinearity * sin(level / L * pi) (in LSBs), then applies the
    quantizer's level -> voltage map and mu-law expansion. Unparseable words
    come out as 0 V.
    """
    amp = float(params.amplitude)
    L, step = quantizer_geometry(params.bit_depth, amp)
    inl = float(params.dac_nonlinearity or 0.0)

    out = np.zeros(len(words), dtype=float)
    for i, w in enumerate(words):
        level = parse_level(w)
        if level is None:
            continue
        shift = inl * np.sin((level / L) * np.pi)
        out[i] = (level + shift) * step - amp
    return dequantize(out, params)


# -------------------------
# Interpolation
# -------------------------

def _interp_half_width(params: SimulationParameters) -> int:
    return max(MIN_INTERP_HALF_WIDTH, int(params.interpolation_window or DEFAULT_INTERP_HALF_WIDTH))


def reconstruct(
    samples: List[SourceSample],
    recovered_bits: str,
    params: SimulationParameters,
    rng: Optional[np.random.Generator] = None,
) -> List[SourceSample]:
    """
    Receiver back end: PCM decode -> DAC -> windowed-sinc interpolation onto
    the display trace, plus one residual-noise draw per output point.

    Returns new SourceSample records; `recovered_quantized` is the raw DAC
    (staircase) value, `reconstructed` the interpolated one.
    """
    fs = safe_positive(params.sampling_freq, FALLBACK_SAMPLING_FREQ)
    Ts = 1.0 / fs
    amp = float(params.amplitude)

    vals = dac_values(split_codewords(recovered_bits, params.bit_depth), params)
    n = len(vals)
    t_j = np.arange(n, dtype=float) * Ts
    W = _interp_half_width(params)

    times = np.array([s.time for s in samples], dtype=float)
    k = governing_index(times, Ts) if len(samples) else np.zeros(0, dtype=int)
    noise = gaussian_noise(params.snr_db, amp, size=len(samples), rng=rng)

    logger.debug("reconstruct: %d codewords, half-width %d, %d output points", n, W, len(samples))

    out: List[SourceSample] = []
    for idx, s in enumerate(samples):
        ki = int(k[idx])
        start = max(0, ki - W)
        end = min(n - 1, ki + W)

        rec = 0.0
        if end >= start:
            j = np.arange(start, end + 1)
            w = np.sinc((s.time - t_j[j]) * fs) * np.hamming(end - start + 1)
            total = float(w.sum())
            rec = float(np.dot(vals[j], w))
            if abs(total) > 0.001:
                rec /= total
        rec += float(noise[idx])

        if n == 0:
            raw = 0.0
        else:
            raw = float(vals[ki]) if 0 <= ki < n else float(vals[-1])

        out.append(dataclasses.replace(
            s,
            recovered_quantized=raw,
            reconstructed=rec,
            error=s.original - rec,
            q_error=s.original - raw,
        ))
    return out
