from __future__ import annotations

import logging
from typing import Callable, Dict, List, Optional, Tuple, Union
import numpy as np

from .params import QuantizationType, SamplingType, SimulationParameters, WaveformType, coerce_enum
from .utils import SourceSample, governing_index, safe_positive

logger = logging.getLogger(__name__)

MU = 255.0
TRACE_RESOLUTION = 2000        # display intervals per run
PULSE_WIDTH_RATIO = 0.4        # natural / flat-top pulse width, fraction of Ts
FALLBACK_SAMPLING_FREQ = 1200.0


# -------------------------
# Message generation (analog)
# -------------------------

def _sine(x: np.ndarray) -> np.ndarray:
    return np.sin(2 * np.pi * x)


def _square(x: np.ndarray) -> np.ndarray:
    return np.where(np.sin(2 * np.pi * x) >= 0.0, 1.0, -1.0)


def _sawtooth(x: np.ndarray) -> np.ndarray:
    return 2.0 * (x - np.floor(0.5 + x))


def _triangle(x: np.ndarray) -> np.ndarray:
    return 2.0 * np.abs(2.0 * (x - np.floor(x + 0.5))) - 1.0


# x = t * f (cycles elapsed) -> unit-amplitude waveform
_WAVEFORMS: Dict[WaveformType, Callable[[np.ndarray], np.ndarray]] = {
    WaveformType.SINE: _sine,
    WaveformType.SQUARE: _square,
    WaveformType.SAWTOOTH: _sawtooth,
    WaveformType.TRIANGLE: _triangle,
}


def gen_message(t: np.ndarray, kind: Union[str, WaveformType], Am: float, fm: float) -> np.ndarray:
    kind = coerce_enum(WaveformType, kind)
    x = np.asarray(t, dtype=float) * float(fm)
    return float(Am) * _WAVEFORMS[kind](x)


def source_duration(params: SimulationParameters) -> float:
    """Two periods of the tone for synthetic sources, the clip length otherwise."""
    synthetic = 2.0 / safe_positive(params.signal_freq, 1.0)
    if params.is_external:
        return safe_positive(params.audio_duration, synthetic)
    return synthetic


def analog_value(t: np.ndarray, params: SimulationParameters, duration: float) -> np.ndarray:
    """
    Source value at time(s) t.

    External sources are looked up by nearest index on normalized progress
    t / duration (no resampling); a missing clip is silence.
    """
    t = np.asarray(t, dtype=float)
    amp = float(params.amplitude)

    if params.is_external:
        if not params.external_samples:
            return np.zeros_like(t)
        data = np.nan_to_num(np.asarray(params.external_samples, dtype=float))
        if duration > 0:
            progress = np.clip(t / float(duration), 0.0, 1.0)
        else:
            progress = np.zeros_like(t)
        idx = np.floor(progress * (len(data) - 1)).astype(int)
        return data[idx] * amp

    return gen_message(t, params.waveform, amp, params.signal_freq)


# -------------------------
# Companding
# -------------------------

def compress_mu_law(x: Union[float, np.ndarray], V: float) -> Union[float, np.ndarray]:
    V = float(V) or 1.0
    nx = np.asarray(x, dtype=float) / V
    y = np.sign(nx) * (np.log(1.0 + MU * np.abs(nx)) / np.log(1.0 + MU))
    y = y * V
    return float(y) if np.ndim(y) == 0 else y


def expand_mu_law(y: Union[float, np.ndarray], V: float) -> Union[float, np.ndarray]:
    V = float(V) or 1.0
    ny = np.asarray(y, dtype=float) / V
    x = np.sign(ny) * ((np.power(1.0 + MU, np.abs(ny)) - 1.0) / MU)
    x = x * V
    return float(x) if np.ndim(x) == 0 else x


# -------------------------
# PCM: quantize + encode
# -------------------------

def quantizer_geometry(bit_depth: int, amplitude: float) -> Tuple[int, float]:
    """
    Returns (L, step) for L = 2^n levels spread uniformly over
    [-amplitude, +amplitude] (both endpoints are levels).
    """
    L = int(2 ** max(1, int(bit_depth)))
    step = (2.0 * float(amplitude)) / float((L - 1) or 1)
    return L, (step or 1.0)


def quantize(values: np.ndarray, params: SimulationParameters) -> Tuple[np.ndarray, np.ndarray]:
    """
    Uniform quantizer (after optional mu-law compression).
    Returns (level index, level voltage); voltages are still in the
    compressed domain when mu-law is configured.
    """
    amp = float(params.amplitude)
    L, step = quantizer_geometry(params.bit_depth, amp)
    target = np.asarray(values, dtype=float)
    if params.quantization == QuantizationType.MU_LAW:
        target = np.asarray(compress_mu_law(target, amp), dtype=float)

    # round half up
    idx = np.floor((target + amp) / step + 0.5)
    idx = np.clip(idx, 0, L - 1).astype(int)
    return idx, idx * step - amp


def to_binary(value: float, vmin: float, vmax: float, bits: int) -> str:
    bits = max(1, int(bits))
    L = 2 ** bits
    normalized = (float(value) - float(vmin)) / ((float(vmax) - float(vmin)) or 1.0)
    k = int(np.floor(normalized * (L - 1) + 0.5))
    k = max(0, min(L - 1, k))
    return format(k, f"0{bits}b")


def dequantize(q: np.ndarray, params: SimulationParameters) -> np.ndarray:
    if params.quantization == QuantizationType.MU_LAW:
        return np.asarray(expand_mu_law(q, params.amplitude), dtype=float)
    return np.asarray(q, dtype=float)


# -------------------------
# Sampler display waveforms
# -------------------------

def _ideal(tip, step, pulse, original, quantized):
    return np.where(tip < step, quantized, 0.0)


def _natural(tip, step, pulse, original, quantized):
    return np.where(tip < pulse, original, 0.0)


def _flat_top(tip, step, pulse, original, quantized):
    return np.where(tip < pulse, quantized, 0.0)


_SAMPLERS = {
    SamplingType.IDEAL: _ideal,
    SamplingType.NATURAL: _natural,
    SamplingType.FLAT_TOP: _flat_top,
}


# -------------------------
# Main sampler
# -------------------------

def _sample_instants(params: SimulationParameters, duration: float) -> Tuple[np.ndarray, float]:
    fs = safe_positive(params.sampling_freq, FALLBACK_SAMPLING_FREQ)
    Ts = 1.0 / fs
    # one instant past the end so the final display interval has a sample
    n = int(np.floor((duration + Ts) / Ts + 1e-9)) + 1
    return np.arange(n, dtype=float) * Ts, Ts


def generate_source(params: SimulationParameters) -> List[SourceSample]:
    """
    Analog source -> sampler -> quantizer -> PCM encoder, rendered on a
    fixed-resolution display trace.

    Each trace point carries the continuous value, the sampler output, the
    dequantized level of its governing sample and, at sampling instants only,
    that sample's codeword.
    """
    amp = float(params.amplitude)
    duration = source_duration(params)
    t_s, Ts = _sample_instants(params, duration)

    m_s = analog_value(t_s, params, duration)
    _, q = quantize(m_s, params)
    codewords = [to_binary(v, -amp, amp, params.bit_depth) for v in q.tolist()]
    q_display = dequantize(q, params)

    step = duration / TRACE_RESOLUTION
    pulse = Ts * PULSE_WIDTH_RATIO
    t = np.arange(TRACE_RESOLUTION + 1, dtype=float) * step
    original = analog_value(t, params, duration)

    k = governing_index(t, Ts)
    tip = np.maximum(t - k * Ts, 0.0)
    k = np.minimum(k, len(t_s) - 1)
    # shave the window so the point one step after an instant never qualifies
    window = step * (1.0 - 1e-9)
    quantized = q_display[k]
    sampled = _SAMPLERS[params.sampling](tip, window, pulse, original, quantized)
    at_instant = tip < window

    logger.debug(
        "source: %d samples over %.4gs, %d trace points, %d codewords",
        len(t_s), duration, len(t), int(at_instant.sum()),
    )

    out: List[SourceSample] = []
    for i in range(len(t)):
        binary: Optional[str] = codewords[k[i]] if at_instant[i] else None
        out.append(SourceSample(
            time=float(t[i]),
            original=float(original[i]),
            sampled=float(sampled[i]),
            quantized=float(quantized[i]),
            recovered_quantized=0.0,
            q_error=float(original[i] - quantized[i]),
            reconstructed=0.0,
            error=0.0,
            binary=binary,
        ))
    return out


def bitstream_from_source(samples: List[SourceSample]) -> str:
    """Transmitted bitstream: codewords in time order."""
    return "".join(s.binary for s in samples if s.binary is not None)
