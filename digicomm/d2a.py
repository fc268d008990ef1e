from __future__ import annotations

import logging
from typing import Callable, Dict, List, Optional, Tuple, Union
import numpy as np
from scipy.signal import lfilter

from .params import ModulationType, SimulationParameters, coerce_enum
from .utils import (
    ConstellationPoint,
    ConstellationSample,
    DownConversionPoint,
    ModulationPoint,
    bit_array,
    gaussian_noise,
    make_time_axis,
    safe_positive,
)

logger = logging.getLogger(__name__)

SAMPLES_PER_BIT = 400
DECISION_OFFSET = SAMPLES_PER_BIT // 2   # bit-centre sample
LPF_ALPHA = 0.08                         # single-pole low-pass coefficient


def bit_rate(params: SimulationParameters) -> float:
    return safe_positive(params.bit_rate, 1.0)


# ----------------------------
# Mapping tables
# ----------------------------

# QPSK Gray mapping (00,01,11,10)
_QPSK_MAP: Dict[Tuple[int, int], Tuple[float, float]] = {
    (0, 0): (+0.707, +0.707),
    (0, 1): (-0.707, +0.707),
    (1, 1): (-0.707, -0.707),
    (1, 0): (+0.707, -0.707),
}

# 16-QAM axis levels, normalized by 3 so I/Q stay within [-1, +1]
_QAM16_LEVELS = np.array([-3.0, -1.0, 1.0, 3.0]) / 3.0


def _symbol_values(values: np.ndarray, k: int) -> np.ndarray:
    """Group bits into k-bit symbols (zero padded), natural binary -> int."""
    pad = (-len(values)) % k
    padded = np.concatenate([values, np.zeros(pad, dtype=int)]) if pad else values
    weights = 1 << np.arange(k - 1, -1, -1)
    return padded.reshape(-1, k) @ weights


def _per_bit(symbol_level: np.ndarray, k: int, n: int) -> np.ndarray:
    # stretch one value per symbol back over the bits it carries
    return np.repeat(symbol_level, k)[:n]


# ----------------------------
# Per-scheme (I, Q, carrier multiplier) for every bit
# ----------------------------

IQMap = Callable[[np.ndarray], Tuple[np.ndarray, np.ndarray, np.ndarray]]


def _bask(values: np.ndarray):
    n = len(values)
    return values.astype(float), np.zeros(n), np.ones(n)


def _bpsk(values: np.ndarray):
    n = len(values)
    return np.where(values == 1, 1.0, -1.0), np.zeros(n), np.ones(n)


def _bfsk(values: np.ndarray):
    n = len(values)
    return np.ones(n), np.zeros(n), np.where(values == 1, 1.5, 0.5)


def _qpsk(values: np.ndarray):
    n = len(values)
    sym = _symbol_values(values, 2)
    pairs = [((s >> 1) & 1, s & 1) for s in sym.tolist()]
    I = np.array([_QPSK_MAP[p][0] for p in pairs])
    Q = np.array([_QPSK_MAP[p][1] for p in pairs])
    return _per_bit(I, 2, n), _per_bit(Q, 2, n), np.ones(n)


def _qam16(values: np.ndarray):
    n = len(values)
    sym = _symbol_values(values, 4)
    I = _QAM16_LEVELS[sym % 4]
    Q = _QAM16_LEVELS[sym // 4]
    return _per_bit(I, 4, n), _per_bit(Q, 4, n), np.ones(n)


_MODULATIONS: Dict[ModulationType, IQMap] = {
    ModulationType.BASK: _bask,
    ModulationType.BPSK: _bpsk,
    ModulationType.BFSK: _bfsk,
    ModulationType.QPSK: _qpsk,
    ModulationType.SIXTEEN_QAM: _qam16,
    # 8-PSK only has a display constellation; it transmits as BPSK
    ModulationType.EIGHT_PSK: _bpsk,
}


# ----------------------------
# Modulation
# ----------------------------

def modulate(
    bits: str,
    params: SimulationParameters,
    rng: Optional[np.random.Generator] = None,
) -> List[ModulationPoint]:
    """
    Passband waveform s(t) = A [I cos(2π f t) - Q sin(2π f t)] plus AWGN.

    SAMPLES_PER_BIT samples per bit at rate bit_rate * SAMPLES_PER_BIT.
    f = carrier_ratio * bit_rate, scaled per bit for BFSK.
    """
    values = bit_array(bits)
    n = int(values.size)
    if n == 0:
        return []

    Ac = float(params.amplitude)
    rate = bit_rate(params)
    fc = float(params.carrier_ratio) * rate

    I, Q, fmult = _MODULATIONS[params.modulation](values)

    N = n * SAMPLES_PER_BIT
    t = make_time_axis(N, rate * SAMPLES_PER_BIT)
    bit_idx = np.arange(N) // SAMPLES_PER_BIT
    i_s = I[bit_idx]
    q_s = Q[bit_idx]
    f = fc * fmult[bit_idx]

    clean = Ac * (i_s * np.cos(2 * np.pi * f * t) - q_s * np.sin(2 * np.pi * f * t))
    noisy = clean + gaussian_noise(params.snr_db, Ac, size=N, rng=rng)
    baseband = i_s * Ac

    logger.debug("modulate: %s, %d bits, fc=%.4g Hz, %d samples", params.modulation.value, n, fc, N)

    out: List[ModulationPoint] = []
    for k in range(N):
        out.append(ModulationPoint(
            index=k,
            voltage=float(noisy[k]),
            clean_voltage=float(clean[k]),
            noisy_voltage=float(noisy[k]),
            baseband=float(baseband[k]),
            bit_value=bits[bit_idx[k]],
        ))
    return out


# ----------------------------
# Down-conversion / detection
# ----------------------------

def lowpass(x: np.ndarray, alpha: float = LPF_ALPHA) -> np.ndarray:
    """y[i] = alpha x[i] + (1 - alpha) y[i-1], y[-1] = 0."""
    x = np.asarray(x, dtype=float)
    if x.size == 0:
        return x
    return lfilter([alpha], [1.0, -(1.0 - alpha)], x)


def downconvert(mod_points: List[ModulationPoint], params: SimulationParameters) -> List[DownConversionPoint]:
    """
    Coherent receiver: mix with the local oscillator, low-pass, sample at the
    bit centre and hard-decide against the decision threshold.

    phase_offset (degrees) and freq_offset (Hz) detune the local oscillator
    itself, so a non-zero phase error degrades the decisions here. This is
    wider than a display-only rotation: `constellation_cloud` takes the same
    phase_offset just to rotate the scatter. Both default to 0, which gives
    the plain mixer 2 v cos(2π f_lo t).
    """
    N = len(mod_points)
    if N == 0:
        return []

    rate = bit_rate(params)
    f_lo = float(params.lo_ratio) * rate + float(params.freq_offset)
    phi = np.deg2rad(float(params.phase_offset))
    thr = float(params.decision_threshold)

    rx = np.array([p.voltage for p in mod_points], dtype=float)
    t = make_time_axis(N, rate * SAMPLES_PER_BIT)

    # front-end BPF is a pass-through
    bpf = rx
    mixed = 2.0 * bpf * np.cos(2 * np.pi * f_lo * t + phi)
    filtered = lowpass(mixed)
    instants = (np.arange(N) % SAMPLES_PER_BIT) == DECISION_OFFSET

    out: List[DownConversionPoint] = []
    for k in range(N):
        y = float(filtered[k])
        decide = bool(instants[k])
        out.append(DownConversionPoint(
            index=k,
            passband_voltage=float(rx[k]),
            bpf_voltage=float(bpf[k]),
            mixed=float(mixed[k]),
            filtered=y,
            sampled=y if decide else 0.0,
            baseband=mod_points[k].baseband,
            sample_instant=y if decide else None,
            recovered_bit=("1" if y > thr else "0") if decide else None,
            decision_threshold=thr,
        ))
    return out


def recovered_bitstream(points: List[DownConversionPoint]) -> str:
    return "".join(p.recovered_bit for p in points if p.recovered_bit is not None)


# ----------------------------
# Constellations
# ----------------------------

def constellation_points(scheme: Union[str, ModulationType]) -> List[ConstellationPoint]:
    """Ideal I/Q points for a scheme; independent of any run."""
    scheme = coerce_enum(ModulationType, scheme)

    if scheme == ModulationType.BASK:
        return [ConstellationPoint(0.0, 0.0, "0"), ConstellationPoint(1.0, 0.0, "1")]

    if scheme == ModulationType.BFSK:
        # both tones sit on the I axis; the symbol lives in the frequency
        return [ConstellationPoint(1.0, 0.0, "f1"), ConstellationPoint(1.0, 0.0, "f2")]

    if scheme == ModulationType.QPSK:
        return [ConstellationPoint(I, Q, f"{b0}{b1}") for (b0, b1), (I, Q) in _QPSK_MAP.items()]

    if scheme == ModulationType.EIGHT_PSK:
        out = []
        for n in range(8):
            angle = 2 * np.pi * n / 8.0
            out.append(ConstellationPoint(float(np.cos(angle)), float(np.sin(angle)), format(n, "03b")))
        return out

    if scheme == ModulationType.SIXTEEN_QAM:
        out = []
        for i_idx, I in enumerate(_QAM16_LEVELS.tolist()):
            for q_idx, Q in enumerate(_QAM16_LEVELS.tolist()):
                out.append(ConstellationPoint(I, Q, format(q_idx * 4 + i_idx, "04b")))
        return out

    return [ConstellationPoint(-1.0, 0.0, "0"), ConstellationPoint(1.0, 0.0, "1")]


def constellation_cloud(
    scheme: Union[str, ModulationType],
    snr_db: float,
    phase_offset: float = 0.0,
    per_symbol: int = 30,
    rng: Optional[np.random.Generator] = None,
) -> List[ConstellationSample]:
    """
    Received-symbol scatter: each ideal point rotated by phase_offset
    (degrees) plus complex Gaussian noise at unit-power SNR.
    """
    rng = rng if rng is not None else np.random.default_rng()
    sigma = np.sqrt(0.5 / (10.0 ** (float(snr_db) / 10.0)))
    phi = np.deg2rad(float(phase_offset))
    c, s = np.cos(phi), np.sin(phi)

    out: List[ConstellationSample] = []
    for p in constellation_points(scheme):
        rot_i = p.i * c - p.q * s
        rot_q = p.i * s + p.q * c
        u1 = rng.random(per_symbol)
        u2 = rng.random(per_symbol)
        u1 = np.where(u1 == 0.0, 1e-3, u1)
        r = sigma * np.sqrt(-2.0 * np.log(u1))
        for ni, nq in zip((r * np.cos(2 * np.pi * u2)).tolist(), (r * np.sin(2 * np.pi * u2)).tolist()):
            out.append(ConstellationSample(i=float(rot_i + ni), q=float(rot_q + nq), cluster=p.bit_value))
    return out
