from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional, Union
import numpy as np


# ----------------------------
# Per-stage point records
# ----------------------------

@dataclass(frozen=True)
class SourceSample:
    time: float
    original: float               # continuous source value
    sampled: float                # sampler output (ideal / natural / flat-top)
    quantized: float              # quantize -> dequantize round trip
    recovered_quantized: float    # raw DAC value at the receiver
    q_error: float
    reconstructed: float          # interpolated + residual noise
    error: float
    binary: Optional[str] = None  # codeword, only at the sampling instant


@dataclass(frozen=True)
class LineCodePoint:
    index: int
    voltage: float
    bit_value: str


@dataclass(frozen=True)
class ModulationPoint:
    index: int
    voltage: float          # what the channel delivers (noisy)
    clean_voltage: float
    noisy_voltage: float
    baseband: float         # I-component x amplitude
    bit_value: str


@dataclass(frozen=True)
class DownConversionPoint:
    index: int
    passband_voltage: float
    bpf_voltage: float
    mixed: float
    filtered: float
    sampled: float
    baseband: float
    sample_instant: Optional[float]
    recovered_bit: Optional[str]
    decision_threshold: float


@dataclass(frozen=True)
class ConstellationPoint:
    i: float
    q: float
    bit_value: str


@dataclass(frozen=True)
class ConstellationSample:
    i: float
    q: float
    cluster: str


@dataclass(frozen=True)
class SpectrumPoint:
    freq: float
    magnitude: float
    is_alias: bool


@dataclass(frozen=True)
class SignalMetrics:
    bitrate: float
    mse: float
    measured_snr: float       # configured channel SNR, passed through
    estimated_snr: float      # from original vs. reconstruction error power
    theoretical_sqnr: float
    nyquist_limit: float
    raw_ber: float
    corrected_ber: float


# ----------------------------
# Bitstring helpers
# ----------------------------

def bits_to_string(bits: Iterable[int]) -> str:
    return "".join("1" if b else "0" for b in bits)


def bit_array(bits: str) -> np.ndarray:
    """'1' -> 1, any other character -> 0."""
    if not bits:
        return np.zeros(0, dtype=int)
    raw = np.frombuffer(bits.encode("ascii", errors="replace"), dtype=np.uint8)
    return (raw == ord("1")).astype(int)


def gen_random_bits(n: int, seed: Optional[int] = None) -> str:
    rng = np.random.default_rng(seed)
    return bits_to_string(int(x) for x in rng.integers(0, 2, size=n))


# ----------------------------
# Time base
# ----------------------------

def make_time_axis(num_samples: int, fs: float) -> np.ndarray:
    return np.arange(num_samples, dtype=float) / float(fs)


def governing_index(t: Union[float, np.ndarray], period: float) -> np.ndarray:
    # floor(t / period), tolerant of t landing a few ulps below an instant
    return np.floor(np.asarray(t, dtype=float) / float(period) + 1e-9).astype(int)


# ----------------------------
# Noise and kernels
# ----------------------------

# At or above this SNR the channel is treated as noiseless.
NOISELESS_SNR_DB = 80.0


def gaussian_noise(
    snr_db: float,
    ref_amplitude: float,
    size: Optional[int] = None,
    rng: Optional[np.random.Generator] = None,
) -> Union[float, np.ndarray]:
    """
    AWGN via the Box-Muller transform.

    Signal reference power is ref_amplitude^2 / 2 (a full-scale sinusoid), so
    sigma = sqrt(Ps / 10^(snr_db/10)). Unseeded unless an rng is passed.
    """
    if snr_db >= NOISELESS_SNR_DB:
        return 0.0 if size is None else np.zeros(int(size), dtype=float)

    ps = (float(ref_amplitude) ** 2) / 2.0
    snr_lin = 10.0 ** (float(snr_db) / 10.0)
    sigma = np.sqrt(ps / (snr_lin or 1.0))

    rng = rng if rng is not None else np.random.default_rng()
    u1 = rng.random(size)
    u2 = rng.random(size)
    # log(0) guard
    u1 = np.where(u1 == 0.0, 1e-4, u1)
    n = sigma * np.sqrt(-2.0 * np.log(u1)) * np.cos(2.0 * np.pi * u2)
    return float(n) if size is None else n


def safe_positive(value: float, fallback: float) -> float:
    v = float(value)
    return v if v > 0 else float(fallback)
