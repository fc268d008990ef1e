from __future__ import annotations

from typing import List, Sequence
import numpy as np

from .params import SimulationParameters
from .utils import SignalMetrics, SourceSample, SpectrumPoint

SPECTRUM_BINS = 300
SPECTRUM_MAX_FREQ = 20000.0
SPECTRUM_TARGET_SAMPLES = 500


def theoretical_sqnr(bit_depth: int) -> float:
    # uniform quantizer, full-scale sinusoid
    return 6.02 * bit_depth + 1.76


def bit_error_rate(tx: str, rx: str) -> float:
    """Hamming distance over the overlapping prefix, normalized by len(tx)."""
    if not tx or not rx:
        return 0.0
    n = min(len(tx), len(rx))
    errors = sum(1 for a, b in zip(tx[:n], rx[:n]) if a != b)
    return errors / len(tx)


def correlation(x: Sequence[float], y: Sequence[float]) -> float:
    """Pearson correlation; 0 when either side has no variance."""
    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    n = min(len(x), len(y))
    if n < 2:
        return 0.0
    x, y = x[:n], y[:n]
    if np.ptp(x) == 0 or np.ptp(y) == 0:
        return 0.0
    rho = np.corrcoef(x, y)[0, 1]
    return float(rho) if np.isfinite(rho) else 0.0


def _estimated_snr_db(original: np.ndarray, error: np.ndarray) -> float:
    ps = float(np.sum(original ** 2))
    pn = float(np.sum(error ** 2))
    if pn == 0.0:
        return float("inf") if ps > 0 else 0.0
    if ps == 0.0:
        return float("-inf")
    return 10.0 * np.log10(ps / pn)


def compute_metrics(
    samples: List[SourceSample],
    params: SimulationParameters,
    tx_bits: str = "",
    rx_bits: str = "",
) -> SignalMetrics:
    original = np.array([s.original for s in samples], dtype=float)
    error = np.array([s.error for s in samples], dtype=float)

    mse = float(np.mean(error ** 2)) if error.size else 0.0
    ber = bit_error_rate(tx_bits, rx_bits)

    return SignalMetrics(
        bitrate=float(params.bit_depth) * float(params.sampling_freq),
        mse=mse,
        measured_snr=float(params.snr_db),
        estimated_snr=_estimated_snr_db(original, error),
        theoretical_sqnr=theoretical_sqnr(params.bit_depth),
        nyquist_limit=2.0 * float(params.signal_freq),
        raw_ber=ber,
        corrected_ber=ber,
    )


def compute_spectrum(values: Sequence[float], sampling_rate: float) -> List[SpectrumPoint]:
    """
    Display spectrum: a direct single-frequency DFT per bin over a strided
    subsample of the input (about 500 points), not an FFT.

    SPECTRUM_BINS bins linearly spaced from 0 to min(fs/2, 20 kHz);
    magnitude = 2 |X(f)| / count.
    """
    x = np.asarray(values, dtype=float)
    n = int(x.size)
    if n == 0:
        return []

    fs = float(sampling_rate) if sampling_rate and sampling_rate > 0 else 1.0
    max_freq = min(fs / 2.0, SPECTRUM_MAX_FREQ)
    stride = max(1, n // SPECTRUM_TARGET_SAMPLES)

    j = np.arange(0, n, stride)
    xs = x[j]
    freqs = np.arange(SPECTRUM_BINS, dtype=float) / SPECTRUM_BINS * max_freq

    angle = 2 * np.pi * np.outer(freqs, j / fs)
    real = np.cos(angle) @ xs
    imag = -(np.sin(angle) @ xs)
    mag = 2.0 * np.sqrt(real ** 2 + imag ** 2) / len(j)

    return [
        SpectrumPoint(freq=float(f), magnitude=float(m), is_alias=bool(f > fs / 2.0))
        for f, m in zip(freqs.tolist(), mag.tolist())
    ]
