from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple
import numpy as np

from .a2d import bitstream_from_source, generate_source
from .d2a import (
    SAMPLES_PER_BIT,
    bit_rate,
    constellation_points,
    downconvert,
    modulate,
    recovered_bitstream,
)
from .d2d import POINTS_PER_BIT, encode_line
from .metrics import compute_metrics, compute_spectrum
from .params import SimulationParameters, parameter_warnings
from .reconstruct import reconstruct
from .sync import DEFAULT_SEARCH, Alignment, align
from .utils import (
    ConstellationPoint,
    DownConversionPoint,
    LineCodePoint,
    ModulationPoint,
    SignalMetrics,
    SourceSample,
    SpectrumPoint,
)

logger = logging.getLogger(__name__)

# Placeholder stream when the source produced no codewords
IDLE_BITS = "00000000"
LINE_CODE_PREVIEW_BITS = 64


@dataclass
class SimulationRun:
    params: SimulationParameters
    source: List[SourceSample]            # transmit side trace
    tx_bits: str
    line_code: List[LineCodePoint]
    modulation: List[ModulationPoint]
    downconversion: List[DownConversionPoint]
    rx_raw_bits: str                      # decisions before alignment
    alignment: Alignment
    rx_bits: str                          # aligned stream fed to the decoder
    reconstruction: List[SourceSample]
    constellation: List[ConstellationPoint]
    spectra: Dict[str, List[SpectrumPoint]]
    metrics: SignalMetrics
    warnings: List[str] = field(default_factory=list)


def _trace_rate(samples: List[SourceSample]) -> float:
    if not samples:
        return 1000.0
    span = samples[-1].time - samples[0].time
    return (len(samples) / (span or 0.001)) or 1000.0


def compute_spectra(
    reconstruction: List[SourceSample],
    line_code: List[LineCodePoint],
    modulation: List[ModulationPoint],
    downconversion: List[DownConversionPoint],
    params: SimulationParameters,
) -> Dict[str, List[SpectrumPoint]]:
    fs_trace = _trace_rate(reconstruction)
    rate = bit_rate(params)
    fs_line = rate * POINTS_PER_BIT
    fs_mod = rate * SAMPLES_PER_BIT

    def col(points, name):
        return np.array([getattr(p, name) for p in points], dtype=float)

    return {
        "input": compute_spectrum(col(reconstruction, "original"), fs_trace),
        "adc": compute_spectrum(col(reconstruction, "sampled"), fs_trace),
        "quantized": compute_spectrum(col(reconstruction, "quantized"), fs_trace),
        "baseband": compute_spectrum(col(line_code, "voltage"), fs_line),
        "passband": compute_spectrum(col(modulation, "voltage"), fs_mod),
        "noisy_passband": compute_spectrum(col(modulation, "noisy_voltage"), fs_mod),
        "bpf": compute_spectrum(col(downconversion, "bpf_voltage"), fs_mod),
        "demod": compute_spectrum(col(downconversion, "mixed"), fs_mod),
        "recovered_quantized": compute_spectrum(col(reconstruction, "recovered_quantized"), fs_trace),
        "recovered": compute_spectrum(col(reconstruction, "reconstructed"), fs_trace),
    }


def run_simulation(
    params: SimulationParameters,
    *,
    rng: Optional[np.random.Generator] = None,
    search: Tuple[int, int] = DEFAULT_SEARCH,
) -> SimulationRun:
    """
    One full pass, leaves first:

      source -> PCM bitstream -> passband modulation + AWGN -> down-conversion
      -> bit decisions -> alignment -> PCM decode / interpolation -> metrics

    Every stage returns fresh records; nothing is shared with a previous run.
    """
    warnings = parameter_warnings(params)
    for w in warnings:
        logger.warning("parameter warning: %s", w)

    source = generate_source(params)
    tx_bits = bitstream_from_source(source)

    modulation = modulate(tx_bits or IDLE_BITS, params, rng=rng)
    downconversion = downconvert(modulation, params)
    rx_raw = recovered_bitstream(downconversion)

    max_offset, window = search
    alignment = align(tx_bits, rx_raw, max_offset=max_offset, window=window)
    rx_bits = alignment.aligned_bits

    reconstruction = reconstruct(source, rx_bits, params, rng=rng)
    metrics = compute_metrics(reconstruction, params, tx_bits, rx_bits)

    line_code = encode_line(
        tx_bits[:LINE_CODE_PREVIEW_BITS] or IDLE_BITS, params.line_code, params.duty_cycle
    )
    constellation = constellation_points(params.modulation)
    spectra = compute_spectra(reconstruction, line_code, modulation, downconversion, params)

    logger.info(
        "run: %d tx bits, offset %d, BER %.4g, MSE %.4g",
        len(tx_bits), alignment.offset, metrics.raw_ber, metrics.mse,
    )

    return SimulationRun(
        params=params,
        source=source,
        tx_bits=tx_bits,
        line_code=line_code,
        modulation=modulation,
        downconversion=downconversion,
        rx_raw_bits=rx_raw,
        alignment=alignment,
        rx_bits=rx_bits,
        reconstruction=reconstruction,
        constellation=constellation,
        spectra=spectra,
        metrics=metrics,
        warnings=warnings,
    )


class Simulator:
    """
    Holds the most recent run. A run is reused only for the very same
    parameter object; any new parameter record recomputes end to end.
    """

    def __init__(self, rng: Optional[np.random.Generator] = None):
        self._rng = rng
        self._params: Optional[SimulationParameters] = None
        self._run: Optional[SimulationRun] = None

    @property
    def current(self) -> Optional[SimulationRun]:
        return self._run

    def run(self, params: SimulationParameters) -> SimulationRun:
        if self._run is not None and params is self._params:
            return self._run
        self._run = run_simulation(params, rng=self._rng)
        self._params = params
        return self._run
