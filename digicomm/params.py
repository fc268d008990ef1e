from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple, Type, TypeVar


class ParameterError(ValueError):
    """Raised when a parameter set is rejected at the configuration boundary."""


# ----------------------------
# Scheme enums
# ----------------------------

class WaveformType(str, Enum):
    SINE = "SINE"
    SQUARE = "SQUARE"
    SAWTOOTH = "SAWTOOTH"
    TRIANGLE = "TRIANGLE"


class AudioSourceType(str, Enum):
    SYNTHETIC = "SYNTHETIC"
    FILE = "FILE"
    MICROPHONE = "MICROPHONE"


class SamplingType(str, Enum):
    IDEAL = "IDEAL"
    NATURAL = "NATURAL"
    FLAT_TOP = "FLAT_TOP"


class QuantizationType(str, Enum):
    UNIFORM = "UNIFORM"
    MU_LAW = "MU_LAW"


class LineCodeType(str, Enum):
    UNIPOLAR_NRZ = "UNIPOLAR_NRZ"
    POLAR_NRZ = "POLAR_NRZ"
    UNIPOLAR_RZ = "UNIPOLAR_RZ"
    BIPOLAR_RZ = "BIPOLAR_RZ"
    MANCHESTER = "MANCHESTER"


class ModulationType(str, Enum):
    BASK = "BASK"
    BPSK = "BPSK"
    BFSK = "BFSK"
    QPSK = "QPSK"
    SIXTEEN_QAM = "16-QAM"
    EIGHT_PSK = "8-PSK"


E = TypeVar("E", bound=Enum)


def coerce_enum(enum_cls: Type[E], value: Any) -> E:
    """
    Accept an enum member, its value or its name (case-insensitive).
    Raises ParameterError for anything else.
    """
    if isinstance(value, enum_cls):
        return value
    s = str(value).strip()
    for member in enum_cls:
        if s.upper() in (str(member.value).upper(), member.name.upper()):
            return member
    allowed = ", ".join(str(m.value) for m in enum_cls)
    raise ParameterError(f"Unknown {enum_cls.__name__}: {value!r} (expected one of {allowed})")


_ENUM_FIELDS: Dict[str, Type[Enum]] = {
    "waveform": WaveformType,
    "audio_source": AudioSourceType,
    "sampling": SamplingType,
    "quantization": QuantizationType,
    "line_code": LineCodeType,
    "modulation": ModulationType,
}


# ----------------------------
# Parameter record
# ----------------------------

@dataclass(frozen=True)
class SimulationParameters:
    signal_freq: float = 60.0            # source frequency (Hz)
    sampling_freq: float = 1200.0        # PCM sampling rate (Hz)
    bit_depth: int = 6                   # bits per codeword
    amplitude: float = 0.8               # peak source / carrier amplitude
    snr_db: float = 45.0                 # channel SNR (dB)
    waveform: WaveformType = WaveformType.SINE
    audio_source: AudioSourceType = AudioSourceType.SYNTHETIC
    external_samples: Optional[Tuple[float, ...]] = None
    audio_duration: float = 0.20         # external clip duration (s)
    sampling: SamplingType = SamplingType.FLAT_TOP
    quantization: QuantizationType = QuantizationType.UNIFORM
    line_code: LineCodeType = LineCodeType.UNIPOLAR_NRZ
    modulation: ModulationType = ModulationType.BPSK
    carrier_ratio: float = 8.0           # carrier frequency / bit rate
    duty_cycle: float = 0.5
    filter_cutoff: float = 1000.0        # Hz
    phase_offset: float = 0.0            # LO phase error (degrees)
    freq_offset: float = 0.0             # LO frequency error (Hz)
    channel_bw: float = 8000.0           # Hz
    lo_ratio: float = 8.0                # LO frequency / bit rate
    downconv_filter_cutoff: float = 400.0
    interpolation_window: int = 100
    dac_nonlinearity: float = 0.0
    bpf_bw: float = 2400.0               # Hz
    decision_threshold: float = 0.0

    def __post_init__(self) -> None:
        for name, enum_cls in _ENUM_FIELDS.items():
            object.__setattr__(self, name, coerce_enum(enum_cls, getattr(self, name)))
        if self.external_samples is not None:
            object.__setattr__(
                self, "external_samples", tuple(float(x) for x in self.external_samples)
            )

    # --- derived quantities ---

    @property
    def bit_rate(self) -> float:
        return float(self.sampling_freq) * float(self.bit_depth)

    @property
    def is_external(self) -> bool:
        return self.audio_source != AudioSourceType.SYNTHETIC

    # --- config helpers ---

    def replace(self, **changes: Any) -> "SimulationParameters":
        unknown = set(changes) - {f.name for f in dataclasses.fields(self)}
        if unknown:
            raise ParameterError(f"Unknown parameter(s): {', '.join(sorted(unknown))}")
        return dataclasses.replace(self, **changes)

    @classmethod
    def from_dict(cls, mapping: Mapping[str, Any]) -> "SimulationParameters":
        """
        Build parameters from a plain mapping (e.g. parsed JSON).
        Missing keys keep their defaults; unknown keys are rejected.
        """
        names = {f.name for f in dataclasses.fields(cls)}
        unknown = set(mapping) - names
        if unknown:
            raise ParameterError(f"Unknown parameter(s): {', '.join(sorted(unknown))}")
        return cls(**dict(mapping))

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        for f in dataclasses.fields(self):
            v = getattr(self, f.name)
            out[f.name] = v.value if isinstance(v, Enum) else v
        if out["external_samples"] is not None:
            out["external_samples"] = list(out["external_samples"])
        return out

    def check(self) -> "SimulationParameters":
        """Raise ParameterError if the record violates its invariants."""
        problems = invariant_violations(self)
        if problems:
            raise ParameterError("; ".join(problems))
        return self


DEFAULT_PARAMS = SimulationParameters()


# ----------------------------
# Validation / warnings
# ----------------------------

def invariant_violations(params: SimulationParameters) -> List[str]:
    problems: List[str] = []
    freqs = {
        "signal_freq": params.signal_freq,
        "sampling_freq": params.sampling_freq,
        "carrier_ratio": params.carrier_ratio,
        "lo_ratio": params.lo_ratio,
    }
    for name, f in freqs.items():
        if float(f) <= 0:
            problems.append(f"{name} must be > 0 (got {f:.3g})")
    if int(params.bit_depth) < 1:
        problems.append(f"bit_depth must be >= 1 (got {params.bit_depth})")
    if float(params.amplitude) <= 0:
        problems.append(f"amplitude must be > 0 (got {params.amplitude:.3g})")
    if not 0.0 < float(params.duty_cycle) < 1.0:
        problems.append(f"duty_cycle must be in (0, 1) (got {params.duty_cycle:.3g})")
    if params.is_external and params.audio_duration <= 0:
        problems.append(f"audio_duration must be > 0 for external sources (got {params.audio_duration:.3g})")
    return problems


def parameter_warnings(params: SimulationParameters) -> List[str]:
    """
    Non-fatal diagnostics. Stages never raise on these; they fall back to safe
    values and the pipeline stores the messages on the run.
    """
    warnings = invariant_violations(params)

    # 400 samples per bit -> simulation Nyquist is 200 x bit rate
    if params.carrier_ratio >= 200.0:
        warnings.append(
            f"Carrier ratio {params.carrier_ratio:.3g} >= 200: carrier exceeds simulation Nyquist, aliasing likely."
        )
    if params.modulation == ModulationType.BFSK and params.carrier_ratio * 1.5 >= 200.0:
        warnings.append("BFSK upper tone exceeds simulation Nyquist.")
    if params.lo_ratio != params.carrier_ratio:
        warnings.append(
            f"LO ratio {params.lo_ratio:.3g} != carrier ratio {params.carrier_ratio:.3g}: coherent detection will degrade."
        )
    if params.sampling_freq < 2.0 * params.signal_freq and not params.is_external:
        warnings.append(
            f"Sampling {params.sampling_freq:.3g} Hz is below Nyquist ({2.0 * params.signal_freq:.3g} Hz) for the source."
        )
    if params.is_external and not params.external_samples:
        warnings.append("External source selected without samples; treating the source as silence.")
    return warnings
