from .params import (
    DEFAULT_PARAMS,
    AudioSourceType,
    LineCodeType,
    ModulationType,
    ParameterError,
    QuantizationType,
    SamplingType,
    SimulationParameters,
    WaveformType,
    parameter_warnings,
)
from .a2d import generate_source, bitstream_from_source
from .d2d import encode_line
from .d2a import modulate, downconvert, constellation_points
from .sync import align
from .reconstruct import reconstruct
from .metrics import compute_metrics, compute_spectrum
from .pipeline import SimulationRun, Simulator, run_simulation

__version__ = "0.1.0"
