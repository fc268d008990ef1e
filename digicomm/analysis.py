from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from .params import SimulationParameters

logger = logging.getLogger(__name__)

UNAVAILABLE = "AI analysis unavailable."
DEFAULT_MODEL = "gemini-2.5-pro"
DEFAULT_TIMEOUT = 30.0

# prompt -> free text
TextGenerator = Callable[[str], str]


@dataclass(frozen=True)
class AnalysisResult:
    ok: bool
    text: str
    error: Optional[str] = None


def build_prompt(params: SimulationParameters) -> str:
    mod = params.modulation.value
    quant = params.quantization.value
    return f"""
Analyze this Digital Communication System setup:
- Signal: {params.signal_freq:g}Hz {params.waveform.value}
- Sampling: {params.sampling_freq:g}Hz ({params.sampling.value})
- Quantization: {quant} ({params.bit_depth} bits)
- Passband Modulation: {mod} (Carrier: {params.carrier_ratio:g} x bit rate)
- Channel SNR: {params.snr_db:g} dB
- Demodulation Filter Cutoff: {params.filter_cutoff:g}Hz

Please provide:
1. A brief on how {mod} handles the digital stream and how it's demodulated at the receiver.
2. Discuss the Spectral Efficiency of this scheme compared to others.
3. Evaluate the reconstruction fidelity: explain how the {params.filter_cutoff:g}Hz filter affects the Signal-to-Noise Ratio (SNR) and aliasing in the baseband demodulated output.
4. Mention the benefit of {quant} quantization for this specific source waveform and the overall reconstruction.
Keep it technical and educational for engineering students.
""".strip()


def analyze_signal(
    params: SimulationParameters,
    generate: TextGenerator,
    timeout: float = DEFAULT_TIMEOUT,
) -> AnalysisResult:
    """
    One-shot, best-effort text analysis of a parameter set.

    The generator runs on a daemon thread, so a hung call can neither block
    the caller past `timeout` nor keep the interpreter alive at exit. A
    timeout, an exception or an empty answer yields a failure result instead
    of propagating.
    """
    prompt = build_prompt(params)
    outcome: Dict[str, Any] = {}

    def work() -> None:
        try:
            outcome["text"] = generate(prompt)
        except Exception as e:
            outcome["error"] = e

    worker = threading.Thread(target=work, name="digicomm-analysis", daemon=True)
    worker.start()
    worker.join(timeout)

    if worker.is_alive():
        logger.warning("analysis timed out after %.1fs", timeout)
        return AnalysisResult(ok=False, text=UNAVAILABLE, error=f"timed out after {timeout:g}s")
    if "error" in outcome:
        e = outcome["error"]
        logger.warning("analysis failed: %s", e)
        return AnalysisResult(ok=False, text=UNAVAILABLE, error=str(e) or type(e).__name__)

    text = outcome.get("text")
    if not text:
        return AnalysisResult(ok=False, text="Analysis failed.", error="empty response")
    return AnalysisResult(ok=True, text=str(text))


def gemini_generator(
    api_key: Optional[str] = None,
    model: str = DEFAULT_MODEL,
    temperature: float = 0.7,
    timeout: float = DEFAULT_TIMEOUT,
) -> TextGenerator:
    """
    TextGenerator backed by the google-genai client (install the `ai` extra).
    The key defaults to $GEMINI_API_KEY, then $API_KEY. Requests carry an
    HTTP deadline of `timeout` seconds.
    """
    from google import genai
    from google.genai import types

    key = api_key or os.environ.get("GEMINI_API_KEY") or os.environ.get("API_KEY")
    # HttpOptions.timeout is in milliseconds
    client = genai.Client(
        api_key=key,
        http_options=types.HttpOptions(timeout=int(timeout * 1000)),
    )

    def generate(prompt: str) -> str:
        response = client.models.generate_content(
            model=model,
            contents=prompt,
            config=types.GenerateContentConfig(temperature=temperature),
        )
        return response.text or ""

    return generate
