from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Tuple

# (max trial offset, comparison window) in bits
DEFAULT_SEARCH: Tuple[int, int] = (10, 30)
ANALYSIS_SEARCH: Tuple[int, int] = (20, 40)

MIN_RX_BITS = 10


@dataclass(frozen=True)
class Alignment:
    offset: int
    aligned_bits: str
    mismatches: int     # inside the comparison window at the chosen offset


def _window_mismatches(tx: str, rx: str, offset: int, window: int) -> int:
    n = min(window, len(rx) - offset)
    errs = 0
    for i in range(n):
        # tx positions past its end never match
        if i >= len(tx) or tx[i] != rx[i + offset]:
            errs += 1
    return errs


def align(tx: str, rx: str, max_offset: int = DEFAULT_SEARCH[0], window: int = DEFAULT_SEARCH[1]) -> Alignment:
    """
    Estimate the delay of rx relative to tx by sliding rx over the first
    `window` bits of tx, then realign rx to tx's length.

    Offsets are tried in increasing order and only a strictly smaller
    mismatch count replaces the current best, so ties go to the smallest
    offset. Short or empty streams return tx unchanged.
    """
    if not tx or not rx or len(rx) < MIN_RX_BITS:
        return Alignment(offset=0, aligned_bits=tx, mismatches=0)

    best_offset = 0
    best_errs = None
    for offset in range(int(max_offset)):
        if len(rx) - offset <= 0:
            break
        errs = _window_mismatches(tx, rx, offset, int(window))
        if best_errs is None or errs < best_errs:
            best_errs = errs
            best_offset = offset

    aligned = rx[best_offset:best_offset + len(tx)].ljust(len(tx), "0")
    return Alignment(offset=best_offset, aligned_bits=aligned, mismatches=int(best_errs or 0))


def align_for_analysis(tx: str, rx: str) -> Alignment:
    """Wider search used by the bit-comparison view: up to min(20, len(rx)/2) offsets, 40-bit window."""
    max_offset, window = ANALYSIS_SEARCH
    # offsets strictly below len(rx) / 2
    limit = min(max_offset, -(-len(rx) // 2)) if rx else 0
    return align(tx, rx, max_offset=limit, window=window)


def compare_streams(tx: str, rx: str, offset: int) -> Tuple[List[Dict[str, Any]], int]:
    """
    Per-bit comparison of tx against rx shifted by offset.
    Returns (rows, total errors); rows hold index / tx / rx / is_error.
    """
    rows: List[Dict[str, Any]] = []
    errors = 0
    for i in range(max(0, len(rx) - offset)):
        t_bit = tx[i] if i < len(tx) else None
        r_bit = rx[i + offset]
        is_error = t_bit != r_bit
        errors += int(is_error)
        rows.append({"index": i, "tx": t_bit, "rx": r_bit, "is_error": is_error})
    return rows, errors
