# quality.py
"""
Quality arithmetic for the search: clamping, step sizes and the trial history.
"""
import math
from dataclasses import dataclass

# --- CONFIGURATION ---
MIN_QUALITY = 0
MAX_QUALITY = 100

# Step size is |score - threshold| * INTERVAL_SCALE, kept within [1, MAX_INTERVAL].
INTERVAL_SCALE = 250
MAX_INTERVAL = 20
# --- END OF CONFIGURATION ---


def round_to(value: float, precision: int = 2) -> float:
    return round(value, precision)


def clamp_quality(quality) -> int:
    """Map any number onto the integer range [0, 100]."""
    if quality < MIN_QUALITY:
        return MIN_QUALITY
    if quality > MAX_QUALITY:
        return MAX_QUALITY
    return int(round(quality))


def get_quality_interval(score: float, threshold: float, quality: int) -> int:
    """
    Step for the next quality guess. Far from the threshold the search moves
    coarsely, close to it one point at a time. Never returns less than 1.
    `quality` is accepted so callers can pass the full search state; the step
    is applied and clamped by the caller.
    """
    gap = abs(score - threshold)
    if math.isnan(gap):
        return MAX_INTERVAL
    interval = int(round(gap * INTERVAL_SCALE))
    return max(1, min(MAX_INTERVAL, interval))


@dataclass
class TrialRecord:
    score: float
    size: int
    attempts: int = 0


class TrialTable:
    """
    Per-quality history of one top-level search. The same table is carried
    through every threshold relaxation so earlier measurements stay available
    for the final candidate selection.
    """

    def __init__(self):
        self._records = {}

    def record(self, quality: int, score: float, size: int) -> TrialRecord:
        entry = self._records.get(quality)
        if entry is None:
            entry = self._records[quality] = TrialRecord(score=score, size=size)
        else:
            entry.score = score
            entry.size = size
        entry.attempts += 1
        return entry

    def get(self, quality: int):
        return self._records.get(quality)

    def items(self):
        return self._records.items()

    def __contains__(self, quality) -> bool:
        return quality in self._records

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self):
        return iter(self._records)


def get_final_quality(score: float, trials: TrialTable, threshold: float = None,
                      input_size: int = None) -> "tuple[int, int]":
    """
    Pick the smallest recorded output among qualities whose score passes
    `threshold` (defaults to `score`, the score that just converged). Equal sizes
    go to the lower quality. When `input_size` is given, outputs that are not
    smaller than the source are ignored.
    """
    bound = score if threshold is None else threshold
    candidates = [
        (record.size, quality)
        for quality, record in trials.items()
        if record.score <= bound and (input_size is None or record.size < input_size)
    ]
    if not candidates:
        raise ValueError("No recorded trial satisfies the threshold")
    size, quality = min(candidates)
    return quality, size
