"""
Velocity-vs-time history for the chart, bounded by pairwise averaging.
"""

from typing import Iterator, List, NamedTuple

import numpy as np

HISTORY_THRESHOLD: int = 1500   # compact once the buffer reaches this many samples
HISTORY_FACTOR: int = 2         # samples averaged into one on compaction


class HistorySample(NamedTuple):
    time: float
    velocity: float


def downsample(samples: List[HistorySample], threshold: int = HISTORY_THRESHOLD,
               factor: int = HISTORY_FACTOR) -> List[HistorySample]:
    """
    Average consecutive groups of ``factor`` samples once ``threshold`` is reached.

    Returns ``samples`` itself when it is shorter than ``threshold``.
    A trailing group with fewer than ``factor`` samples contributes its
    first sample unchanged.
    """
    n = len(samples)
    if n < threshold:
        return samples

    full = (n // factor) * factor
    arr = np.asarray(samples[:full], dtype=float).reshape(-1, factor, 2)
    means = arr.mean(axis=1)
    out = [HistorySample(float(t), float(v)) for t, v in means]
    if full < n:
        out.append(samples[full])
    return out


class HistoryBuffer:
    """Append-only (time, velocity) sequence with whole-buffer compaction."""

    def __init__(self, threshold: int = HISTORY_THRESHOLD, factor: int = HISTORY_FACTOR):
        if factor < 2:
            raise ValueError(f"factor must be >= 2, got {factor}")
        if threshold < factor:
            raise ValueError(f"threshold must be >= factor, got {threshold}")
        self.threshold = threshold
        self.factor = factor
        self._samples: List[HistorySample] = [HistorySample(0.0, 0.0)]
        self.compactions = 0

    def append(self, time: float, velocity: float) -> None:
        self._samples.append(HistorySample(float(time), float(velocity)))
        if len(self._samples) >= self.threshold:
            self._samples = downsample(self._samples, self.threshold, self.factor)
            self.compactions += 1

    def reset(self) -> None:
        """Back to the single (0, 0) sample a fresh run starts with."""
        self._samples = [HistorySample(0.0, 0.0)]
        self.compactions = 0

    def clear(self) -> None:
        self._samples = []
        self.compactions = 0

    def __len__(self) -> int:
        return len(self._samples)

    def __iter__(self) -> Iterator[HistorySample]:
        return iter(self._samples)

    def __getitem__(self, idx):
        return self._samples[idx]

    def to_list(self) -> list:
        return [{"time": round(s.time, 4), "velocity": round(s.velocity, 4)}
                for s in self._samples]
