"""
Time-to-segment lookup for sampled profiles.

Sequential queries (the common case when streaming a trajectory) hit the
cached segment or its successor; anything else falls back to a binary search.
"""

from __future__ import annotations

import threading

import numpy as np
from numpy.typing import NDArray


class SegmentCache:
    """
    Remembers the last segment index resolved for a time query.

    Segment k spans [times[k-1], times[k]] for k in [1, len(times) - 1].
    The cache only speeds lookups up; every query returns the same index
    with or without it.

    Attributes:
        enabled: When False every lookup goes straight to the binary search
    """

    __slots__ = ("_times", "_last", "_lock", "enabled")

    def __init__(self, times: NDArray[np.float64], enabled: bool = True):
        if len(times) < 2:
            raise ValueError("SegmentCache needs at least 2 breakpoints")
        self._times = times
        self._last = 1
        self._lock = threading.Lock()
        self.enabled = enabled

    def reset(self) -> None:
        """Forget the last resolved segment."""
        with self._lock:
            self._last = 1

    def segment(self, t: float) -> int:
        """Index k of the segment containing time t (already clamped to the time range)."""
        times = self._times
        n = len(times)
        if not self.enabled:
            return self._search(t)

        with self._lock:
            k = self._last
            if times[k - 1] <= t < times[k]:
                return k
            if k + 1 < n and times[k] <= t < times[k + 1]:
                self._last = k + 1
                return k + 1
            k = self._search(t)
            self._last = k
            return k

    def _search(self, t: float) -> int:
        times = self._times
        k = int(np.searchsorted(times, t, side="right"))
        return min(max(k, 1), len(times) - 1)
