"""
Arc-length parametrized path through configuration space.

Straight runs between waypoints are joined by circular blends so that the
tangent is continuous everywhere. The blend at an interior waypoint spans at
most half of each adjacent run, so neighbouring blends never overlap.
"""

from __future__ import annotations

import bisect
import logging
from collections.abc import Sequence

import numpy as np
from numpy.typing import ArrayLike, NDArray

from totg.config import COLLINEAR_COS, DEFAULT_PATH_TOLERANCE, EPS
from totg.motion.segments import PathSegment, circular_blend, linear_segment

logger = logging.getLogger(__name__)


class Path:
    """
    Immutable blended waypoint path. Build with :meth:`Path.create`.

    Attributes:
        length: Total arc length
        segments: Contiguous segments covering [0, length]
        switching_points: (arc_length, is_discontinuity) pairs, strictly
            increasing, all < length
    """

    __slots__ = ("length", "segments", "switching_points", "_offsets", "_switch_positions", "_dim")

    def __init__(
        self,
        segments: list[PathSegment],
        switching_points: list[tuple[float, bool]],
        length: float,
    ):
        self.segments: tuple[PathSegment, ...] = tuple(segments)
        self.switching_points: tuple[tuple[float, bool], ...] = tuple(switching_points)
        self.length = length
        self._offsets = np.array([seg.offset for seg in segments], dtype=np.float64)
        self._offsets.setflags(write=False)
        self._switch_positions = [position for position, _ in switching_points]
        self._dim = segments[0].config(0.0).shape[0]

    @classmethod
    def create(
        cls,
        waypoints: Sequence[ArrayLike] | NDArray[np.float64],
        max_deviation: float = DEFAULT_PATH_TOLERANCE,
    ) -> Path | None:
        """
        Blend a waypoint sequence into a differentiable path.

        Args:
            waypoints: Ordered configurations, all of the same dimension
            max_deviation: Maximum distance between the path and any interior
                waypoint; must be positive

        Returns:
            The path, or None if it cannot be built (fewer than two waypoints,
            non-positive deviation, mismatched dimensions, coincident
            consecutive waypoints, or a run that doubles back on itself).
        """
        if len(waypoints) < 2:
            logger.error("A path needs at least 2 waypoints, got %d", len(waypoints))
            return None
        if not max_deviation > 0.0:
            logger.error("Path max_deviation must be greater than 0.0, got %s", max_deviation)
            return None

        try:
            points = np.array(waypoints, dtype=np.float64)
        except ValueError:
            logger.error("Waypoints must all have the same dimension")
            return None
        if points.ndim != 2 or points.shape[1] == 0:
            logger.error("Waypoints must be non-empty vectors, got shape %s", points.shape)
            return None
        if not np.all(np.isfinite(points)):
            logger.error("Waypoints must be finite")
            return None

        deltas = np.diff(points, axis=0)
        run_lengths = np.linalg.norm(deltas, axis=1)
        if np.any(run_lengths < EPS):
            idx = int(np.argmax(run_lengths < EPS))
            logger.error("Waypoints %d and %d coincide", idx, idx + 1)
            return None
        directions = deltas / run_lengths[:, None]
        turns = np.einsum("ij,ij->i", directions[:-1], directions[1:])
        if np.any(turns < -COLLINEAR_COS):
            idx = int(np.argmax(turns < -COLLINEAR_COS)) + 1
            logger.error("Path reverses direction at waypoint %d; it cannot be blended", idx)
            return None

        segments = _blend(points, max_deviation)
        return cls._assemble(segments)

    @classmethod
    def _assemble(cls, segments: list[PathSegment]) -> Path:
        """Place segments end to end and collect the switching points."""
        placed: list[PathSegment] = []
        switching_points: list[tuple[float, bool]] = []
        length = 0.0
        for segment in segments:
            placed.append(segment.placed_at(length))
            for local in segment.switching_points():
                candidate = length + local
                if not switching_points or candidate > switching_points[-1][0]:
                    switching_points.append((candidate, False))
            length += segment.length
            while switching_points and switching_points[-1][0] >= length:
                switching_points.pop()
            switching_points.append((length, True))
        # The path end is not a switching point
        switching_points.pop()

        logger.debug(
            "Path: %d segments, length=%.6f, %d switching points",
            len(placed),
            length,
            len(switching_points),
        )
        return cls(placed, switching_points, length)

    @property
    def dim(self) -> int:
        """Configuration-space dimension."""
        return self._dim

    def _segment_at(self, s: float) -> tuple[PathSegment, float]:
        """Segment containing arc length s, and s relative to that segment."""
        idx = int(np.searchsorted(self._offsets, s, side="right")) - 1
        idx = min(max(idx, 0), len(self.segments) - 1)
        segment = self.segments[idx]
        return segment, s - segment.offset

    def config(self, s: float) -> NDArray[np.float64]:
        """Configuration at arc length s."""
        segment, local = self._segment_at(s)
        return segment.config(local)

    def tangent(self, s: float) -> NDArray[np.float64]:
        """Unit tangent at arc length s."""
        segment, local = self._segment_at(s)
        return segment.tangent(local)

    def curvature(self, s: float) -> NDArray[np.float64]:
        """Curvature vector (second derivative) at arc length s."""
        segment, local = self._segment_at(s)
        return segment.curvature(local)

    def next_switching_point(self, s: float) -> tuple[float, bool]:
        """
        First switching point strictly after arc length s.

        Returns:
            (arc_length, is_discontinuity); (length, True) when none remain
        """
        idx = bisect.bisect_right(self._switch_positions, s)
        if idx == len(self.switching_points):
            return self.length, True
        return self.switching_points[idx]


def _blend(points: NDArray[np.float64], max_deviation: float) -> list[PathSegment]:
    """Straight runs between waypoints, with each interior corner rounded."""
    segments: list[PathSegment] = []
    start_config = points[0]
    n = len(points)
    for i in range(1, n):
        if i + 1 < n:
            blend = circular_blend(
                0.5 * (points[i - 1] + points[i]),
                points[i],
                0.5 * (points[i] + points[i + 1]),
                max_deviation,
            )
            if blend is None:
                # Collinear corner: run straight through the waypoint
                end_config = points[i]
            else:
                end_config = blend.config(0.0)
            if np.linalg.norm(end_config - start_config) > EPS:
                segments.append(linear_segment(start_config, end_config))
            if blend is not None:
                segments.append(blend)
                start_config = blend.config(blend.length)
            else:
                start_config = end_config
        else:
            segments.append(linear_segment(start_config, points[i]))
    return segments
