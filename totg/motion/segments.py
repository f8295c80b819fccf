"""
Geometric primitives that make up a blended waypoint path.

A PathSegment is a tagged variant: ``kind`` selects which geometry functions
apply. Linear segments carry their two endpoints; circular blends carry the
arc center, radius and the orthonormal pair (x, y) spanning the arc plane.
All queries take a local arc-length offset measured from the segment start.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from enum import Enum

import numpy as np
from numpy.typing import NDArray

from totg.config import COLLINEAR_COS, EPS


class SegmentKind(Enum):
    """Path segment variants."""

    LINEAR = "linear"
    CIRCULAR = "circular"


@dataclass(frozen=True, slots=True, eq=False)
class PathSegment:
    """
    One piece of a Path, parametrized by local arc length in [0, length].

    Attributes:
        kind: Variant tag
        length: Arc length of this segment
        offset: Arc-length position of the segment start within the whole path
        start, end: Endpoints (LINEAR only)
        center, radius, x, y: Arc geometry (CIRCULAR only)
    """

    kind: SegmentKind
    length: float
    offset: float = 0.0
    start: NDArray[np.float64] | None = field(default=None, repr=False)
    end: NDArray[np.float64] | None = field(default=None, repr=False)
    center: NDArray[np.float64] | None = field(default=None, repr=False)
    radius: float = 1.0
    x: NDArray[np.float64] | None = field(default=None, repr=False)
    y: NDArray[np.float64] | None = field(default=None, repr=False)

    def config(self, s: float) -> NDArray[np.float64]:
        """Configuration at local arc length s."""
        if self.kind is SegmentKind.LINEAR:
            frac = min(1.0, max(0.0, s / self.length))
            return (1.0 - frac) * self.start + frac * self.end
        angle = s / self.radius
        return self.center + self.radius * (self.x * math.cos(angle) + self.y * math.sin(angle))

    def tangent(self, s: float) -> NDArray[np.float64]:
        """Unit tangent (first derivative w.r.t. arc length) at local arc length s."""
        if self.kind is SegmentKind.LINEAR:
            return (self.end - self.start) / self.length
        angle = s / self.radius
        return -self.x * math.sin(angle) + self.y * math.cos(angle)

    def curvature(self, s: float) -> NDArray[np.float64]:
        """Second derivative w.r.t. arc length at local arc length s."""
        if self.kind is SegmentKind.LINEAR:
            return np.zeros_like(self.start)
        angle = s / self.radius
        return -(self.x * math.cos(angle) + self.y * math.sin(angle)) / self.radius

    def switching_points(self) -> list[float]:
        """
        Local arc lengths where a curvature component is extremal.

        Linear segments have none. On an arc, component i of the curvature is
        -(x_i cos(a) + y_i sin(a)) / r, extremal where tan(a) = y_i / x_i.
        """
        if self.kind is SegmentKind.LINEAR:
            return []
        points = []
        for x_i, y_i in zip(self.x, self.y):
            switching_angle = math.atan2(y_i, x_i)
            if switching_angle < 0.0:
                switching_angle += math.pi
            point = switching_angle * self.radius
            if point < self.length:
                points.append(point)
        points.sort()
        return points

    def placed_at(self, offset: float) -> PathSegment:
        """Copy of this segment positioned at ``offset`` within its path."""
        return replace(self, offset=offset)


def _frozen(values: NDArray[np.float64]) -> NDArray[np.float64]:
    """Read-only float64 copy, so a segment cannot change once built."""
    arr = np.array(values, dtype=np.float64)
    arr.setflags(write=False)
    return arr


def linear_segment(start: NDArray[np.float64], end: NDArray[np.float64]) -> PathSegment:
    """Straight segment from ``start`` to ``end``."""
    start = _frozen(start)
    end = _frozen(end)
    return PathSegment(
        kind=SegmentKind.LINEAR,
        length=float(np.linalg.norm(end - start)),
        start=start,
        end=end,
    )


def circular_blend(
    start: NDArray[np.float64],
    intersection: NDArray[np.float64],
    end: NDArray[np.float64],
    max_deviation: float,
) -> PathSegment | None:
    """
    Circular arc rounding the corner at ``intersection``.

    The arc is tangent to the runs start->intersection and intersection->end.
    Its tangent points are no farther from the corner than either run allows,
    and the arc never strays more than ``max_deviation`` from the corner.

    Args:
        start: Point on the incoming run (typically its midpoint)
        intersection: Corner waypoint
        end: Point on the outgoing run (typically its midpoint)
        max_deviation: Maximum distance between arc and corner

    Returns:
        The blend segment, or None when the runs are parallel (no corner to
        round) or degenerate.
    """
    start = np.asarray(start, dtype=np.float64)
    intersection = np.asarray(intersection, dtype=np.float64)
    end = np.asarray(end, dtype=np.float64)

    start_distance = float(np.linalg.norm(intersection - start))
    end_distance = float(np.linalg.norm(end - intersection))
    if start_distance < EPS or end_distance < EPS:
        return None

    start_direction = (intersection - start) / start_distance
    end_direction = (end - intersection) / end_distance
    start_dot_end = float(np.dot(start_direction, end_direction))
    if abs(start_dot_end) > COLLINEAR_COS:
        return None

    angle = math.acos(start_dot_end)
    half = 0.5 * angle

    # Distance from the corner to the tangent points
    distance = min(start_distance, end_distance)
    distance = min(distance, max_deviation * math.sin(half) / (1.0 - math.cos(half)))

    radius = distance / math.tan(half)
    bisector = end_direction - start_direction
    center = intersection + bisector / np.linalg.norm(bisector) * radius / math.cos(half)
    x = intersection - distance * start_direction - center
    x = x / np.linalg.norm(x)

    return PathSegment(
        kind=SegmentKind.CIRCULAR,
        length=angle * radius,
        center=_frozen(center),
        radius=radius,
        x=_frozen(x),
        y=_frozen(start_direction),
    )
