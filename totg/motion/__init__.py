"""
Time-optimal trajectory generation along blended waypoint paths.

A Path rounds the corners of a piecewise-linear waypoint sequence with
circular blends. A Trajectory assigns the fastest timing to a Path that
respects per-joint velocity and acceleration limits, using phase-plane
integration with switching points.
"""

from totg.motion.limits import LimitCurves
from totg.motion.lookup import SegmentCache
from totg.motion.path import Path
from totg.motion.phase_plane import PhasePlaneIntegrator, SwitchingPoint, TrajectoryStep
from totg.motion.segments import PathSegment, SegmentKind, circular_blend, linear_segment
from totg.motion.trajectory import Trajectory

__all__ = [
    # Geometry
    "Path",
    "PathSegment",
    "SegmentKind",
    "linear_segment",
    "circular_blend",
    # Phase plane
    "LimitCurves",
    "PhasePlaneIntegrator",
    "SwitchingPoint",
    "TrajectoryStep",
    # Time parameterization
    "Trajectory",
    "SegmentCache",
]
