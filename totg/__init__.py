"""
totg Python Package

Time-optimal trajectory generation along blended joint-space waypoint paths
under per-joint velocity and acceleration limits.

Key components:
- Path: waypoints joined by straight runs and circular corner blends
- Trajectory: time-optimal phase-plane parameterization of a Path, with
  position/velocity/acceleration queries over time
- TimeOptimalTrajectoryGeneration: resamples a WaypointTrajectory at a fixed
  time step along its optimal parameterization
"""

from ._version import __version__
from .motion import Path, Trajectory
from .robot_trajectory import JointKind, JointModel, WaypointTrajectory
from .time_parameterization import TimeOptimalTrajectoryGeneration, totg_compute_time_stamps

__all__ = [
    "__version__",
    "Path",
    "Trajectory",
    "JointKind",
    "JointModel",
    "WaypointTrajectory",
    "TimeOptimalTrajectoryGeneration",
    "totg_compute_time_stamps",
]
