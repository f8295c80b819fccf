"""
Time parameterization of waypoint trajectories.

TimeOptimalTrajectoryGeneration reads joint limits (from the joint models or
from explicit limit maps), blends the waypoints of a WaypointTrajectory into
a Path, computes the time-optimal Trajectory along it and rewrites the
container with waypoints sampled every ``resample_dt``. Resampling keeps
the start and goal, and every resampled waypoint lies within
``path_tolerance`` of the original polyline.

A waypoint where the motion turns straight back cannot be blended; the
trajectory comes to rest there and restarts along the next part.

``path_tolerance`` is measured in configuration space, so a group mixing
rotational and prismatic joints is rejected.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping, Sequence
from enum import Enum

import numpy as np
from numpy.typing import NDArray

from totg.config import (
    COLLINEAR_COS,
    DEFAULT_MIN_ANGLE_CHANGE,
    DEFAULT_PATH_TOLERANCE,
    DEFAULT_RESAMPLE_DT,
    DEFAULT_SCALING_FACTOR,
    DEFAULT_TIME_STEP,
)
from totg.motion import Path, Trajectory
from totg.protocol.wire import JointLimits
from totg.robot_trajectory import JointKind, WaypointTrajectory

logger = logging.getLogger(__name__)


class LimitType(Enum):
    VELOCITY = "velocity"
    ACCELERATION = "acceleration"


def verify_scaling_factor(requested: float, limit_type: LimitType) -> float:
    """Return ``requested`` if it lies in (0, 1], else the default factor."""
    if 0.0 < requested <= 1.0:
        return requested
    logger.warning(
        "Invalid max_%s_scaling_factor %s specified, defaulting to %s instead.",
        limit_type.value,
        requested,
        DEFAULT_SCALING_FACTOR,
    )
    return DEFAULT_SCALING_FACTOR


def has_mixed_joint_types(trajectory: WaypointTrajectory) -> bool:
    """True if the group combines rotational and prismatic joints."""
    kinds = {joint.kind for joint in trajectory.joints}
    return JointKind.PRISMATIC in kinds and any(kind.is_rotational for kind in kinds)


class TimeOptimalTrajectoryGeneration:
    """
    Resamples a WaypointTrajectory along its time-optimal parameterization.

    Args:
        path_tolerance: Maximum deviation from the intermediate waypoints
        resample_dt: Time between output waypoints
        min_angle_change: Waypoints where no joint moves more than this are dropped
    """

    def __init__(
        self,
        path_tolerance: float = DEFAULT_PATH_TOLERANCE,
        resample_dt: float = DEFAULT_RESAMPLE_DT,
        min_angle_change: float = DEFAULT_MIN_ANGLE_CHANGE,
    ):
        self.path_tolerance = path_tolerance
        self.resample_dt = resample_dt
        self.min_angle_change = min_angle_change

    def compute_time_stamps(
        self,
        trajectory: WaypointTrajectory,
        max_velocity_scaling_factor: float = 1.0,
        max_acceleration_scaling_factor: float = 1.0,
    ) -> bool:
        """
        Time-parameterize ``trajectory`` in place using the joint model limits.

        Returns:
            True on success. On failure the trajectory is left untouched.
        """
        return self.compute_time_stamps_with_limits(
            trajectory, {}, {}, max_velocity_scaling_factor, max_acceleration_scaling_factor
        )

    def compute_time_stamps_with_limits(
        self,
        trajectory: WaypointTrajectory,
        velocity_limits: Mapping[str, float],
        acceleration_limits: Mapping[str, float],
        max_velocity_scaling_factor: float = 1.0,
        max_acceleration_scaling_factor: float = 1.0,
    ) -> bool:
        """
        Time-parameterize ``trajectory`` in place with named limits.

        Joints missing from a limit map fall back to their joint model.
        """
        if trajectory.empty():
            return True
        if has_mixed_joint_types(trajectory):
            logger.error(
                "There is a combination of rotational and prismatic joints in the group; "
                "a single path_tolerance cannot apply to both"
            )
            return False

        velocity_scaling = verify_scaling_factor(max_velocity_scaling_factor, LimitType.VELOCITY)
        acceleration_scaling = verify_scaling_factor(
            max_acceleration_scaling_factor, LimitType.ACCELERATION
        )

        max_velocity = np.empty(trajectory.dof, dtype=np.float64)
        max_acceleration = np.empty(trajectory.dof, dtype=np.float64)
        for j, joint in enumerate(trajectory.joints):
            vel = velocity_limits.get(joint.name, joint.max_velocity)
            if vel is None:
                logger.error(
                    "No velocity limit was defined for joint %s! "
                    "Define it in the joint model or pass it explicitly",
                    joint.name,
                )
                return False
            if not vel > 0.0:
                logger.error(
                    "Invalid max_velocity %s specified for '%s', must be greater than 0.0",
                    vel,
                    joint.name,
                )
                return False
            acc = acceleration_limits.get(joint.name, joint.max_acceleration)
            if acc is None:
                logger.error(
                    "No acceleration limit was defined for joint %s! "
                    "Define it in the joint model or pass it explicitly",
                    joint.name,
                )
                return False
            if not acc > 0.0:
                logger.error(
                    "Invalid max_acceleration %s specified for '%s', must be greater than 0.0",
                    acc,
                    joint.name,
                )
                return False
            max_velocity[j] = vel * velocity_scaling
            max_acceleration[j] = acc * acceleration_scaling

        return self._parameterize(trajectory, max_velocity, max_acceleration)

    def compute_time_stamps_with_joint_limits(
        self,
        trajectory: WaypointTrajectory,
        joint_limits: Sequence[JointLimits],
        max_velocity_scaling_factor: float = 1.0,
        max_acceleration_scaling_factor: float = 1.0,
    ) -> bool:
        """Time-parameterize ``trajectory`` in place with per-joint limit records."""
        velocity_limits: dict[str, float] = {}
        acceleration_limits: dict[str, float] = {}
        for limits in joint_limits:
            if limits.has_velocity_limits:
                velocity_limits[limits.joint_name] = limits.max_velocity
            if limits.has_acceleration_limits:
                acceleration_limits[limits.joint_name] = limits.max_acceleration
        return self.compute_time_stamps_with_limits(
            trajectory,
            velocity_limits,
            acceleration_limits,
            max_velocity_scaling_factor,
            max_acceleration_scaling_factor,
        )

    def _distinct_points(self, positions: NDArray[np.float64]) -> list[NDArray[np.float64]]:
        """Rows of positions with near-duplicates removed; first and last input kept."""
        points = [positions[0].copy()]
        for p in range(1, len(positions)):
            if np.any(np.abs(positions[p] - points[-1]) > self.min_angle_change):
                points.append(positions[p].copy())
            elif p == len(positions) - 1:
                points[-1] = positions[p].copy()
        return points

    def _parameterize(
        self,
        trajectory: WaypointTrajectory,
        max_velocity: NDArray[np.float64],
        max_acceleration: NDArray[np.float64],
    ) -> bool:
        points = self._distinct_points(trajectory.unwound_positions())

        if len(points) == 1:
            zeros = np.zeros(trajectory.dof)
            trajectory.clear()
            trajectory.add_suffix_waypoint(points[0], 0.0, zeros, zeros)
            return True

        # A path cannot blend a reversal, so the motion stops there and restarts
        parts: list[Trajectory] = []
        for part in _split_at_reversals(points):
            path = Path.create(part, self.path_tolerance)
            if path is None:
                logger.error("Unable to blend the waypoints into a path.")
                return False
            parameterized = Trajectory.create(path, max_velocity, max_acceleration, DEFAULT_TIME_STEP)
            if parameterized is None or not parameterized.valid:
                logger.error("Unable to parameterize trajectory.")
                return False
            parts.append(parameterized)

        offsets = np.cumsum([0.0] + [part.duration for part in parts])
        duration = float(offsets[-1])
        sample_count = math.ceil(duration / self.resample_dt)
        times = np.minimum(duration, np.arange(sample_count + 1) * self.resample_dt)

        positions = np.empty((len(times), trajectory.dof), dtype=np.float64)
        velocities = np.empty_like(positions)
        accelerations = np.empty_like(positions)
        owner = np.clip(np.searchsorted(offsets, times, side="right") - 1, 0, len(parts) - 1)
        for k, part in enumerate(parts):
            mask = owner == k
            if np.any(mask):
                positions[mask], velocities[mask], accelerations[mask] = part.sample(
                    times[mask] - offsets[k]
                )

        trajectory.clear()
        last_t = 0.0
        for k, t in enumerate(times):
            trajectory.add_suffix_waypoint(
                positions[k], float(t) - last_t, velocities[k], accelerations[k]
            )
            last_t = float(t)
        logger.debug(
            "Resampled %d waypoints over %.4fs (dt=%.4f, %d stop(s) at reversals)",
            len(times),
            duration,
            self.resample_dt,
            len(parts) - 1,
        )
        return True


def _split_at_reversals(points: list[NDArray[np.float64]]) -> list[list[NDArray[np.float64]]]:
    """
    Split the waypoints at every waypoint where the motion turns straight back.

    Consecutive parts share the reversal waypoint.
    """
    parts = [[points[0]]]
    for i in range(1, len(points)):
        parts[-1].append(points[i])
        if i + 1 < len(points):
            incoming = points[i] - points[i - 1]
            outgoing = points[i + 1] - points[i]
            cos = float(np.dot(incoming, outgoing)) / float(
                np.linalg.norm(incoming) * np.linalg.norm(outgoing)
            )
            if cos < -COLLINEAR_COS:
                logger.debug("Stopping at reversal waypoint %d", i)
                parts.append([points[i]])
    return parts


def totg_compute_time_stamps(
    num_waypoints: int,
    trajectory: WaypointTrajectory,
    max_velocity_scaling_factor: float = 1.0,
    max_acceleration_scaling_factor: float = 1.0,
    path_tolerance: float = DEFAULT_PATH_TOLERANCE,
    min_angle_change: float = DEFAULT_MIN_ANGLE_CHANGE,
) -> bool:
    """
    Time-parameterize ``trajectory`` so that it ends up with about
    ``num_waypoints`` equally spaced waypoints (plus or minus one from rounding).

    The optimal duration is found with the default resampling period first,
    then the parameterization is redone with
    ``resample_dt = duration / (num_waypoints - 1)``.
    """
    if num_waypoints < 2:
        logger.error(
            "Invalid number of waypoints %d, must be at least 2 (start and goal)", num_waypoints
        )
        return False

    untimed = WaypointTrajectory(trajectory.joints)
    for wp in trajectory:
        untimed.add_suffix_waypoint(wp.positions, wp.duration_from_previous)

    first_pass = TimeOptimalTrajectoryGeneration(
        path_tolerance=path_tolerance, min_angle_change=min_angle_change
    )
    if not first_pass.compute_time_stamps(
        trajectory, max_velocity_scaling_factor, max_acceleration_scaling_factor
    ):
        return False
    duration = trajectory.duration
    if duration <= 0.0:
        # Single distinct point: nothing to resample
        return True

    resample_dt = duration / (num_waypoints - 1)
    second_pass = TimeOptimalTrajectoryGeneration(
        path_tolerance=path_tolerance,
        resample_dt=resample_dt,
        min_angle_change=min_angle_change,
    )
    trajectory.clear()
    for wp in untimed:
        trajectory.add_suffix_waypoint(wp.positions, wp.duration_from_previous)
    return second_pass.compute_time_stamps(
        trajectory, max_velocity_scaling_factor, max_acceleration_scaling_factor
    )
