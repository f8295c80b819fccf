"""
Time-optimal trajectory along a blended path.

Trajectory.create runs the phase-plane integration over a Path, assigns a
time to every (s, sd) breakpoint and exposes position/velocity/acceleration
queries over time. Between breakpoints the path position follows constant
path acceleration.

Usage:
    path = Path.create(waypoints, max_deviation=0.1)
    traj = Trajectory.create(path, max_velocity, max_acceleration)
    if traj is not None and traj.valid:
        q = traj.position_at(0.5 * traj.duration)
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

import numpy as np
from numpy.typing import ArrayLike, NDArray

from totg.config import DEFAULT_TIME_STEP, MAX_SWITCHING_ITERATIONS
from totg.motion.limits import LimitCurves
from totg.motion.lookup import SegmentCache
from totg.motion.path import Path
from totg.motion.phase_plane import PhasePlaneIntegrator, TrajectoryStep
from totg.utils.errors import TrajectoryPlanningError

logger = logging.getLogger(__name__)


def _validate_limits(
    name: str, limits: Sequence[float] | NDArray[np.float64], dim: int
) -> NDArray[np.float64] | None:
    arr = np.asarray(limits, dtype=np.float64)
    if arr.ndim != 1 or arr.shape[0] != dim:
        logger.error("%s must have %d entries, got shape %s", name, dim, arr.shape)
        return None
    if not np.all(np.isfinite(arr)) or np.any(arr <= 0.0):
        logger.error("%s must be finite and positive, got %s", name, arr)
        return None
    return arr


def _step_time(previous: TrajectoryStep, step: TrajectoryStep) -> float | None:
    """Time of ``step`` after ``previous``, or None if it does not advance."""
    if step.path_pos <= previous.path_pos:
        return None
    average_vel = 0.5 * (step.path_vel + previous.path_vel)
    if average_vel <= 0.0:
        return None
    time = previous.time + (step.path_pos - previous.path_pos) / average_vel
    return time if time > previous.time else None


def _assign_times(steps: list[TrajectoryStep]) -> list[TrajectoryStep]:
    """
    Set each step's time by trapezoidal integration of ds / sd.

    Steps that do not advance position and time are dropped so that both are
    strictly increasing. The final step is kept in place of the breakpoints
    it collides with.
    """
    timed = [steps[0]]
    steps[0].time = 0.0
    for step in steps[1:-1]:
        time = _step_time(timed[-1], step)
        if time is not None:
            step.time = time
            timed.append(step)

    last = steps[-1]
    time = _step_time(timed[-1], last)
    while time is None and len(timed) > 1:
        timed.pop()
        time = _step_time(timed[-1], last)
    if time is not None:
        last.time = time
        timed.append(last)
    return timed


class Trajectory:
    """
    Time-parameterized motion along a Path. Build with :meth:`Trajectory.create`.

    Attributes:
        path: The geometric path
        valid: False when no certified optimal profile exists and the motion
            ends with a braking continuation
        profile: Certified (s, sd, t) breakpoints
        end_profile: Braking continuation; empty when ``valid``
        cache: Segment lookup cache used by the time queries
    """

    def __init__(
        self,
        path: Path,
        max_velocity: NDArray[np.float64],
        max_acceleration: NDArray[np.float64],
        profile: list[TrajectoryStep],
        end_profile: list[TrajectoryStep],
        valid: bool,
        time_step: float,
    ):
        self.path = path
        self.max_velocity = max_velocity
        self.max_acceleration = max_acceleration
        self.time_step = time_step
        self.valid = valid

        timeline = _assign_times(profile + end_profile)
        if len(timeline) < 2:
            raise TrajectoryPlanningError("profile does not advance along the path")
        if end_profile:
            boundary = end_profile[0]
            self.profile = [step for step in timeline if step.path_pos < boundary.path_pos]
            self.end_profile = [step for step in timeline if step.path_pos >= boundary.path_pos]
        else:
            self.profile = timeline
            self.end_profile = []

        self._times = np.array([step.time for step in timeline], dtype=np.float64)
        self._positions = np.array([step.path_pos for step in timeline], dtype=np.float64)
        self._velocities = np.array([step.path_vel for step in timeline], dtype=np.float64)
        self.cache = SegmentCache(self._times)

    @classmethod
    def create(
        cls,
        path: Path | None,
        max_velocity: Sequence[float] | NDArray[np.float64],
        max_acceleration: Sequence[float] | NDArray[np.float64],
        time_step: float = DEFAULT_TIME_STEP,
        max_iterations: int = MAX_SWITCHING_ITERATIONS,
    ) -> Trajectory | None:
        """
        Compute the time-optimal profile of ``path``.

        Args:
            path: Path to follow
            max_velocity: Per-joint velocity limits, all positive
            max_acceleration: Per-joint acceleration limits, all positive
            time_step: Phase-plane integration step
            max_iterations: Cap on switching point searches

        Returns:
            The trajectory (check ``valid``), or None for invalid inputs or
            when the switching point search does not converge.
        """
        if path is None:
            logger.error("Cannot parameterize a missing path")
            return None
        if not time_step > 0.0:
            logger.error("Trajectory time_step must be greater than 0.0, got %s", time_step)
            return None
        vmax = _validate_limits("max_velocity", max_velocity, path.dim)
        amax = _validate_limits("max_acceleration", max_acceleration, path.dim)
        if vmax is None or amax is None:
            return None

        integrator = PhasePlaneIntegrator(
            LimitCurves(path, vmax, amax), time_step, max_iterations=max_iterations
        )
        try:
            integrator.run()
            trajectory = cls(
                path,
                vmax,
                amax,
                integrator.profile,
                integrator.end_profile if not integrator.valid else [],
                integrator.valid,
                time_step,
            )
        except TrajectoryPlanningError as e:
            logger.error("%s", e)
            return None
        logger.debug(
            "Trajectory: valid=%s duration=%.6f profile=%d end_profile=%d",
            trajectory.valid,
            trajectory.duration,
            len(trajectory.profile),
            len(trajectory.end_profile),
        )
        return trajectory

    @property
    def duration(self) -> float:
        """Total duration (time of the last breakpoint)."""
        return float(self._times[-1])

    def _path_state(self, t: float) -> tuple[float, float, float]:
        """(s, sd, sdd) at time t, clamped to [0, duration]."""
        times = self._times
        t = min(max(t, 0.0), float(times[-1]))
        k = self.cache.segment(t)

        t_prev = times[k - 1]
        s_prev = self._positions[k - 1]
        v_prev = self._velocities[k - 1]
        dt = times[k] - t_prev
        acceleration = 2.0 * (self._positions[k] - s_prev - dt * v_prev) / (dt * dt)

        tau = t - t_prev
        path_pos = s_prev + tau * v_prev + 0.5 * tau * tau * acceleration
        path_vel = v_prev + tau * acceleration
        path_pos = min(max(path_pos, 0.0), self.path.length)
        return float(path_pos), float(path_vel), float(acceleration)

    def position_at(self, t: float) -> NDArray[np.float64]:
        """Configuration at time t."""
        path_pos, _, _ = self._path_state(t)
        return self.path.config(path_pos)

    def velocity_at(self, t: float) -> NDArray[np.float64]:
        """Joint velocity at time t; zero at and beyond both ends."""
        if t <= 0.0 or t >= self.duration:
            return np.zeros(self.path.dim)
        path_pos, path_vel, _ = self._path_state(t)
        return self.path.tangent(path_pos) * path_vel

    def acceleration_at(self, t: float) -> NDArray[np.float64]:
        """Joint acceleration at time t; zero outside [0, duration]."""
        if t < 0.0 or t > self.duration:
            return np.zeros(self.path.dim)
        path_pos, path_vel, path_acc = self._path_state(t)
        return (
            self.path.tangent(path_pos) * path_acc
            + self.path.curvature(path_pos) * path_vel * path_vel
        )

    def sample(
        self, times: ArrayLike
    ) -> tuple[NDArray[np.float64], NDArray[np.float64], NDArray[np.float64]]:
        """
        Evaluate the trajectory at each of ``times``.

        Returns:
            (positions, velocities, accelerations), each of shape (len(times), dim)
        """
        ts = np.atleast_1d(np.asarray(times, dtype=np.float64))
        dim = self.path.dim
        positions = np.empty((ts.shape[0], dim), dtype=np.float64)
        velocities = np.empty_like(positions)
        accelerations = np.empty_like(positions)
        for i, t in enumerate(ts):
            positions[i] = self.position_at(float(t))
            velocities[i] = self.velocity_at(float(t))
            accelerations[i] = self.acceleration_at(float(t))
        return positions, velocities, accelerations
