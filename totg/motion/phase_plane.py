"""
Time-optimal path velocity profile in the (s, sd) phase plane.

Pipeline:
  1. Integrate forward at maximum path acceleration from (0, 0) until the
     trajectory hits a limit curve or the path end.
  2. Locate the next switching point past the hit (acceleration- or
     velocity-type) and integrate backward from it at minimum path
     acceleration until the backward branch crosses the forward profile.
  3. Splice the backward branch in at the crossing and resume forward
     integration from the switching point.
  4. Finally integrate backward from (length, 0) and splice it in.

Both integrations use a fixed time step and trapezoidal position updates.
The result is a list of (path_pos, path_vel) breakpoints; times are assigned
by the caller.
"""

from __future__ import annotations

import bisect
import logging
from collections import deque
from dataclasses import dataclass

from totg.config import (
    EPS,
    MAX_SWITCHING_ITERATIONS,
    TRACE,
    VELOCITY_SEARCH_ACCURACY,
    VELOCITY_SEARCH_STEP,
)
from totg.motion.limits import LimitCurves
from totg.utils.errors import TrajectoryPlanningError

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class TrajectoryStep:
    """Phase-plane breakpoint; ``time`` is filled in once the profile is final."""

    path_pos: float
    path_vel: float
    time: float = 0.0


@dataclass(frozen=True, slots=True)
class SwitchingPoint:
    """Phase-plane point where the extremal trajectory switches from braking to accelerating."""

    step: TrajectoryStep
    before_acceleration: float
    after_acceleration: float


class PhasePlaneIntegrator:
    """
    Builds the (s, sd) profile for a path under velocity/acceleration limits.

    After :meth:`run`, ``profile`` holds the breakpoints from (0, 0) to
    (length, 0) when ``valid``. When no certified profile exists, ``valid``
    is False, ``profile`` holds the certified forward part and
    ``end_profile`` the braking continuation that ends at (length, 0).

    Args:
        curves: Limit curves of the path
        time_step: Integration step
        max_iterations: Cap on forward/backward passes and search steps
    """

    def __init__(
        self,
        curves: LimitCurves,
        time_step: float,
        max_iterations: int = MAX_SWITCHING_ITERATIONS,
    ):
        self.curves = curves
        self.path = curves.path
        self.time_step = time_step
        self.max_iterations = max_iterations
        self.valid = True
        self.profile: list[TrajectoryStep] = []
        self.end_profile: list[TrajectoryStep] = []
        self._iterations = 0
        self._discontinuities = [
            position for position, discontinuity in self.path.switching_points if discontinuity
        ]

    def run(self) -> None:
        """
        Compute the profile.

        Raises:
            TrajectoryPlanningError: If the iteration cap is exceeded
        """
        length = self.path.length
        self.profile = [TrajectoryStep(0.0, 0.0)]
        after_acceleration = self.curves.min_max_path_acceleration(0.0, 0.0, True)

        while self.valid and not self._integrate_forward(self.profile, after_acceleration):
            if not self.valid:
                break
            self._tick()
            switching_point = self._next_switching_point(self.profile[-1].path_pos)
            if switching_point is None:
                break
            logger.log(
                TRACE,
                "switching point s=%.6f sd=%.6f",
                switching_point.step.path_pos,
                switching_point.step.path_vel,
            )
            self._integrate_backward(
                self.profile,
                switching_point.step.path_pos,
                switching_point.step.path_vel,
                switching_point.before_acceleration,
            )
            after_acceleration = switching_point.after_acceleration

        if self.valid:
            before_acceleration = self.curves.min_max_path_acceleration(length, 0.0, False)
            self._integrate_backward(self.profile, length, 0.0, before_acceleration)

        if not self.valid:
            self._integrate_braking_tail()

    def _tick(self) -> None:
        self._iterations += 1
        if self._iterations > self.max_iterations:
            raise TrajectoryPlanningError(
                f"switching point search did not converge within {self.max_iterations} iterations"
            )

    # ------------------------------------------------------------------
    # Switching points
    # ------------------------------------------------------------------

    def _next_switching_point(self, path_pos: float) -> SwitchingPoint | None:
        """Nearest switching point past path_pos, or None at the path end."""
        curves = self.curves

        acceleration_point: SwitchingPoint | None = None
        search_pos = path_pos
        while True:
            self._tick()
            candidate = self._next_acceleration_switching_point(search_pos)
            if candidate is None:
                acceleration_point = None
                break
            acceleration_point = candidate
            search_pos = candidate.step.path_pos
            # Skip points that lie above the velocity limit curve
            if candidate.step.path_vel <= curves.velocity_max_path_velocity(search_pos):
                break

        velocity_point: SwitchingPoint | None = None
        search_pos = path_pos
        while True:
            self._tick()
            candidate = self._next_velocity_switching_point(search_pos)
            if candidate is None:
                velocity_point = None
                break
            velocity_point = candidate
            search_pos = candidate.step.path_pos
            # Skip points beyond the acceleration candidate or above the acceleration limit curve
            if acceleration_point is not None and search_pos > acceleration_point.step.path_pos:
                break
            if candidate.step.path_vel <= curves.acceleration_max_path_velocity(
                search_pos - EPS
            ) and candidate.step.path_vel <= curves.acceleration_max_path_velocity(search_pos + EPS):
                break

        if acceleration_point is None and velocity_point is None:
            return None
        if acceleration_point is not None and (
            velocity_point is None
            or acceleration_point.step.path_pos <= velocity_point.step.path_pos
        ):
            return acceleration_point
        return velocity_point

    def _next_acceleration_switching_point(self, path_pos: float) -> SwitchingPoint | None:
        """
        Next point past path_pos where the acceleration limit curve has a
        local minimum or a jump that the extremal trajectories cannot follow.

        Candidates are the path switching points: blend extrema are checked
        with a derivative sign test, segment boundaries by comparing the
        phase slopes on either side with the slope of the curve.
        """
        curves = self.curves
        length = self.path.length
        switching_pos = path_pos
        while True:
            switching_pos, discontinuity = self.path.next_switching_point(switching_pos)
            if switching_pos > length - EPS:
                return None

            if discontinuity:
                before_path_vel = curves.acceleration_max_path_velocity(switching_pos - EPS)
                after_path_vel = curves.acceleration_max_path_velocity(switching_pos + EPS)
                switching_path_vel = min(before_path_vel, after_path_vel)
                if switching_path_vel == float("inf"):
                    # Straight on both sides: the curve is unbounded here
                    continue
                before_acceleration = curves.min_max_path_acceleration(
                    switching_pos - EPS, switching_path_vel, False
                )
                after_acceleration = curves.min_max_path_acceleration(
                    switching_pos + EPS, switching_path_vel, True
                )
                enters_from_below = before_path_vel > after_path_vel or (
                    curves.min_max_phase_slope(switching_pos - EPS, switching_path_vel, False)
                    > curves.acceleration_max_path_velocity_deriv(switching_pos - 2.0 * EPS)
                )
                leaves_below = before_path_vel < after_path_vel or (
                    curves.min_max_phase_slope(switching_pos + EPS, switching_path_vel, True)
                    < curves.acceleration_max_path_velocity_deriv(switching_pos + 2.0 * EPS)
                )
                if enters_from_below and leaves_below:
                    return SwitchingPoint(
                        TrajectoryStep(switching_pos, switching_path_vel),
                        before_acceleration,
                        after_acceleration,
                    )
            else:
                switching_path_vel = curves.acceleration_max_path_velocity(switching_pos)
                if (
                    curves.acceleration_max_path_velocity_deriv(switching_pos - EPS) < 0.0
                    and curves.acceleration_max_path_velocity_deriv(switching_pos + EPS) > 0.0
                ):
                    return SwitchingPoint(TrajectoryStep(switching_pos, switching_path_vel), 0.0, 0.0)

    def _next_velocity_switching_point(self, path_pos: float) -> SwitchingPoint | None:
        """
        Next point past path_pos where the minimum-acceleration trajectory
        leaving the velocity limit curve turns from above to below the curve.

        No closed form exists, so the curve is stepped through at
        VELOCITY_SEARCH_STEP and the crossing refined by bisection.
        """
        curves = self.curves
        length = self.path.length

        def braking_exceeds_curve(s: float) -> bool:
            vel = curves.velocity_max_path_velocity(s)
            return curves.min_max_phase_slope(s, vel, False) > curves.velocity_max_path_velocity_deriv(s)

        started = False
        path_pos -= VELOCITY_SEARCH_STEP
        while True:
            path_pos += VELOCITY_SEARCH_STEP
            vel = curves.velocity_max_path_velocity(path_pos)
            slope = curves.min_max_phase_slope(path_pos, vel, False)
            deriv = curves.velocity_max_path_velocity_deriv(path_pos)
            if slope >= deriv:
                started = True
            if (started and slope <= deriv) or path_pos >= length:
                break

        if path_pos >= length:
            return None

        before_path_pos = path_pos - VELOCITY_SEARCH_STEP
        after_path_pos = path_pos
        while after_path_pos - before_path_pos > VELOCITY_SEARCH_ACCURACY:
            path_pos = 0.5 * (before_path_pos + after_path_pos)
            if braking_exceeds_curve(path_pos):
                before_path_pos = path_pos
            else:
                after_path_pos = path_pos

        before_acceleration = curves.min_max_path_acceleration(
            before_path_pos, curves.velocity_max_path_velocity(before_path_pos), False
        )
        after_vel = curves.velocity_max_path_velocity(after_path_pos)
        after_acceleration = curves.min_max_path_acceleration(after_path_pos, after_vel, True)
        return SwitchingPoint(
            TrajectoryStep(after_path_pos, after_vel), before_acceleration, after_acceleration
        )

    # ------------------------------------------------------------------
    # Integration
    # ------------------------------------------------------------------

    def _integrate_forward(self, trajectory: list[TrajectoryStep], acceleration: float) -> bool:
        """
        Extend ``trajectory`` at maximum acceleration.

        Returns:
            True when the path end is reached or integration failed (check
            ``valid``); False when a limit curve was hit and a switching point
            must be found.
        """
        curves = self.curves
        dt = self.time_step
        length = self.path.length
        discontinuities = self._discontinuities
        next_idx = 0
        path_pos = trajectory[-1].path_pos
        path_vel = trajectory[-1].path_vel

        while True:
            while next_idx < len(discontinuities) and discontinuities[next_idx] <= path_pos:
                next_idx += 1
            next_discontinuity = (
                discontinuities[next_idx] if next_idx < len(discontinuities) else None
            )

            old_path_pos = path_pos
            old_path_vel = path_vel
            path_vel += dt * acceleration
            path_pos += dt * 0.5 * (old_path_vel + path_vel)

            if next_discontinuity is not None and path_pos > next_discontinuity:
                # Stepping to just past the boundary would leave a near-duplicate breakpoint
                if path_pos - next_discontinuity < EPS:
                    continue
                path_vel = old_path_vel + (next_discontinuity - old_path_pos) * (
                    path_vel - old_path_vel
                ) / (path_pos - old_path_pos)
                path_pos = next_discontinuity

            if path_pos > length:
                trajectory.append(TrajectoryStep(path_pos, path_vel))
                return True
            if path_vel < 0.0:
                self.valid = False
                logger.error("Error while integrating forward: negative path velocity at s=%.6f", path_pos)
                return True

            vel_limit = curves.velocity_max_path_velocity(path_pos)
            if path_vel > vel_limit and curves.min_max_phase_slope(
                old_path_pos, curves.velocity_max_path_velocity(old_path_pos), False
            ) <= curves.velocity_max_path_velocity_deriv(old_path_pos):
                # Slide along the velocity limit curve
                path_vel = vel_limit

            trajectory.append(TrajectoryStep(path_pos, path_vel))
            acceleration = curves.min_max_path_acceleration(path_pos, path_vel, True)

            if path_vel == 0.0 and acceleration == 0.0:
                self.valid = False
                logger.error(
                    "Error while integrating forward: zero acceleration and velocity at s=%.6f. "
                    "Are any relevant acceleration components limited to zero?",
                    path_pos,
                )
                return True

            if path_vel > curves.acceleration_max_path_velocity(
                path_pos
            ) or path_vel > curves.velocity_max_path_velocity(path_pos):
                if self._refine_curve_hit(trajectory, next_discontinuity):
                    return False

    def _refine_curve_hit(
        self, trajectory: list[TrajectoryStep], next_discontinuity: float | None
    ) -> bool:
        """
        Replace the overshooting last step with the limit curve crossing.

        Returns:
            True if the forward trajectory cannot continue along the curve
            and a switching point is needed.
        """
        curves = self.curves
        overshoot = trajectory.pop()
        before = trajectory[-1].path_pos
        before_path_vel = trajectory[-1].path_vel
        after = overshoot.path_pos
        after_path_vel = overshoot.path_vel

        while after - before > EPS:
            midpoint = 0.5 * (before + after)
            midpoint_path_vel = 0.5 * (before_path_vel + after_path_vel)

            if midpoint_path_vel > curves.velocity_max_path_velocity(
                midpoint
            ) and curves.min_max_phase_slope(
                before, curves.velocity_max_path_velocity(before), False
            ) <= curves.velocity_max_path_velocity_deriv(before):
                midpoint_path_vel = curves.velocity_max_path_velocity(midpoint)

            if midpoint_path_vel > curves.acceleration_max_path_velocity(
                midpoint
            ) or midpoint_path_vel > curves.velocity_max_path_velocity(midpoint):
                after = midpoint
                after_path_vel = midpoint_path_vel
            else:
                before = midpoint
                before_path_vel = midpoint_path_vel

        trajectory.append(TrajectoryStep(before, before_path_vel))
        last = trajectory[-1]

        if curves.acceleration_max_path_velocity(after) < curves.velocity_max_path_velocity(after):
            if next_discontinuity is not None and after > next_discontinuity:
                return True
            return curves.min_max_phase_slope(
                last.path_pos, last.path_vel, True
            ) > curves.acceleration_max_path_velocity_deriv(last.path_pos)
        return curves.min_max_phase_slope(
            last.path_pos, last.path_vel, False
        ) > curves.velocity_max_path_velocity_deriv(last.path_pos)

    def _integrate_backward(
        self,
        start_trajectory: list[TrajectoryStep],
        path_pos: float,
        path_vel: float,
        acceleration: float,
    ) -> None:
        """
        Integrate at minimum acceleration toward decreasing s from
        (path_pos, path_vel) and splice the branch into ``start_trajectory``
        where the two cross.

        On failure ``valid`` is cleared and the unmerged branch is kept in
        ``end_profile``.
        """
        curves = self.curves
        dt = self.time_step
        if len(start_trajectory) < 2:
            self.valid = False
            logger.error("Error while integrating backward: forward profile is empty")
            return

        start2 = len(start_trajectory) - 1
        start1 = start2 - 1
        branch: deque[TrajectoryStep] = deque()
        slope = 0.0

        while start1 > 0 or path_pos >= 0.0:
            if start_trajectory[start1].path_pos <= path_pos:
                branch.appendleft(TrajectoryStep(path_pos, path_vel))
                path_vel -= dt * acceleration
                path_pos -= dt * 0.5 * (path_vel + branch[0].path_vel)
                path_pos, path_vel, on_boundary = self._stop_at_discontinuity(
                    branch[0], path_pos, path_vel
                )
                acceleration = curves.min_max_path_acceleration(
                    path_pos - EPS if on_boundary else path_pos, path_vel, False
                )
                span = branch[0].path_pos - path_pos
                if span == 0.0:
                    self.valid = False
                    logger.error("Error while integrating backward: stalled at s=%.6f", path_pos)
                    self.end_profile = list(branch)
                    return
                slope = (branch[0].path_vel - path_vel) / span

                if path_vel < 0.0:
                    self.valid = False
                    logger.error(
                        "Error while integrating backward: negative path velocity at s=%.6f",
                        path_pos,
                    )
                    self.end_profile = list(branch)
                    return
            else:
                start1 -= 1
                start2 -= 1

            if not branch:
                continue

            # Intersection of the forward segment [start1, start2] with the
            # backward segment [(path_pos, path_vel), branch[0]]
            s1 = start_trajectory[start1]
            s2 = start_trajectory[start2]
            start_span = s2.path_pos - s1.path_pos
            if start_span <= 0.0:
                continue
            start_slope = (s2.path_vel - s1.path_vel) / start_span
            if slope == start_slope:
                continue
            intersection_path_pos = (
                s1.path_vel - path_vel + slope * path_pos - start_slope * s1.path_pos
            ) / (slope - start_slope)
            if (
                max(s1.path_pos, path_pos) - EPS
                <= intersection_path_pos
                <= EPS + min(s2.path_pos, branch[0].path_pos)
            ):
                intersection_path_vel = s1.path_vel + start_slope * (
                    intersection_path_pos - s1.path_pos
                )
                del start_trajectory[start2:]
                start_trajectory.append(TrajectoryStep(intersection_path_pos, intersection_path_vel))
                start_trajectory.extend(branch)
                return

        self.valid = False
        logger.error("Error while integrating backward: did not hit start trajectory")
        self.end_profile = list(branch)

    def _stop_at_discontinuity(
        self, previous: TrajectoryStep, path_pos: float, path_vel: float
    ) -> tuple[float, float, bool]:
        """
        Pull a backward step that crosses a path discontinuity back onto it,
        so that no profile segment spans a change of segment.

        Returns:
            (path_pos, path_vel, on_boundary); the velocity is interpolated
            linearly between ``previous`` and the unconstrained step.
        """
        idx = bisect.bisect_left(self._discontinuities, previous.path_pos - EPS) - 1
        if idx < 0:
            return path_pos, path_vel, False
        boundary = self._discontinuities[idx]
        if boundary <= path_pos:
            return path_pos, path_vel, False
        path_vel = previous.path_vel + (boundary - previous.path_pos) * (
            path_vel - previous.path_vel
        ) / (path_pos - previous.path_pos)
        return boundary, path_vel, True

    def _integrate_braking_tail(self) -> None:
        """
        Best-effort stop at the goal: integrate backward from (length, 0) at
        minimum acceleration for as long as the state stays feasible, and
        splice it onto the certified forward profile where they cross.
        """
        curves = self.curves
        dt = self.time_step
        length = self.path.length

        certified = [step for step in self.profile if step.path_pos < length]
        if not certified:
            certified = [TrajectoryStep(0.0, 0.0)]

        tail: deque[TrajectoryStep] = deque()
        path_pos = length
        path_vel = 0.0
        acceleration = curves.min_max_path_acceleration(path_pos, path_vel, False)
        reach = certified[-1].path_pos
        forward_idx = len(certified) - 1
        while path_pos > 0.0:
            tail.appendleft(TrajectoryStep(path_pos, path_vel))
            path_vel -= dt * acceleration
            path_pos -= dt * 0.5 * (path_vel + tail[0].path_vel)
            path_pos, path_vel, on_boundary = self._stop_at_discontinuity(
                tail[0], path_pos, path_vel
            )
            if path_vel < 0.0 or path_pos >= tail[0].path_pos:
                break
            if path_vel > curves.max_path_velocity(path_pos):
                break
            if path_pos <= reach:
                while forward_idx > 0 and certified[forward_idx].path_pos > path_pos:
                    forward_idx -= 1
                if path_vel >= _interpolate_vel(certified, forward_idx, path_pos):
                    # Reached the forward profile: brake from here on
                    break
            acceleration = curves.min_max_path_acceleration(
                path_pos - EPS if on_boundary else path_pos, path_vel, False
            )

        self.end_profile = list(tail)
        if self.end_profile:
            cut = self.end_profile[0].path_pos
            self.profile = [step for step in certified if step.path_pos < cut]
        else:
            self.profile = certified
        if not self.profile:
            self.profile = [TrajectoryStep(0.0, 0.0)]
        logger.warning(
            "Braking continuation from s=%.6f to goal (%d steps)",
            self.end_profile[0].path_pos if self.end_profile else length,
            len(self.end_profile),
        )


def _interpolate_vel(steps: list[TrajectoryStep], idx: int, path_pos: float) -> float:
    """Path velocity of the polyline through ``steps`` at path_pos, starting at steps[idx]."""
    a = steps[idx]
    if idx + 1 >= len(steps):
        return a.path_vel
    b = steps[idx + 1]
    span = b.path_pos - a.path_pos
    if span <= 0.0:
        return a.path_vel
    return a.path_vel + (path_pos - a.path_pos) * (b.path_vel - a.path_vel) / span
