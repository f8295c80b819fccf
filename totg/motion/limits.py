"""
Phase-plane limit curves.

For a path position s with unit tangent T(s) and curvature C(s), joint i
moves with velocity T_i * sd and acceleration T_i * sdd + C_i * sd^2. The
per-joint bounds |T_i sd| <= vmax_i and |T_i sdd + C_i sd^2| <= amax_i
translate into bounds on the path velocity sd and path acceleration sdd.

The per-joint reductions are numba kernels operating on float64 vectors;
LimitCurves binds them to a Path and a pair of limit vectors.
"""

from __future__ import annotations

import math

import numpy as np
from numba import njit  # type: ignore[import-untyped]
from numpy.typing import NDArray

from totg.config import EPS
from totg.motion.path import Path


@njit(cache=True)
def min_max_path_acceleration(
    tangent: np.ndarray,
    curvature: np.ndarray,
    max_acceleration: np.ndarray,
    path_vel: float,
    use_max: bool,
) -> float:
    """Largest (use_max) or smallest feasible path acceleration at path velocity path_vel."""
    factor = 1.0 if use_max else -1.0
    result = np.inf
    for i in range(tangent.shape[0]):
        if tangent[i] != 0.0:
            bound = (
                max_acceleration[i] / abs(tangent[i])
                - factor * curvature[i] * path_vel * path_vel / tangent[i]
            )
            if bound < result:
                result = bound
    return factor * result


@njit(cache=True)
def acceleration_max_path_velocity(
    tangent: np.ndarray,
    curvature: np.ndarray,
    max_acceleration: np.ndarray,
) -> float:
    """Highest path velocity at which the acceleration interval is non-empty."""
    result = np.inf
    n = tangent.shape[0]
    for i in range(n):
        if tangent[i] != 0.0:
            for j in range(i + 1, n):
                if tangent[j] != 0.0:
                    a_ij = curvature[i] / tangent[i] - curvature[j] / tangent[j]
                    if a_ij != 0.0:
                        bound = math.sqrt(
                            (
                                max_acceleration[i] / abs(tangent[i])
                                + max_acceleration[j] / abs(tangent[j])
                            )
                            / abs(a_ij)
                        )
                        if bound < result:
                            result = bound
        elif curvature[i] != 0.0:
            bound = math.sqrt(max_acceleration[i] / abs(curvature[i]))
            if bound < result:
                result = bound
    return result


@njit(cache=True)
def velocity_max_path_velocity(tangent: np.ndarray, max_velocity: np.ndarray) -> float:
    """Highest path velocity allowed by the joint velocity limits."""
    result = np.inf
    for i in range(tangent.shape[0]):
        if tangent[i] != 0.0:
            bound = max_velocity[i] / abs(tangent[i])
            if bound < result:
                result = bound
    return result


@njit(cache=True)
def velocity_max_path_velocity_deriv(
    tangent: np.ndarray,
    curvature: np.ndarray,
    max_velocity: np.ndarray,
) -> float:
    """Slope d(sd_max)/ds of the velocity limit curve, from the active joint."""
    result = np.inf
    active = -1
    for i in range(tangent.shape[0]):
        if tangent[i] != 0.0:
            bound = max_velocity[i] / abs(tangent[i])
            if bound < result:
                result = bound
                active = i
    if active < 0:
        return 0.0
    return -(max_velocity[active] * curvature[active]) / (
        tangent[active] * abs(tangent[active])
    )


class LimitCurves:
    """
    Velocity and acceleration limit curves of a path in the (s, sd) plane.

    Args:
        path: Geometric path
        max_velocity: Per-joint velocity limits (positive)
        max_acceleration: Per-joint acceleration limits (positive)
    """

    def __init__(
        self,
        path: Path,
        max_velocity: NDArray[np.float64],
        max_acceleration: NDArray[np.float64],
    ):
        self.path = path
        self.max_velocity = np.ascontiguousarray(max_velocity, dtype=np.float64)
        self.max_acceleration = np.ascontiguousarray(max_acceleration, dtype=np.float64)

    def min_max_path_acceleration(self, path_pos: float, path_vel: float, use_max: bool) -> float:
        return min_max_path_acceleration(
            self.path.tangent(path_pos),
            self.path.curvature(path_pos),
            self.max_acceleration,
            path_vel,
            use_max,
        )

    def min_max_phase_slope(self, path_pos: float, path_vel: float, use_max: bool) -> float:
        """Slope d(sd)/ds = sdd / sd of the extremal trajectory through (path_pos, path_vel)."""
        acceleration = self.min_max_path_acceleration(path_pos, path_vel, use_max)
        if path_vel == 0.0:
            return math.copysign(math.inf, acceleration)
        return acceleration / path_vel

    def acceleration_max_path_velocity(self, path_pos: float) -> float:
        return acceleration_max_path_velocity(
            self.path.tangent(path_pos),
            self.path.curvature(path_pos),
            self.max_acceleration,
        )

    def velocity_max_path_velocity(self, path_pos: float) -> float:
        return velocity_max_path_velocity(self.path.tangent(path_pos), self.max_velocity)

    def max_path_velocity(self, path_pos: float) -> float:
        """Lower envelope of both limit curves."""
        return min(
            self.acceleration_max_path_velocity(path_pos),
            self.velocity_max_path_velocity(path_pos),
        )

    def acceleration_max_path_velocity_deriv(self, path_pos: float) -> float:
        # central difference; the curve has no closed-form slope at blend boundaries
        return (
            self.acceleration_max_path_velocity(path_pos + EPS)
            - self.acceleration_max_path_velocity(path_pos - EPS)
        ) / (2.0 * EPS)

    def velocity_max_path_velocity_deriv(self, path_pos: float) -> float:
        return velocity_max_path_velocity_deriv(
            self.path.tangent(path_pos),
            self.path.curvature(path_pos),
            self.max_velocity,
        )
