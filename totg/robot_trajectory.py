"""
Generic multi-joint waypoint trajectory container.

Holds an ordered list of joint-space waypoints, each with the time elapsed
since the previous one. Time parameterization (see
totg.time_parameterization) reads the positions and rewrites the whole
container with timed, resampled waypoints.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field
from enum import Enum

import numpy as np
from numpy.typing import ArrayLike, NDArray

logger = logging.getLogger(__name__)


class JointKind(Enum):
    """Joint variants relevant to time parameterization."""

    REVOLUTE = "revolute"
    CONTINUOUS = "continuous"  # revolute without position limits; wraps at +-pi
    PRISMATIC = "prismatic"

    @property
    def is_rotational(self) -> bool:
        return self is not JointKind.PRISMATIC


@dataclass(frozen=True, slots=True)
class JointModel:
    """
    Description of one joint and its default motion limits.

    A limit of None means the joint model does not bound it.
    """

    name: str
    kind: JointKind = JointKind.REVOLUTE
    max_velocity: float | None = None
    max_acceleration: float | None = None


@dataclass(slots=True)
class Waypoint:
    """Joint state at one instant; velocities/accelerations are optional."""

    positions: NDArray[np.float64]
    duration_from_previous: float = 0.0
    velocities: NDArray[np.float64] | None = field(default=None, repr=False)
    accelerations: NDArray[np.float64] | None = field(default=None, repr=False)


class WaypointTrajectory:
    """
    Ordered joint-space waypoints for a fixed set of joints.

    Args:
        joints: Joint models, in the order of each waypoint's position vector
    """

    def __init__(self, joints: Sequence[JointModel]):
        if not joints:
            raise ValueError("WaypointTrajectory needs at least one joint")
        self.joints: list[JointModel] = list(joints)
        self._waypoints: list[Waypoint] = []

    @property
    def joint_names(self) -> list[str]:
        return [joint.name for joint in self.joints]

    @property
    def dof(self) -> int:
        return len(self.joints)

    def __len__(self) -> int:
        return len(self._waypoints)

    def __iter__(self) -> Iterator[Waypoint]:
        return iter(self._waypoints)

    def __getitem__(self, idx: int) -> Waypoint:
        return self._waypoints[idx]

    @property
    def waypoint_count(self) -> int:
        return len(self._waypoints)

    def empty(self) -> bool:
        return not self._waypoints

    def add_suffix_waypoint(
        self,
        positions: ArrayLike,
        duration_from_previous: float = 0.0,
        velocities: ArrayLike | None = None,
        accelerations: ArrayLike | None = None,
    ) -> None:
        """Append a waypoint after the current last one."""
        q = np.array(positions, dtype=np.float64)
        if q.shape != (self.dof,):
            raise ValueError(f"Waypoint must have {self.dof} positions, got shape {q.shape}")
        self._waypoints.append(
            Waypoint(
                positions=q,
                duration_from_previous=float(duration_from_previous),
                velocities=None if velocities is None else np.array(velocities, dtype=np.float64),
                accelerations=(
                    None if accelerations is None else np.array(accelerations, dtype=np.float64)
                ),
            )
        )

    def clear(self) -> None:
        self._waypoints.clear()

    @property
    def positions(self) -> NDArray[np.float64]:
        """All waypoint positions as an (N, dof) array."""
        if not self._waypoints:
            return np.empty((0, self.dof), dtype=np.float64)
        return np.vstack([wp.positions for wp in self._waypoints])

    @property
    def time_from_start(self) -> NDArray[np.float64]:
        """Cumulative time of each waypoint."""
        return np.cumsum([wp.duration_from_previous for wp in self._waypoints], dtype=np.float64)

    @property
    def duration(self) -> float:
        return float(sum(wp.duration_from_previous for wp in self._waypoints))

    def unwound_positions(self) -> NDArray[np.float64]:
        """
        Waypoint positions with the 2*pi jumps of continuous joints removed, so
        that consecutive waypoints differ by less than pi on every continuous joint.
        """
        positions = self.positions
        columns = [i for i, joint in enumerate(self.joints) if joint.kind is JointKind.CONTINUOUS]
        if columns and len(positions) > 1:
            positions[:, columns] = np.unwrap(positions[:, columns], axis=0)
        return positions

    def unwind(self) -> None:
        """Apply :meth:`unwound_positions` to the stored waypoints."""
        for wp, row in zip(self._waypoints, self.unwound_positions()):
            wp.positions = row
