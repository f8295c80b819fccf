"""
Wire format for planning jobs and results.

Jobs and results are JSON documents decoded/encoded with msgspec structs:
- PlanRequest: joints, waypoints and adapter settings
- PlanResult:  resampled, timed waypoints

Example job:
    {
      "joints": [{"name": "j1", "max_velocity": 1.0, "max_acceleration": 1.0},
                 {"name": "j2", "max_velocity": 1.0, "max_acceleration": 1.0}],
      "waypoints": [[0, 0], [1, 0], [1, 1]]
    }
"""

import logging
from typing import Annotated, Literal

import msgspec
import numpy as np

from totg.config import DEFAULT_MIN_ANGLE_CHANGE, DEFAULT_PATH_TOLERANCE, DEFAULT_RESAMPLE_DT
from totg.robot_trajectory import JointKind, JointModel, WaypointTrajectory

logger = logging.getLogger(__name__)


# =============================================================================
# Numpy encoding hooks
# =============================================================================


def _enc_hook(obj: object) -> object:
    """Custom encoder hook for numpy types."""
    if isinstance(obj, np.ndarray):
        return obj.tolist()
    if isinstance(obj, (np.integer, np.floating)):
        return obj.item()  # Convert numpy scalar to Python native type
    raise NotImplementedError(f"Cannot encode {type(obj)}")


# Module-level encoder with numpy support (thread-safe, reusable)
_encoder = msgspec.json.Encoder(enc_hook=_enc_hook)


# =============================================================================
# Job structs
# =============================================================================

JointKindName = Literal["revolute", "continuous", "prismatic"]


class JointSpec(msgspec.Struct, frozen=True, forbid_unknown_fields=True):
    """One joint of the planning group, with optional default limits."""

    name: Annotated[str, msgspec.Meta(min_length=1)]
    kind: JointKindName = "revolute"
    max_velocity: Annotated[float, msgspec.Meta(gt=0.0)] | None = None
    max_acceleration: Annotated[float, msgspec.Meta(gt=0.0)] | None = None

    def to_model(self, limits: "JointLimits | None" = None) -> JointModel:
        max_velocity = self.max_velocity
        max_acceleration = self.max_acceleration
        if limits is not None:
            if limits.has_velocity_limits:
                max_velocity = limits.max_velocity
            if limits.has_acceleration_limits:
                max_acceleration = limits.max_acceleration
        return JointModel(
            name=self.name,
            kind=JointKind(self.kind),
            max_velocity=max_velocity,
            max_acceleration=max_acceleration,
        )


class JointLimits(msgspec.Struct, frozen=True, forbid_unknown_fields=True):
    """Per-joint limit record; a limit only applies when its has_* flag is set."""

    joint_name: Annotated[str, msgspec.Meta(min_length=1)]
    has_velocity_limits: bool = False
    max_velocity: float = 0.0
    has_acceleration_limits: bool = False
    max_acceleration: float = 0.0


class PlanRequest(msgspec.Struct, frozen=True, forbid_unknown_fields=True):
    """Planning job: waypoints for a joint group plus adapter settings."""

    joints: Annotated[list[JointSpec], msgspec.Meta(min_length=1)]
    waypoints: Annotated[list[list[float]], msgspec.Meta(min_length=1)]
    path_tolerance: Annotated[float, msgspec.Meta(gt=0.0)] = DEFAULT_PATH_TOLERANCE
    resample_dt: Annotated[float, msgspec.Meta(gt=0.0)] = DEFAULT_RESAMPLE_DT
    min_angle_change: Annotated[float, msgspec.Meta(ge=0.0)] = DEFAULT_MIN_ANGLE_CHANGE
    # Out-of-range scaling factors are replaced by the adapter, not rejected here
    velocity_scaling: float = 1.0
    acceleration_scaling: float = 1.0
    # When set, the output is spread over this many waypoints and resample_dt is unused
    num_waypoints: Annotated[int, msgspec.Meta(ge=2)] | None = None
    joint_limits: list[JointLimits] = msgspec.field(default_factory=list)

    def __post_init__(self) -> None:
        dof = len(self.joints)
        names = [joint.name for joint in self.joints]
        if len(set(names)) != dof:
            raise ValueError("Joint names must be unique")
        for i, waypoint in enumerate(self.waypoints):
            if len(waypoint) != dof:
                raise ValueError(f"Waypoint {i} has {len(waypoint)} positions, expected {dof}")

    def to_trajectory(self) -> WaypointTrajectory:
        """
        Untimed trajectory holding the requested waypoints. Limits set in
        joint_limits override the defaults of the matching joints.
        """
        overrides = {limits.joint_name: limits for limits in self.joint_limits}
        trajectory = WaypointTrajectory(
            [joint.to_model(overrides.get(joint.name)) for joint in self.joints]
        )
        for waypoint in self.waypoints:
            trajectory.add_suffix_waypoint(waypoint)
        return trajectory


class PlanResult(msgspec.Struct, frozen=True):
    """Timed, resampled waypoints."""

    joint_names: list[str]
    duration: float
    time_from_start: list[float]
    positions: list[list[float]]
    velocities: list[list[float]]
    accelerations: list[list[float]]

    @classmethod
    def from_trajectory(cls, trajectory: WaypointTrajectory) -> "PlanResult":
        zeros = np.zeros(trajectory.dof)
        return cls(
            joint_names=trajectory.joint_names,
            duration=trajectory.duration,
            time_from_start=trajectory.time_from_start,
            positions=trajectory.positions,
            velocities=[wp.velocities if wp.velocities is not None else zeros for wp in trajectory],
            accelerations=[
                wp.accelerations if wp.accelerations is not None else zeros for wp in trajectory
            ],
        )


# Module-level decoder (thread-safe, reusable)
_request_decoder = msgspec.json.Decoder(PlanRequest)


def decode_request(data: bytes) -> PlanRequest:
    """Decode a JSON planning job.

    Args:
        data: Raw JSON bytes

    Returns:
        Validated PlanRequest

    Raises:
        msgspec.ValidationError: If a field is missing, mistyped or out of range
        msgspec.DecodeError: If data is not valid JSON
    """
    return _request_decoder.decode(data)


def encode_result(result: PlanResult) -> bytes:
    """Encode a PlanResult to JSON bytes."""
    return _encoder.encode(result)
