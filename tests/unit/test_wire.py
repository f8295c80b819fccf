"""Unit tests for totg.protocol.wire (msgspec JSON jobs and results)."""

import json

import msgspec
import numpy as np
import pytest

from totg.protocol.wire import (
    JointLimits,
    JointSpec,
    PlanRequest,
    PlanResult,
    decode_request,
    encode_result,
)
from totg.robot_trajectory import JointKind, JointModel, WaypointTrajectory

pytestmark = pytest.mark.unit


def job(**overrides) -> bytes:
    doc = {
        "joints": [
            {"name": "j1", "max_velocity": 1.0, "max_acceleration": 1.0},
            {"name": "j2", "kind": "continuous", "max_velocity": 2.0, "max_acceleration": 1.5},
        ],
        "waypoints": [[0, 0], [1, 0], [1, 1]],
    }
    doc.update(overrides)
    return json.dumps(doc).encode()


class TestDecodeRequest:
    """Job decoding and validation."""

    def test_defaults(self):
        request = decode_request(job())
        assert isinstance(request, PlanRequest)
        assert request.path_tolerance == 0.1
        assert request.resample_dt == 0.1
        assert request.num_waypoints is None
        assert request.joint_limits == []

    def test_to_trajectory(self):
        trajectory = decode_request(job()).to_trajectory()
        assert trajectory.joint_names == ["j1", "j2"]
        assert trajectory.joints[1].kind is JointKind.CONTINUOUS
        assert trajectory.joints[1].max_acceleration == 1.5
        np.testing.assert_array_equal(trajectory.positions, [[0, 0], [1, 0], [1, 1]])

    def test_joint_limit_overrides(self):
        request = decode_request(
            job(
                joint_limits=[
                    {"joint_name": "j1", "has_velocity_limits": True, "max_velocity": 0.3},
                    {"joint_name": "j2", "has_acceleration_limits": False, "max_acceleration": 9.0},
                ]
            )
        )
        j1, j2 = request.to_trajectory().joints
        assert j1.max_velocity == 0.3
        assert j1.max_acceleration == 1.0
        assert j2.max_acceleration == 1.5

    def test_missing_limits_allowed(self):
        """Limits may be left to the joint_limits records or the caller."""
        request = decode_request(job(joints=[{"name": "a"}, {"name": "b"}]))
        assert request.joints[0].max_velocity is None

    @pytest.mark.parametrize(
        "overrides",
        [
            {"waypoints": [[0, 0], [1]]},
            {"waypoints": []},
            {"joints": []},
            {"path_tolerance": 0.0},
            {"resample_dt": -0.1},
            {"num_waypoints": 1},
            {"unexpected": True},
            {"joints": [{"name": "a", "max_velocity": 0.0}, {"name": "b"}]},
            {"joints": [{"name": "a", "kind": "spherical"}, {"name": "b"}]},
            {"joints": [{"name": "a"}, {"name": "a"}]},
        ],
    )
    def test_invalid_jobs(self, overrides):
        with pytest.raises(msgspec.ValidationError):
            decode_request(job(**overrides))

    def test_malformed_json(self):
        with pytest.raises(msgspec.DecodeError):
            decode_request(b"{not json")


class TestJointSpec:
    def test_to_model_without_overrides(self):
        model = JointSpec("j1", "prismatic", 0.5, 2.0).to_model()
        assert model == JointModel("j1", JointKind.PRISMATIC, 0.5, 2.0)

    def test_override_sets_missing_limit(self):
        model = JointSpec("j1").to_model(JointLimits("j1", has_acceleration_limits=True, max_acceleration=3.0))
        assert model.max_velocity is None
        assert model.max_acceleration == 3.0


class TestEncodeResult:
    """Results carry numpy arrays through the encoder hook."""

    def test_from_trajectory(self):
        trajectory = WaypointTrajectory([JointModel("j1"), JointModel("j2")])
        trajectory.add_suffix_waypoint([0.0, 0.0])
        trajectory.add_suffix_waypoint([1.0, 0.5], 0.5, [0.1, 0.2], [0.0, -1.0])

        result = PlanResult.from_trajectory(trajectory)
        doc = json.loads(encode_result(result))

        assert doc["joint_names"] == ["j1", "j2"]
        assert doc["duration"] == 0.5
        assert doc["time_from_start"] == [0.0, 0.5]
        assert doc["positions"] == [[0.0, 0.0], [1.0, 0.5]]
        # Missing states are reported as zeros
        assert doc["velocities"] == [[0.0, 0.0], [0.1, 0.2]]
        assert doc["accelerations"] == [[0.0, 0.0], [0.0, -1.0]]

    def test_numpy_scalars(self):
        result = PlanResult(
            joint_names=["j1"],
            duration=np.float64(1.25),
            time_from_start=np.array([0.0, 1.25]),
            positions=[np.array([0.0]), np.array([1.0])],
            velocities=[[0.0], [0.0]],
            accelerations=[[0.0], [0.0]],
        )
        doc = json.loads(encode_result(result))
        assert doc["duration"] == 1.25
        assert doc["time_from_start"] == [0.0, 1.25]
