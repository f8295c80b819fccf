"""Unit tests for totg.motion.trajectory time-optimal parameterization."""

import math

import numpy as np
import pytest

from totg.motion import Path, PhasePlaneIntegrator, Trajectory, TrajectoryStep

pytestmark = pytest.mark.unit

L_WAYPOINTS = [(0.0, 0.0), (1.0, 0.0), (1.0, 1.0)]


def distance_to_polyline(point: np.ndarray, waypoints: np.ndarray) -> float:
    best = np.inf
    for a, b in zip(waypoints[:-1], waypoints[1:]):
        ab = b - a
        t = np.clip(np.dot(point - a, ab) / np.dot(ab, ab), 0.0, 1.0)
        best = min(best, float(np.linalg.norm(point - (a + t * ab))))
    return best


@pytest.fixture
def corner_trajectory() -> Trajectory:
    path = Path.create(L_WAYPOINTS, max_deviation=0.1)
    traj = Trajectory.create(path, [1.0, 1.0], [1.0, 1.0])
    assert traj is not None
    assert traj.valid
    return traj


class TestStraightLine:
    """Rest-to-rest motion along a single straight run."""

    def test_triangular_profile_duration(self):
        """Length 1 with vmax = amax = 1: accelerate for 1s, brake for 1s."""
        path = Path.create([(0.0,), (1.0,)])
        traj = Trajectory.create(path, [1.0], [1.0])

        assert traj is not None
        assert traj.valid
        assert traj.end_profile == []
        assert traj.duration == pytest.approx(2.0, abs=1e-2)

    def test_trapezoidal_profile_duration(self):
        """Length 4 with vmax = 1, amax = 1: 1s ramp, 3s cruise, 1s ramp."""
        path = Path.create([(0.0,), (4.0,)])
        traj = Trajectory.create(path, [1.0], [1.0])

        assert traj is not None
        assert traj.duration == pytest.approx(5.0, abs=1e-2)
        assert traj.velocity_at(2.5) == pytest.approx([1.0], abs=1e-6)
        assert traj.acceleration_at(2.5) == pytest.approx([0.0], abs=1e-6)

    def test_slowest_joint_dominates(self):
        """A diagonal move is limited by the joint with the tighter limits."""
        path = Path.create([(0.0, 0.0), (4.0, 4.0)])
        traj = Trajectory.create(path, [1.0, 2.0], [1.0, 2.0])

        assert traj is not None
        # Joint 0 travels 4 at vmax 1 / amax 1 -> 5s
        assert traj.duration == pytest.approx(5.0, abs=1e-2)


class TestCornerScenario:
    """Right-angle corner with tolerance 0.1 and unit limits."""

    def test_endpoints(self, corner_trajectory):
        traj = corner_trajectory
        assert traj.duration > 0.0
        assert np.allclose(traj.position_at(0.0), [0.0, 0.0])
        assert np.allclose(traj.position_at(traj.duration), [1.0, 1.0])
        assert np.array_equal(traj.velocity_at(0.0), [0.0, 0.0])
        assert np.array_equal(traj.velocity_at(traj.duration), [0.0, 0.0])

    def test_midpoint_is_inside_blend(self, corner_trajectory):
        """Halfway through in time the robot is rounding the corner."""
        traj = corner_trajectory
        x, y = traj.position_at(0.5 * traj.duration)
        corner_distance = 0.1 * np.sin(np.pi / 4) / (1.0 - np.cos(np.pi / 4))
        assert 1.0 - corner_distance < x <= 1.0
        assert 0.0 <= y < corner_distance
        speed = traj.velocity_at(0.5 * traj.duration)
        assert np.all(np.abs(speed) <= 1.0 + 1e-6)

    def test_profile_is_monotonic(self, corner_trajectory):
        profile = corner_trajectory.profile
        times = np.array([step.time for step in profile])
        positions = np.array([step.path_pos for step in profile])

        assert profile[0].path_pos == 0.0 and profile[0].path_vel == 0.0 and profile[0].time == 0.0
        assert np.all(np.diff(times) > 0.0)
        assert np.all(np.diff(positions) > 0.0)
        assert positions[-1] == pytest.approx(corner_trajectory.path.length)
        assert profile[-1].path_vel == 0.0
        assert corner_trajectory.duration == times[-1]

    def test_limits_respected(self, corner_trajectory):
        traj = corner_trajectory
        for t in np.linspace(0.0, traj.duration, 400):
            assert np.all(np.abs(traj.velocity_at(t)) <= 1.0 + 1e-3)
            assert np.all(np.abs(traj.acceleration_at(t)) <= 1.05 + 1e-2)

    def test_follows_path(self, corner_trajectory):
        traj = corner_trajectory
        waypoints = np.array(L_WAYPOINTS)
        for t in np.linspace(0.0, traj.duration, 200):
            assert distance_to_polyline(traj.position_at(t), waypoints) <= 0.1 + 1e-6

    def test_clamps_outside_time_range(self, corner_trajectory):
        traj = corner_trajectory
        assert np.allclose(traj.position_at(-1.0), [0.0, 0.0])
        assert np.allclose(traj.position_at(traj.duration + 1.0), [1.0, 1.0])
        for t in (-1.0, traj.duration + 1.0):
            assert np.array_equal(traj.velocity_at(t), [0.0, 0.0])
            assert np.array_equal(traj.acceleration_at(t), [0.0, 0.0])

    def test_sample_matches_point_queries(self, corner_trajectory):
        traj = corner_trajectory
        times = np.linspace(0.0, traj.duration, 11)
        positions, velocities, accelerations = traj.sample(times)

        assert positions.shape == (11, 2)
        for i, t in enumerate(times):
            assert np.array_equal(positions[i], traj.position_at(t))
            assert np.array_equal(velocities[i], traj.velocity_at(t))
            assert np.array_equal(accelerations[i], traj.acceleration_at(t))


class TestMultiCorner:
    """Several corners in three dimensions."""

    WAYPOINTS = [
        (0.0, 0.0, 0.0),
        (1.0, 0.5, 0.0),
        (1.5, 1.5, 0.5),
        (0.5, 2.0, 1.0),
        (0.0, 2.5, 0.0),
    ]

    def test_valid_and_within_limits(self):
        vmax = np.array([1.0, 0.8, 0.6])
        amax = np.array([2.0, 1.5, 1.0])
        path = Path.create(self.WAYPOINTS, max_deviation=0.05)
        traj = Trajectory.create(path, vmax, amax)

        assert traj is not None
        assert traj.valid
        assert np.allclose(traj.position_at(traj.duration), self.WAYPOINTS[-1])
        for t in np.linspace(0.0, traj.duration, 300):
            assert np.all(np.abs(traj.velocity_at(t)) <= vmax * 1.01 + 1e-3)
            assert np.all(np.abs(traj.acceleration_at(t)) <= amax * 1.05 + 1e-2)
            assert (
                distance_to_polyline(traj.position_at(t), np.array(self.WAYPOINTS)) <= 0.05 + 1e-6
            )


class TestCreateRejectsInvalidInput:
    """Trajectory.create returns None instead of raising."""

    @pytest.fixture
    def path(self) -> Path:
        return Path.create(L_WAYPOINTS, max_deviation=0.1)

    def test_missing_path(self):
        assert Trajectory.create(None, [1.0, 1.0], [1.0, 1.0]) is None

    @pytest.mark.parametrize(
        "vmax, amax",
        [
            ([0.0, 1.0], [1.0, 1.0]),
            ([1.0, 1.0], [1.0, -1.0]),
            ([1.0, np.inf], [1.0, 1.0]),
            ([1.0, 1.0, 1.0], [1.0, 1.0]),
            ([1.0, 1.0], [1.0]),
        ],
    )
    def test_bad_limits(self, path, vmax, amax):
        assert Trajectory.create(path, vmax, amax) is None

    def test_bad_time_step(self, path):
        assert Trajectory.create(path, [1.0, 1.0], [1.0, 1.0], time_step=0.0) is None

    def test_iteration_cap(self, path):
        """A search that needs more passes than allowed fails construction."""
        assert Trajectory.create(path, [1.0, 1.0], [1.0, 1.0], max_iterations=0) is None


class TestBrakingTrajectory:
    """An uncertified profile is played back as forward part plus braking tail."""

    @pytest.fixture
    def braking_trajectory(self, monkeypatch) -> Trajectory:
        def partial_run(integrator):
            # Full-acceleration ramp to s = 0.8 that never got merged with a stop
            integrator.profile = [
                TrajectoryStep(s, math.sqrt(2.0 * s)) for s in np.linspace(0.0, 0.8, 801)
            ]
            integrator.valid = False
            integrator._integrate_braking_tail()

        monkeypatch.setattr(PhasePlaneIntegrator, "run", partial_run)
        path = Path.create([(0.0,), (1.0,)], max_deviation=0.1)
        traj = Trajectory.create(path, [5.0], [1.0])
        assert traj is not None
        return traj

    def test_marked_invalid_with_tail(self, braking_trajectory):
        assert not braking_trajectory.valid
        assert braking_trajectory.end_profile
        assert braking_trajectory.profile[-1].path_pos < braking_trajectory.end_profile[0].path_pos

    def test_times_increase_across_join(self, braking_trajectory):
        steps = braking_trajectory.profile + braking_trajectory.end_profile
        times = [step.time for step in steps]
        assert times[0] == 0.0
        assert all(a < b for a, b in zip(times[:-1], times[1:]))
        assert braking_trajectory.duration == times[-1]
        # Accelerate over 0.5 then brake over 0.5 at unit acceleration
        assert braking_trajectory.duration == pytest.approx(2.0, abs=1e-2)

    def test_stops_at_goal(self, braking_trajectory):
        duration = braking_trajectory.duration
        np.testing.assert_allclose(braking_trajectory.position_at(duration), [1.0], atol=1e-9)
        np.testing.assert_array_equal(braking_trajectory.velocity_at(duration), [0.0])

    def test_playback_within_limits(self, braking_trajectory):
        times = np.linspace(0.0, braking_trajectory.duration, 4001)
        positions, velocities, accelerations = braking_trajectory.sample(times)

        assert np.all(np.diff(positions[:, 0]) >= -1e-12)
        assert np.max(np.abs(velocities)) <= 1.0 + 1e-3
        assert np.max(np.abs(accelerations)) <= 1.0 + 1e-6
