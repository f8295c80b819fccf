"""Unit tests for totg.motion.limits phase-plane limit curves."""

import math

import numpy as np
import pytest

from totg.motion import LimitCurves, Path
from totg.motion.limits import (
    acceleration_max_path_velocity,
    min_max_path_acceleration,
    velocity_max_path_velocity,
    velocity_max_path_velocity_deriv,
)

pytestmark = pytest.mark.unit


class TestKernels:
    """The numba kernels on hand-computed tangent/curvature vectors."""

    def test_straight_motion(self):
        tangent = np.array([0.6, 0.8])
        curvature = np.zeros(2)
        vmax = np.array([1.0, 2.0])
        amax = np.array([1.0, 1.0])

        assert velocity_max_path_velocity(tangent, vmax) == pytest.approx(1.0 / 0.6)
        assert math.isinf(acceleration_max_path_velocity(tangent, curvature, amax))
        assert min_max_path_acceleration(tangent, curvature, amax, 0.5, True) == pytest.approx(1.25)
        assert min_max_path_acceleration(tangent, curvature, amax, 0.5, False) == pytest.approx(-1.25)
        assert velocity_max_path_velocity_deriv(tangent, curvature, vmax) == 0.0

    def test_zero_tangent_component_is_ignored(self):
        """A joint that does not move does not bound the path velocity."""
        tangent = np.array([1.0, 0.0])
        vmax = np.array([2.0, 0.1])
        assert velocity_max_path_velocity(tangent, vmax) == pytest.approx(2.0)

    def test_pure_curvature_bound(self):
        """A joint with zero tangent but non-zero curvature bounds sd^2 by amax / |c|."""
        tangent = np.array([1.0, 0.0])
        curvature = np.array([0.0, 4.0])
        amax = np.array([1.0, 1.0])
        assert acceleration_max_path_velocity(tangent, curvature, amax) == pytest.approx(0.5)

    def test_centripetal_term_reduces_acceleration(self):
        """Path velocity leaves less acceleration on a curve."""
        tangent = np.array([1.0, 0.0])
        curvature = np.array([-2.0, 0.0])
        amax = np.array([1.0, 1.0])
        at_rest = min_max_path_acceleration(tangent, curvature, amax, 0.0, True)
        moving = min_max_path_acceleration(tangent, curvature, amax, 0.5, True)
        assert at_rest == pytest.approx(1.0)
        assert moving == pytest.approx(1.0 + 2.0 * 0.25)
        braking = min_max_path_acceleration(tangent, curvature, amax, 0.5, False)
        assert braking == pytest.approx(-(1.0 - 2.0 * 0.25))


class TestLimitCurves:
    """LimitCurves bound to a blended corner."""

    @pytest.fixture
    def curves(self) -> LimitCurves:
        path = Path.create([(0.0, 0.0), (1.0, 0.0), (1.0, 1.0)], max_deviation=0.1)
        return LimitCurves(path, np.array([1.0, 1.0]), np.array([1.0, 1.0]))

    def blend_mid(self, curves: LimitCurves) -> float:
        blend = curves.path.segments[1]
        return blend.offset + 0.5 * blend.length

    def test_straight_runs_are_velocity_limited(self, curves):
        assert math.isinf(curves.acceleration_max_path_velocity(0.2))
        assert curves.velocity_max_path_velocity(0.2) == pytest.approx(1.0)
        assert curves.max_path_velocity(0.2) == pytest.approx(1.0)

    def test_blend_is_acceleration_limited(self, curves):
        s = self.blend_mid(curves)
        vel = curves.acceleration_max_path_velocity(s)
        assert 0.0 < vel < curves.velocity_max_path_velocity(s)
        assert curves.max_path_velocity(s) == pytest.approx(vel)

    def test_acceleration_interval_collapses_on_curve(self, curves):
        """On the acceleration limit curve the feasible sdd interval is a single value."""
        s = self.blend_mid(curves)
        vel = curves.acceleration_max_path_velocity(s)
        upper = curves.min_max_path_acceleration(s, vel, True)
        lower = curves.min_max_path_acceleration(s, vel, False)
        assert upper == pytest.approx(lower, abs=1e-6)

    def test_phase_slope(self, curves):
        assert curves.min_max_phase_slope(0.2, 0.0, True) == math.inf
        assert curves.min_max_phase_slope(0.2, 0.0, False) == -math.inf
        assert curves.min_max_phase_slope(0.2, 0.5, True) == pytest.approx(2.0)

    def test_acceleration_curve_peaks_mid_blend(self, curves):
        """On a symmetric right-angle blend, sd_max^2 = r * (sin a + cos a) peaks at a = pi/4."""
        blend = curves.path.segments[1]
        s = self.blend_mid(curves)
        assert curves.acceleration_max_path_velocity_deriv(s - 0.02) > 0.0
        assert curves.acceleration_max_path_velocity_deriv(s + 0.02) < 0.0
        peak = math.sqrt(blend.radius * math.sqrt(2.0))
        assert curves.acceleration_max_path_velocity(s) == pytest.approx(peak, rel=1e-6)
        entry = curves.acceleration_max_path_velocity(blend.offset + 1e-4)
        assert entry == pytest.approx(math.sqrt(blend.radius), rel=1e-3)
