"""Tests for radial basis field interpolation."""

import numpy as np
import pytest

from worldgen.core.errors import IllConditioned
from worldgen.core.interpolation import ControlPoint, RBFKernel, default_epsilon, fit


@pytest.fixture
def controls():
    """Scattered controls with varied values."""
    coords = [(12, 18), (80, 25), (45, 55), (20, 85), (70, 78), (50, 10), (90, 60)]
    values = [0.1, 0.9, 0.5, 0.3, 0.7, 0.0, 1.0]
    return [ControlPoint(x, y, v) for (x, y), v in zip(coords, values)]


class TestFit:
    """Test fitting and exact reproduction of control values."""

    @pytest.mark.parametrize("kernel", list(RBFKernel))
    def test_exact_at_controls(self, controls, kernel):
        """Test that the field passes through every control value."""
        field = fit(controls, kernel)
        for control in controls:
            assert field.evaluate((control.x, control.y)) == pytest.approx(control.value, abs=1e-8)

    def test_evaluate_many_matches_evaluate(self, controls):
        field = fit(controls)
        points = np.random.default_rng(3).uniform(0, 100, size=(25, 2))
        many = field.evaluate_many(points)
        single = np.array([field.evaluate(p) for p in points])
        np.testing.assert_allclose(many, single, rtol=1e-12, atol=1e-12)

    def test_thin_plate_reproduces_planes(self):
        """Test that the linear tail reproduces a plane exactly."""
        plane = [ControlPoint(x, y, 0.01 * x + 0.02 * y) for x, y in [(0, 0), (100, 0), (0, 100), (60, 40)]]
        field = fit(plane, RBFKernel.THIN_PLATE)
        assert field.evaluate((30, 70)) == pytest.approx(0.3 + 1.4, abs=1e-8)

    @pytest.mark.parametrize("size,offset", [(1000.0, 0.0), (10000.0, 0.0), (5000.0, 1e6)])
    def test_large_maps_fit(self, size, offset):
        """Test that well-separated controls fit regardless of map size and origin."""
        coords = [(0, 0), (1, 0), (0, 1), (1, 1), (0.5, 0.5)]
        controls = [
            ControlPoint(offset + size * x, offset + size * y, 1.0 if (x, y) == (0.5, 0.5) else 0.0)
            for x, y in coords
        ]
        field = fit(controls, RBFKernel.THIN_PLATE)
        for control in controls:
            assert field.evaluate((control.x, control.y)) == pytest.approx(control.value, abs=1e-8)
        assert np.isfinite(field.evaluate((offset + 0.4 * size, offset + 0.5 * size)))

    @pytest.mark.parametrize("kernel", list(RBFKernel))
    def test_scaled_controls_give_scaled_field(self, controls, kernel):
        """Test that scaling the controls and the shape parameter by 100 leaves the field unchanged."""
        small = fit(controls, kernel, epsilon=30.0)
        large = fit([ControlPoint(100 * c.x, 100 * c.y, c.value) for c in controls], kernel, epsilon=3000.0)
        points = np.random.default_rng(5).uniform(0, 100, size=(20, 2))
        np.testing.assert_allclose(large.evaluate_many(100 * points), small.evaluate_many(points), atol=1e-8)

    def test_smooth_between_controls(self, controls):
        """Test that evaluation is continuous near a control."""
        field = fit(controls, RBFKernel.GAUSSIAN, epsilon=30.0)
        near = field.evaluate((45.001, 55.0))
        assert near == pytest.approx(0.5, abs=1e-3)

    def test_field_name(self, controls):
        assert fit(controls).name == "elevation"
        assert fit(controls, name="moisture").name == "moisture"

    def test_default_epsilon(self):
        centers = np.array([[0, 0], [3, 0], [0, 4]], dtype=float)
        assert default_epsilon(centers) == pytest.approx((3 + 3 + 4) / 3)

    def test_immutable(self, controls):
        """Test that fitted arrays cannot be modified."""
        field = fit(controls)
        with pytest.raises(ValueError):
            field.weights[0] = 1.0
        before = field.evaluate((33, 33))
        field.evaluate_many(np.zeros((10, 2)))
        assert field.evaluate((33, 33)) == before


class TestIllConditioned:
    """Test rejection of unsolvable control sets."""

    def test_duplicate_controls(self):
        """Test that duplicate coordinates with different values fail."""
        controls = [
            ControlPoint(10, 10, 0.2),
            ControlPoint(50, 50, 0.4),
            ControlPoint(50, 50, 0.9),
            ControlPoint(90, 20, 0.1),
        ]
        with pytest.raises(IllConditioned) as excinfo:
            fit(controls)
        assert excinfo.value.context["indices"] == (1, 2)

    @pytest.mark.parametrize("count", [0, 1, 2])
    def test_too_few_controls(self, count):
        controls = [ControlPoint(10.0 * i, 5.0 * i * i, 1.0) for i in range(count)]
        with pytest.raises(IllConditioned):
            fit(controls)

    def test_collinear_controls_with_linear_tail(self):
        """Test that the thin-plate tail cannot be fitted on a line."""
        controls = [ControlPoint(float(i), float(i), float(i)) for i in range(3)]
        with pytest.raises(IllConditioned):
            fit(controls, RBFKernel.THIN_PLATE)

    def test_non_finite_value(self, controls):
        bad = controls[:3] + [ControlPoint(5, 5, float("nan"))]
        with pytest.raises(IllConditioned):
            fit(bad)

    @pytest.mark.parametrize("epsilon", [0.0, -1.0])
    def test_non_positive_epsilon(self, controls, epsilon):
        with pytest.raises(IllConditioned):
            fit(controls, RBFKernel.GAUSSIAN, epsilon=epsilon)

    def test_flat_gaussian_is_singular(self, controls):
        """Test that a very wide Gaussian is rejected as near-singular."""
        with pytest.raises(IllConditioned):
            fit(controls, RBFKernel.GAUSSIAN, epsilon=1e6)
