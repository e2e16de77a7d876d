"""Unit tests for the total variation regularizer."""

import sys
from pathlib import Path

import numpy as np
import pytest

# Add project root to path
project_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(project_root))


def _finite_difference_gradient(function, x, step=1e-6):
    gradient = np.zeros_like(x)
    for i in range(x.size):
        x_plus, x_minus = x.copy(), x.copy()
        x_plus[i] += step
        x_minus[i] -= step
        gradient[i] = (function(x_plus) - function(x_minus)) / (2 * step)
    return gradient


class TestTotalVariationResiduals:
    """Tests for TotalVariationRegularizer.apply_to_image."""

    def test_constant_image_has_zero_variation(self):
        from superres.apis.solver_utils.tv_regularizer import TotalVariationRegularizer

        residuals = TotalVariationRegularizer((4, 5)).apply_to_image(np.full(20, 0.7))

        np.testing.assert_array_equal(residuals, np.zeros(20))

    def test_vertical_step_edge(self):
        from superres.apis.solver_utils.tv_regularizer import TotalVariationRegularizer

        # columns 0-1 are 0, columns 2-3 are 0.5: only column 1 sees the step to its right
        image = np.zeros((3, 4))
        image[:, 2:] = 0.5

        residuals = TotalVariationRegularizer((3, 4)).apply_to_image(image.reshape(-1)).reshape(3, 4)

        expected = np.zeros((3, 4))
        expected[:, 1] = 0.5
        np.testing.assert_allclose(residuals, expected)

    def test_diagonal_neighbors(self):
        from superres.apis.solver_utils.tv_regularizer import TotalVariationRegularizer

        image = np.array([[0.0, 3.0], [4.0, 0.0]])

        residuals = TotalVariationRegularizer((2, 2)).apply_to_image(image.reshape(-1))

        # (0,0): sqrt(4^2 + 3^2); (0,1) sees -3 below; (1,0) sees -4 to the right; (1,1) has no neighbors
        np.testing.assert_allclose(residuals, [5.0, 3.0, 4.0, 0.0])

    def test_large_finite_differences_do_not_overflow(self):
        from superres.apis.solver_utils.tv_regularizer import TotalVariationRegularizer

        image = np.zeros(16)
        image[5] = 1e200

        regularizer = TotalVariationRegularizer((4, 4))
        residuals = regularizer.apply_to_image(image)
        forward_mode_residuals, derivatives = regularizer.apply_to_image_with_differentiation(image)

        assert np.all(np.isfinite(residuals))
        # (1,1) is the spike; (1,0) sees it to the right and (0,1) below
        np.testing.assert_allclose(residuals.reshape(4, 4)[1, 1], np.sqrt(2.0) * 1e200)
        np.testing.assert_allclose(residuals.reshape(4, 4)[1, 0], 1e200)
        np.testing.assert_allclose(residuals.reshape(4, 4)[0, 1], 1e200)
        np.testing.assert_allclose(forward_mode_residuals, residuals)
        assert np.all(np.isfinite(derivatives))

    def test_wrong_size_raises(self):
        from superres.apis.errors import ConfigurationError
        from superres.apis.solver_utils.tv_regularizer import TotalVariationRegularizer

        with pytest.raises(ConfigurationError):
            TotalVariationRegularizer((3, 3)).apply_to_image(np.zeros(8))


class TestTotalVariationDerivatives:
    """Tests for the analytic and forward-mode derivative paths."""

    def test_analytic_matches_finite_differences(self):
        from superres.apis.solver_utils.tv_regularizer import TotalVariationRegularizer

        rng = np.random.default_rng(0)
        regularizer = TotalVariationRegularizer((5, 6))
        image = rng.random(30)
        partial_const_terms = rng.random(30)

        derivatives = regularizer.get_derivatives(image, partial_const_terms)
        expected = _finite_difference_gradient(
            lambda x: float(np.dot(partial_const_terms, regularizer.apply_to_image(x))), image)

        np.testing.assert_allclose(derivatives, expected, atol=1e-5)

    def test_forward_mode_matches_analytic(self):
        from superres.apis.solver_utils.tv_regularizer import TotalVariationRegularizer

        rng = np.random.default_rng(1)
        regularizer = TotalVariationRegularizer((4, 7))
        image = rng.random(28)
        partial_const_terms = rng.random(28)

        residuals, derivatives = regularizer.apply_to_image_with_differentiation(image, partial_const_terms)

        np.testing.assert_allclose(residuals, regularizer.apply_to_image(image), atol=1e-12)
        np.testing.assert_allclose(derivatives, regularizer.get_derivatives(image, partial_const_terms), atol=1e-10)

    def test_default_const_terms_are_ones(self):
        from superres.apis.solver_utils.tv_regularizer import TotalVariationRegularizer

        rng = np.random.default_rng(2)
        regularizer = TotalVariationRegularizer((3, 3))
        image = rng.random(9)

        _, derivatives = regularizer.apply_to_image_with_differentiation(image)

        np.testing.assert_allclose(derivatives, regularizer.get_derivatives(image, np.ones(9)), atol=1e-10)

    def test_flat_image_derivatives_are_finite_zero(self):
        from superres.apis.solver_utils.tv_regularizer import TotalVariationRegularizer

        regularizer = TotalVariationRegularizer((4, 4))
        image = np.full(16, 0.3)

        analytic = regularizer.get_derivatives(image, np.ones(16))
        residuals, forward_mode = regularizer.apply_to_image_with_differentiation(image)

        np.testing.assert_array_equal(analytic, np.zeros(16))
        np.testing.assert_array_equal(forward_mode, np.zeros(16))
        np.testing.assert_array_equal(residuals, np.zeros(16))

    def test_tiny_variation_uses_floor(self):
        from superres.apis.solver_utils.tv_regularizer import MIN_TOTAL_VARIATION, TotalVariationRegularizer

        # a 1e-9 step is far below the floor, so the derivative is step / MIN_TOTAL_VARIATION
        image = np.zeros((1, 2))
        image[0, 1] = 1e-9
        regularizer = TotalVariationRegularizer((1, 2))

        derivatives = regularizer.get_derivatives(image.reshape(-1), np.ones(2))
        _, forward_mode = regularizer.apply_to_image_with_differentiation(image.reshape(-1))

        np.testing.assert_allclose(derivatives, [-1e-9 / MIN_TOTAL_VARIATION, 1e-9 / MIN_TOTAL_VARIATION])
        np.testing.assert_allclose(forward_mode, derivatives)

    def test_zero_const_terms_ignore_derivatives(self):
        from superres.apis.solver_utils.tv_regularizer import TotalVariationRegularizer

        regularizer = TotalVariationRegularizer((3, 4))
        derivatives = regularizer.get_derivatives(np.random.default_rng(3).random(12), np.zeros(12))

        np.testing.assert_array_equal(derivatives, np.zeros(12))

    @pytest.mark.parametrize("num_terms", [11, 13])
    def test_wrong_number_of_const_terms_raises(self, num_terms):
        from superres.apis.errors import ConfigurationError
        from superres.apis.solver_utils.tv_regularizer import TotalVariationRegularizer

        regularizer = TotalVariationRegularizer((3, 4))
        with pytest.raises(ConfigurationError):
            regularizer.get_derivatives(np.zeros(12), np.ones(num_terms))
        with pytest.raises(ConfigurationError):
            regularizer.apply_to_image_with_differentiation(np.zeros(12), np.ones(num_terms))

    def test_non_finite_input_raises(self):
        from superres.apis.errors import NonFiniteValueError
        from superres.apis.solver_utils.tv_regularizer import TotalVariationRegularizer

        image = np.zeros(9)
        image[4] = np.nan
        with pytest.raises(NonFiniteValueError):
            TotalVariationRegularizer((3, 3)).get_derivatives(image, np.ones(9))
