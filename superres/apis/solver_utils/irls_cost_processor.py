"""
MAP objective using the iteratively reweighted least squares (IRLS) formulation.

The processor sits between the image processing code and the optimizer: it
degrades HR estimates with the ImageModel, compares them against the stored
observations and adds the IRLS-weighted regularization term. The optimizer only
ever sees flat pixel vectors of one channel.
"""
from typing import Optional, Sequence, Tuple

import numpy as np

from ..errors import ConfigurationError, NonFiniteValueError
from ..image_model_utils.downsampling_module import DownsamplingModule
from ..image_model_utils.image_data import ImageData
from ..image_model_utils.image_model import ImageModel
from .regularizer import Regularizer
from .tv_regularizer import MIN_TOTAL_VARIATION


def _infer_scale(image_shape: Tuple[int, int], low_res_shape: Tuple[int, int]) -> int:
    rows, cols = image_shape
    lr_rows, lr_cols = low_res_shape
    if lr_rows == 0 or lr_cols == 0 or rows % lr_rows != 0 or cols % lr_cols != 0 \
            or rows // lr_rows != cols // lr_cols:
        raise ConfigurationError(
            f"HR shape {tuple(image_shape)} is not an integer multiple of LR shape {tuple(low_res_shape)}.")
    return rows // lr_rows


class IrlsCostProcessor:
    """
    Computes the MAP-IRLS objective and its gradient.

    With U the zero-fill upsampling operator and A the ImageModel of frame k, the
    data residuals are r_k = U A x - U y_k and their derivatives 2 A' U' r_k. The
    regularization residuals are sqrt(lambda * w_i) * rho_i(x), where w are the IRLS
    weights, refreshed between outer iterations by `update_irls_weights`.

    Args:
        low_res_images (Sequence[ImageData]): the observed LR frames, all the same shape.
        image_model (ImageModel): degradation model mapping the HR estimate to each frame.
        image_shape (Tuple[int, int]): (rows, cols) of the HR estimate.
        regularizer (Regularizer): regularization term evaluated on the HR estimate.
        regularization_parameter (float): lambda >= 0; 0 disables the regularizer.
    """

    def __init__(self,
                 low_res_images: Sequence[ImageData],
                 image_model: ImageModel,
                 image_shape: Tuple[int, int],
                 regularizer: Regularizer,
                 regularization_parameter: float):
        if not low_res_images:
            raise ConfigurationError("At least one low-resolution image is required.")
        if regularization_parameter < 0:
            raise ConfigurationError(
                f"Regularization parameter must be non-negative, got {regularization_parameter}.")
        if tuple(regularizer.image_shape) != tuple(image_shape):
            raise ConfigurationError(
                f"Regularizer shape {regularizer.image_shape} does not match HR shape {tuple(image_shape)}.")

        self.image_model = image_model
        self.image_shape = tuple(image_shape)
        self.regularizer = regularizer
        self.regularization_parameter = float(regularization_parameter)

        # Observations are stored on the HR grid: same values, zero-filled gaps.
        low_res_shape = low_res_images[0].image_shape
        self._upsampling = DownsamplingModule(_infer_scale(self.image_shape, low_res_shape))
        self._observations = []
        for low_res_image in low_res_images:
            if low_res_image.image_shape != low_res_shape:
                raise ConfigurationError("All low-resolution images must share identical dimensions.")
            observation = low_res_image.copy()
            self._upsampling.apply_transpose_to_image(observation, 0)
            self._observations.append(observation)

        self.reset_irls_weights()

    @property
    def num_pixels(self) -> int:
        return self.image_shape[0] * self.image_shape[1]

    @property
    def num_images(self) -> int:
        return len(self._observations)

    @property
    def num_channels(self) -> int:
        return self._observations[0].num_channels

    @property
    def irls_weights(self) -> np.ndarray:
        return self._irls_weights.copy()

    def _check_estimate(self, estimated_image_data: np.ndarray) -> np.ndarray:
        estimated_image_data = np.asarray(estimated_image_data, dtype=np.float64).reshape(-1)
        if estimated_image_data.size != self.num_pixels:
            raise ConfigurationError(
                f"Expected an estimate of {self.num_pixels} pixels, got {estimated_image_data.size}.")
        return estimated_image_data

    def compute_data_term_residuals(self, image_index: int, channel_index: int,
                                    estimated_image_data: np.ndarray) -> np.ndarray:
        """Residual at every HR pixel between the degraded estimate and observation `image_index`."""
        if not 0 <= image_index < self.num_images:
            raise IndexError(f"Image index {image_index} out of range [0, {self.num_images}).")
        estimated_image_data = self._check_estimate(estimated_image_data)

        estimate = ImageData.from_channel_vectors([estimated_image_data], self.image_shape)
        degraded = self.image_model.apply_to_image(estimate, image_index)
        self._upsampling.apply_transpose_to_image(degraded, image_index)
        if degraded.image_shape != self.image_shape:
            raise ConfigurationError(
                f"The image model maps {self.image_shape} to a grid that does not upsample back "
                f"to it (got {degraded.image_shape}).")

        observation = self._observations[image_index].get_channel_vector(channel_index)
        return degraded.get_channel_vector(0) - observation

    def compute_data_term_derivatives(self, image_index: int, residuals: np.ndarray) -> np.ndarray:
        """2 * A' U' r for the residuals of observation `image_index`."""
        residuals = self._check_estimate(residuals)
        residual_image = ImageData.from_channel_vectors([residuals], self.image_shape)
        self._upsampling.apply_to_image(residual_image, image_index)
        derivative_image = self.image_model.apply_transpose_to_image(residual_image, image_index)
        return 2.0 * derivative_image.get_channel_vector(0)

    def compute_regularization_residuals(self, estimated_image_data: np.ndarray) -> np.ndarray:
        estimated_image_data = self._check_estimate(estimated_image_data)
        residuals = self.regularizer.apply_to_image(estimated_image_data)
        return np.sqrt(self.regularization_parameter * self._irls_weights) * residuals

    def compute_regularization_derivatives(self, estimated_image_data: np.ndarray) -> np.ndarray:
        """
        Derivative of sum_i lambda * w_i * rho_i(x)^2, i.e. the regularizer's derivatives
        chained with the upstream terms 2 * lambda * w_i * rho_i(x).
        """
        estimated_image_data = self._check_estimate(estimated_image_data)
        residuals = self.regularizer.apply_to_image(estimated_image_data)
        partial_const_terms = 2.0 * self.regularization_parameter * self._irls_weights * residuals
        return self.regularizer.get_derivatives(estimated_image_data, partial_const_terms)

    def reset_irls_weights(self) -> None:
        """Back to the initial state: every weight is 1, i.e. plain L2 on the residuals."""
        self._irls_weights = np.ones(self.num_pixels, dtype=np.float64)

    def update_irls_weights(self, estimated_image_data: np.ndarray) -> None:
        """
        Recomputes every weight as 1 / max(rho_i, MIN_TOTAL_VARIATION) at the given
        estimate. The whole vector is replaced at once.
        """
        estimated_image_data = self._check_estimate(estimated_image_data)
        if not np.all(np.isfinite(estimated_image_data)):
            raise NonFiniteValueError("Cannot update IRLS weights from an estimate with NaN or Inf values.")

        residuals = self.regularizer.apply_to_image(estimated_image_data)
        irls_weights = 1.0 / np.maximum(np.abs(residuals), MIN_TOTAL_VARIATION)
        irls_weights = np.minimum(irls_weights, 1.0 / MIN_TOTAL_VARIATION)
        if not np.all(np.isfinite(irls_weights)) or not np.all(irls_weights > 0):
            raise NonFiniteValueError("IRLS weights must be strictly positive and finite.")
        self._irls_weights = irls_weights

    def compute_objective_function(self, estimated_image_data: np.ndarray,
                                   gradient: Optional[np.ndarray] = None,
                                   channel_index: int = 0) -> float:
        """
        Returns the sum of squared data and regularization residuals for one channel.

        If `gradient` is given it is overwritten in place with the analytic gradient.
        Leave it out when the optimizer differentiates numerically.
        """
        estimated_image_data = self._check_estimate(estimated_image_data)
        compute_gradient = gradient is not None
        if compute_gradient:
            if gradient.shape != (self.num_pixels,):
                raise ConfigurationError(
                    f"Gradient buffer must have shape ({self.num_pixels},), got {gradient.shape}.")
            gradient[:] = 0.0

        residual_sum = 0.0
        for image_index in range(self.num_images):
            residuals = self.compute_data_term_residuals(image_index, channel_index, estimated_image_data)
            residual_sum += float(np.dot(residuals, residuals))
            if compute_gradient:
                gradient += self.compute_data_term_derivatives(image_index, residuals)

        if self.regularization_parameter > 0:
            regularization_residuals = self.compute_regularization_residuals(estimated_image_data)
            residual_sum += float(np.dot(regularization_residuals, regularization_residuals))
            if compute_gradient:
                gradient += self.compute_regularization_derivatives(estimated_image_data)

        if not np.isfinite(residual_sum):
            raise NonFiniteValueError("Objective value is NaN or Inf.")
        if compute_gradient and not np.all(np.isfinite(gradient)):
            raise NonFiniteValueError("Objective gradient contains NaN or Inf values.")
        return residual_sum
