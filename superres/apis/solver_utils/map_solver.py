"""
MAP super-resolution solver: IRLS outer loop around a quasi-Newton inner solve.
"""
from typing import Sequence

import numpy as np
from scipy.optimize import minimize
from tqdm import tqdm

from ..errors import ConfigurationError
from ..image_model_utils.image_data import ImageData
from ..image_model_utils.image_model import ImageModel
from .irls_cost_processor import IrlsCostProcessor
from .map_cost_function import MapCostFunction
from .tv_regularizer import TotalVariationRegularizer

REGULARIZERS = {
    "tv": TotalVariationRegularizer,
}


class MapSolver:
    """
    Reconstructs an HR image from LR frames by minimizing

        sum_k ||U A_k x - U y_k||^2 + lambda * sum_i w_i * rho_i(x)^2

    one channel at a time. Each outer iteration runs L-BFGS-B with the IRLS
    weights held fixed, then recomputes the weights at the new estimate.

    Args:
        image_model (ImageModel): degradation model (without noise) of every frame.
        low_res_images (Sequence[ImageData]): the observed LR frames.
        regularizer_type (str): key into REGULARIZERS.
        regularization_parameter (float): lambda >= 0.
        irls_iterations (int): maximum number of reweighting rounds.
        solver_iterations (int): maximum L-BFGS-B iterations per round.
        use_numerical_differentiation (bool): let scipy use finite differences instead
            of the analytic gradient.
        convergence_tolerance (float): stop once ||x_new - x_old|| / ||x_old|| drops below this.
        verbose (bool): print per-round status lines.
    """

    def __init__(self,
                 image_model: ImageModel,
                 low_res_images: Sequence[ImageData],
                 regularizer_type: str = "tv",
                 regularization_parameter: float = 0.01,
                 irls_iterations: int = 10,
                 solver_iterations: int = 50,
                 use_numerical_differentiation: bool = False,
                 convergence_tolerance: float = 1e-5,
                 verbose: bool = False):
        if not low_res_images:
            raise ConfigurationError("MapSolver needs at least one low-resolution image.")
        if regularizer_type not in REGULARIZERS:
            raise ConfigurationError(
                f"Unknown regularizer '{regularizer_type}'. Available: {list(REGULARIZERS)}")
        if irls_iterations < 1 or solver_iterations < 1:
            raise ConfigurationError("irls_iterations and solver_iterations must be >= 1.")

        num_channels = low_res_images[0].num_channels
        if any(image.num_channels != num_channels for image in low_res_images):
            raise ConfigurationError("All low-resolution images must have the same number of channels.")

        self.image_model = image_model
        self.low_res_images = list(low_res_images)
        self.regularizer_type = regularizer_type
        self.regularization_parameter = regularization_parameter
        self.irls_iterations = irls_iterations
        self.solver_iterations = solver_iterations
        self.use_numerical_differentiation = use_numerical_differentiation
        self.convergence_tolerance = convergence_tolerance
        self.verbose = verbose

    def solve(self, initial_estimate: ImageData) -> ImageData:
        num_channels = self.low_res_images[0].num_channels
        if initial_estimate.num_channels != num_channels:
            raise ConfigurationError(
                f"Initial estimate has {initial_estimate.num_channels} channels, "
                f"the low-resolution images have {num_channels}.")

        image_shape = initial_estimate.image_shape
        expected_shape = self.image_model.get_output_shape(image_shape)
        if expected_shape != self.low_res_images[0].image_shape:
            raise ConfigurationError(
                f"Image model maps {image_shape} to {expected_shape}, "
                f"but the low-resolution images are {self.low_res_images[0].image_shape}.")

        regularizer = REGULARIZERS[self.regularizer_type](image_shape)
        irls_cost_processor = IrlsCostProcessor(
            self.low_res_images, self.image_model, image_shape, regularizer, self.regularization_parameter)

        solved_channels = []
        for channel_index in range(num_channels):
            if self.verbose:
                print(f"\n--- Solving channel {channel_index + 1}/{num_channels} "
                      f"({irls_cost_processor.num_pixels} unknowns, {irls_cost_processor.num_images} frames) ---")
            solved_channels.append(self._solve_channel(
                irls_cost_processor, initial_estimate.get_channel_vector(channel_index), channel_index))

        return ImageData.from_channel_vectors(solved_channels, image_shape)

    def _solve_channel(self, irls_cost_processor: IrlsCostProcessor,
                       estimated_image_data: np.ndarray, channel_index: int) -> np.ndarray:
        cost_function = MapCostFunction(irls_cost_processor, channel_index)
        irls_cost_processor.reset_irls_weights()

        for irls_iteration in tqdm(range(self.irls_iterations), desc=f"IRLS (channel {channel_index})",
                                   disable=not self.verbose, leave=False):
            if self.use_numerical_differentiation:
                result = minimize(cost_function.objective, estimated_image_data, jac=None,
                                  method="L-BFGS-B", options={"maxiter": self.solver_iterations})
            else:
                result = minimize(cost_function, estimated_image_data, jac=True,
                                  method="L-BFGS-B", options={"maxiter": self.solver_iterations})

            previous_estimate = estimated_image_data
            estimated_image_data = result.x
            irls_cost_processor.update_irls_weights(estimated_image_data)

            change = np.linalg.norm(estimated_image_data - previous_estimate) / \
                max(np.linalg.norm(previous_estimate), 1e-12)
            if self.verbose:
                print(f"  [IRLS] Iter {irls_iteration}: cost {result.fun:.6f}, "
                      f"relative change {change:.3e}, {result.message}")
            if change < self.convergence_tolerance:
                break

        return estimated_image_data
