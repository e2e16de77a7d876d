from typing import Tuple

import numpy as np

from .irls_cost_processor import IrlsCostProcessor


class MapCostFunction:
    """
    Objective/gradient pair for one image channel, in the form a generic
    minimizer consumes: a flat vector of HR pixel values in, a scalar (and
    optionally a gradient vector) out.
    """

    def __init__(self, irls_cost_processor: IrlsCostProcessor, channel_index: int = 0):
        self.irls_cost_processor = irls_cost_processor
        self.channel_index = channel_index

    @property
    def num_parameters(self) -> int:
        return self.irls_cost_processor.num_pixels

    def objective(self, estimated_image_data: np.ndarray) -> float:
        return self.irls_cost_processor.compute_objective_function(
            estimated_image_data, channel_index=self.channel_index)

    def gradient(self, estimated_image_data: np.ndarray) -> np.ndarray:
        return self(estimated_image_data)[1]

    def __call__(self, estimated_image_data: np.ndarray) -> Tuple[float, np.ndarray]:
        gradient = np.zeros(self.num_parameters, dtype=np.float64)
        value = self.irls_cost_processor.compute_objective_function(
            estimated_image_data, gradient=gradient, channel_index=self.channel_index)
        return value, gradient
