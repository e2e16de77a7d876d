from typing import Optional, Tuple

import numpy as np

from ..errors import ConfigurationError
from .degradation_operator import DegradationOperator
from .image_data import ImageData


class AdditiveNoiseModule(DegradationOperator):
    """
    Adds zero-mean Gaussian noise to every pixel.

    The only non-deterministic operator: draws come from the operator's own
    generator. Noise is additive, so the linear part (matrix and transpose) is
    the identity.

    Args:
        sigma (float): noise standard deviation, in the units of the pixel values.
        seed (int): optional seed for reproducible noise.
    """

    def __init__(self, sigma: float, seed: Optional[int] = None):
        if sigma < 0:
            raise ConfigurationError(f"Noise sigma must be non-negative, got {sigma}.")
        self.sigma = float(sigma)
        self._rng = np.random.default_rng(seed)

    def apply_to_image(self, image_data: ImageData, index: int) -> None:
        if self.sigma == 0:
            return
        image_data.replace_channels([
            image_data.get_channel_image(c) + self._rng.normal(0.0, self.sigma, image_data.image_shape)
            for c in range(image_data.num_channels)
        ])

    def apply_transpose_to_image(self, image_data: ImageData, index: int) -> None:
        pass

    def get_operator_matrix(self, image_shape: Tuple[int, int], index: int) -> np.ndarray:
        rows, cols = image_shape
        return np.eye(rows * cols, dtype=np.float64)
