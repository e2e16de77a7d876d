import abc
from typing import Optional, Sequence, Tuple

import numpy as np

from ..errors import ConfigurationError


class Regularizer(abc.ABC):
    """
    Penalty on an HR estimate, evaluated as one residual per pixel.

    All methods take the estimate as a flat row-major vector of one channel,
    the same layout the optimizer works on.

    Args:
        image_shape (Tuple[int, int]): (rows, cols) of the HR image.
    """

    def __init__(self, image_shape: Tuple[int, int]):
        self.image_shape = tuple(image_shape)

    @property
    def num_pixels(self) -> int:
        return self.image_shape[0] * self.image_shape[1]

    @abc.abstractmethod
    def apply_to_image(self, image_data: np.ndarray) -> np.ndarray:
        """Returns the residual at every pixel."""

    @abc.abstractmethod
    def get_derivatives(self, image_data: np.ndarray, partial_const_terms: Sequence[float]) -> np.ndarray:
        """
        Returns d/dx_i of sum_j u_j * r_j(x) for every pixel i, where u_j are the
        caller's `partial_const_terms` (use 1 for identity, 0 to ignore a term).
        """

    @abc.abstractmethod
    def apply_to_image_with_differentiation(
            self, image_data: np.ndarray,
            partial_const_terms: Optional[Sequence[float]] = None) -> Tuple[np.ndarray, np.ndarray]:
        """Returns (residuals, derivatives) computed in one automatic-differentiation pass."""

    def _check_image_data(self, image_data: np.ndarray) -> np.ndarray:
        image_data = np.asarray(image_data, dtype=np.float64).reshape(-1)
        if image_data.size != self.num_pixels:
            raise ConfigurationError(
                f"Expected {self.num_pixels} pixel values for image shape {self.image_shape}, got {image_data.size}.")
        return image_data

    def _check_partial_const_terms(self, partial_const_terms: Optional[Sequence[float]]) -> np.ndarray:
        if partial_const_terms is None:
            return np.ones(self.num_pixels, dtype=np.float64)
        partial_const_terms = np.asarray(partial_const_terms, dtype=np.float64).reshape(-1)
        if partial_const_terms.size != self.num_pixels:
            raise ConfigurationError(
                f"There must be exactly one const term per pixel ({self.num_pixels}), "
                f"got {partial_const_terms.size}. Use 1 for identity or 0 to ignore the derivative.")
        return partial_const_terms
