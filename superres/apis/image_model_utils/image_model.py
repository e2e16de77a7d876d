from typing import List, Tuple

import numpy as np

from ..errors import ConfigurationError
from .degradation_operator import DegradationOperator
from .image_data import ImageData


class ImageModel:
    """
    Ordered chain of degradation operators mapping an HR image to LR frame `index`.

    Operator 0 is applied first, so the model matrix for frame i is
    M_{n-1} @ ... @ M_1 @ M_0 and the transpose applies the operators in
    reverse order. The model owns its operators and is frozen after first use.
    """

    def __init__(self):
        self._degradation_operators: List[DegradationOperator] = []
        self._is_frozen = False

    def add_degradation_operator(self, degradation_operator: DegradationOperator) -> None:
        if self._is_frozen:
            raise ConfigurationError(
                "Degradation operators cannot be added after the image model has been used.")
        if not isinstance(degradation_operator, DegradationOperator):
            raise TypeError(f"Expected a DegradationOperator, got {type(degradation_operator).__name__}.")
        self._degradation_operators.append(degradation_operator)

    def __len__(self) -> int:
        return len(self._degradation_operators)

    def get_output_shape(self, image_shape: Tuple[int, int]) -> Tuple[int, int]:
        image_shape = tuple(image_shape)
        for degradation_operator in self._degradation_operators:
            image_shape = degradation_operator.get_output_shape(image_shape)
        return image_shape

    def apply_to_image(self, image_data: ImageData, index: int) -> ImageData:
        """Returns a degraded copy of the HR image as observed in frame `index`."""
        self._is_frozen = True
        degraded_image = image_data.copy()
        for degradation_operator in self._degradation_operators:
            degradation_operator.apply_to_image(degraded_image, index)
        return degraded_image

    def apply_transpose_to_image(self, image_data: ImageData, index: int) -> ImageData:
        """Returns a copy with the adjoint model of frame `index` applied (LR grid -> HR grid)."""
        self._is_frozen = True
        transposed_image = image_data.copy()
        for degradation_operator in reversed(self._degradation_operators):
            degradation_operator.apply_transpose_to_image(transposed_image, index)
        return transposed_image

    def get_model_matrix(self, image_shape: Tuple[int, int], index: int) -> np.ndarray:
        """Dense matrix of the full model for frame `index` on an HR image of `image_shape`."""
        self._is_frozen = True
        rows, cols = image_shape
        model_matrix = np.eye(rows * cols, dtype=np.float64)
        current_shape = tuple(image_shape)
        for degradation_operator in self._degradation_operators:
            operator_matrix = degradation_operator.get_operator_matrix(current_shape, index)
            model_matrix = operator_matrix @ model_matrix
            current_shape = degradation_operator.get_output_shape(current_shape)
        return model_matrix
