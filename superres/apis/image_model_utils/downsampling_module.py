from typing import Tuple

import numpy as np

from ..errors import ConfigurationError
from .degradation_operator import DegradationOperator
from .image_data import ImageData


class DownsamplingModule(DegradationOperator):
    """
    Reduces the image size by an integer scale in both directions.

    No interpolation is involved: the top-left pixel of every scale x scale block
    is kept and the rest is dropped, which mimics the information loss of a
    low-resolution sensor. The transpose scatters each pixel back to the
    top-left corner of its block on a zero image `scale` times larger.

    Args:
        scale (int): downsampling factor, >= 1.
    """

    def __init__(self, scale: int):
        if int(scale) != scale or scale < 1:
            raise ConfigurationError(f"Downsampling scale must be an integer >= 1, got {scale}.")
        self.scale = int(scale)

    def get_output_shape(self, image_shape: Tuple[int, int]) -> Tuple[int, int]:
        rows, cols = image_shape
        if rows % self.scale != 0 or cols % self.scale != 0:
            raise ConfigurationError(
                f"Image shape {tuple(image_shape)} is not divisible by the downsampling scale {self.scale}.")
        return rows // self.scale, cols // self.scale

    def apply_to_image(self, image_data: ImageData, index: int) -> None:
        self.get_output_shape(image_data.image_shape)
        image_data.replace_channels([
            image_data.get_channel_image(c)[::self.scale, ::self.scale].copy()
            for c in range(image_data.num_channels)
        ])

    def apply_transpose_to_image(self, image_data: ImageData, index: int) -> None:
        rows, cols = image_data.image_shape
        upsampled_channels = []
        for c in range(image_data.num_channels):
            upsampled = np.zeros((rows * self.scale, cols * self.scale), dtype=np.float64)
            upsampled[::self.scale, ::self.scale] = image_data.get_channel_image(c)
            upsampled_channels.append(upsampled)
        image_data.replace_channels(upsampled_channels)

    def get_operator_matrix(self, image_shape: Tuple[int, int], index: int) -> np.ndarray:
        rows, cols = image_shape
        out_rows, out_cols = self.get_output_shape(image_shape)

        sample_rows, sample_cols = np.meshgrid(
            np.arange(out_rows) * self.scale, np.arange(out_cols) * self.scale, indexing='ij')
        operator_matrix = np.zeros((out_rows * out_cols, rows * cols), dtype=np.float64)
        operator_matrix[np.arange(out_rows * out_cols), (sample_rows * cols + sample_cols).reshape(-1)] = 1.0
        return operator_matrix
