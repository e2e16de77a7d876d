from typing import Tuple

import cv2
import numpy as np

from ..errors import ConfigurationError
from .degradation_operator import DegradationOperator
from .image_data import ImageData


def generate_gaussian_kernel(kernel_size: int, sigma: float) -> np.ndarray:
    """
    Generates a normalized 2D Gaussian kernel as the outer product of two 1D
    OpenCV Gaussian kernels, so the result is exactly symmetric under flipping.
    """
    kernel_1d = cv2.getGaussianKernel(kernel_size, sigma, ktype=cv2.CV_64F)
    return kernel_1d @ kernel_1d.T


class BlurModule(DegradationOperator):
    """
    Gaussian blur applied identically to every frame.

    Forward application is a zero-padded 2D correlation with the kernel; the
    transpose is the correlation with the flipped kernel. The Gaussian kernel is
    symmetric, so the operator matrix is symmetric and the transpose path is
    the forward path.

    Args:
        kernel_size (int): odd side length of the square kernel.
        sigma (float): Gaussian standard deviation in pixels.
    """

    def __init__(self, kernel_size: int, sigma: float):
        if kernel_size < 1 or kernel_size % 2 == 0:
            raise ConfigurationError(f"Blur kernel size must be a positive odd number, got {kernel_size}.")
        if sigma <= 0:
            raise ConfigurationError(f"Blur sigma must be positive, got {sigma}.")

        self.kernel_size = int(kernel_size)
        self.sigma = float(sigma)
        self.blur_kernel = generate_gaussian_kernel(self.kernel_size, self.sigma)
        self._transpose_kernel = cv2.flip(self.blur_kernel, -1)
        self._is_symmetric = np.array_equal(self.blur_kernel, self._transpose_kernel)

    @staticmethod
    def _correlate(channel: np.ndarray, kernel: np.ndarray) -> np.ndarray:
        return cv2.filter2D(channel, -1, kernel, borderType=cv2.BORDER_CONSTANT)

    def apply_to_image(self, image_data: ImageData, index: int) -> None:
        image_data.replace_channels([
            self._correlate(image_data.get_channel_image(c), self.blur_kernel)
            for c in range(image_data.num_channels)
        ])

    def apply_transpose_to_image(self, image_data: ImageData, index: int) -> None:
        if self._is_symmetric:
            self.apply_to_image(image_data, index)
            return
        image_data.replace_channels([
            self._correlate(image_data.get_channel_image(c), self._transpose_kernel)
            for c in range(image_data.num_channels)
        ])

    def get_operator_matrix(self, image_shape: Tuple[int, int], index: int) -> np.ndarray:
        return self.convert_kernel_to_operator_matrix(self.blur_kernel, image_shape)
