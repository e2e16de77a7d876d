import abc
from typing import Tuple

import numpy as np

from .image_data import ImageData


class DegradationOperator(abc.ABC):
    """
    One linear step of the image formation model (motion, blur, downsampling, noise).

    Operators hold configuration only. Every call receives the frame index so
    per-frame parameters (e.g. the motion shift) can be looked up. Forward and
    transpose application mutate the given ImageData in place; the operator
    matrix is the dense (output_pixels x input_pixels) form of the forward map
    and is meant for verification and small problems only.
    """

    @abc.abstractmethod
    def apply_to_image(self, image_data: ImageData, index: int) -> None:
        """Applies the degradation for frame `index` to every channel."""

    @abc.abstractmethod
    def apply_transpose_to_image(self, image_data: ImageData, index: int) -> None:
        """Applies the adjoint of `apply_to_image` for frame `index` to every channel."""

    @abc.abstractmethod
    def get_operator_matrix(self, image_shape: Tuple[int, int], index: int) -> np.ndarray:
        """Returns the dense matrix M with M @ vec(image) == vec(apply_to_image(image))."""

    def get_output_shape(self, image_shape: Tuple[int, int]) -> Tuple[int, int]:
        """Shape of the image after the forward operator; unchanged unless overridden."""
        return tuple(image_shape)

    @staticmethod
    def convert_kernel_to_operator_matrix(kernel: np.ndarray, image_shape: Tuple[int, int]) -> np.ndarray:
        """
        Builds the dense matrix of a 2D correlation with `kernel` over an image of
        `image_shape`, zero-padded at the borders and anchored at the kernel center.

        Output pixel (r, c) receives kernel[i, j] * image[r + i - kr, c + j - kc]
        for every in-bounds source pixel, where (kr, kc) is the kernel center.

        Args:
            kernel (np.ndarray): 2D kernel, odd sizes give a symmetric anchor.
            image_shape (Tuple[int, int]): (rows, cols) of the image.

        Returns:
            np.ndarray: (rows * cols, rows * cols) operator matrix.
        """
        kernel = np.asarray(kernel, dtype=np.float64)
        rows, cols = image_shape
        num_pixels = rows * cols
        kernel_rows, kernel_cols = kernel.shape
        anchor_row, anchor_col = kernel_rows // 2, kernel_cols // 2

        operator_matrix = np.zeros((num_pixels, num_pixels), dtype=np.float64)
        out_rows, out_cols = np.meshgrid(np.arange(rows), np.arange(cols), indexing='ij')
        out_indices = (out_rows * cols + out_cols).reshape(-1)

        for i in range(kernel_rows):
            for j in range(kernel_cols):
                src_rows = (out_rows + i - anchor_row).reshape(-1)
                src_cols = (out_cols + j - anchor_col).reshape(-1)
                valid = (src_rows >= 0) & (src_rows < rows) & (src_cols >= 0) & (src_cols < cols)
                src_indices = src_rows[valid] * cols + src_cols[valid]
                # each (out, src) pair appears at most once per kernel tap
                operator_matrix[out_indices[valid], src_indices] += kernel[i, j]

        return operator_matrix
