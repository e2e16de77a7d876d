from typing import Tuple

import numpy as np

from .degradation_operator import DegradationOperator
from .image_data import ImageData
from .motion_shift import MotionShiftSequence


def shift_image_pixel(img: np.ndarray, dx: int, dy: int) -> np.ndarray:
    """
    Moves every pixel of a 2D array by (dx, dy): out[r, c] = img[r - dy, c - dx].
    Pixels shifted past the border are dropped and uncovered pixels become 0.
    """
    height, width = img.shape[:2]
    shifted_image = np.zeros_like(img)
    if abs(dx) >= width or abs(dy) >= height:
        return shifted_image

    dst_rows = slice(max(dy, 0), height + min(dy, 0))
    dst_cols = slice(max(dx, 0), width + min(dx, 0))
    src_rows = slice(max(-dy, 0), height + min(-dy, 0))
    src_cols = slice(max(-dx, 0), width + min(-dx, 0))
    shifted_image[dst_rows, dst_cols] = img[src_rows, src_cols]
    return shifted_image


class MotionModule(DegradationOperator):
    """
    Translates frame `index` by the integer motion shift stored for it.

    The operator is not invertible at the borders: destination pixels with no
    source pixel are zero, which shows up as all-zero rows in the operator matrix.
    """

    def __init__(self, motion_shift_sequence: MotionShiftSequence):
        self.motion_shift_sequence = motion_shift_sequence

    def apply_to_image(self, image_data: ImageData, index: int) -> None:
        motion_shift = self.motion_shift_sequence[index]
        image_data.replace_channels([
            shift_image_pixel(image_data.get_channel_image(c), motion_shift.dx, motion_shift.dy)
            for c in range(image_data.num_channels)
        ])

    def apply_transpose_to_image(self, image_data: ImageData, index: int) -> None:
        motion_shift = self.motion_shift_sequence[index]
        image_data.replace_channels([
            shift_image_pixel(image_data.get_channel_image(c), -motion_shift.dx, -motion_shift.dy)
            for c in range(image_data.num_channels)
        ])

    def get_operator_matrix(self, image_shape: Tuple[int, int], index: int) -> np.ndarray:
        motion_shift = self.motion_shift_sequence[index]
        rows, cols = image_shape
        num_pixels = rows * cols

        dst_rows, dst_cols = np.meshgrid(np.arange(rows), np.arange(cols), indexing='ij')
        src_rows = dst_rows - motion_shift.dy
        src_cols = dst_cols - motion_shift.dx
        valid = (src_rows >= 0) & (src_rows < rows) & (src_cols >= 0) & (src_cols < cols)

        operator_matrix = np.zeros((num_pixels, num_pixels), dtype=np.float64)
        operator_matrix[dst_rows[valid] * cols + dst_cols[valid], src_rows[valid] * cols + src_cols[valid]] = 1.0
        return operator_matrix
