"""
Shift-and-add fusion, the baseline from "An Introduction to Super-Resolution Imaging" (2012).

Every LR pixel is dropped onto its motion-compensated position of the HR grid;
HR pixels that no frame covers are inpainted afterwards.
"""
from typing import Sequence

import cv2
import numpy as np

from ..errors import ConfigurationError
from ..image_model_utils.image_data import ImageData
from ..image_model_utils.motion_shift import MotionShiftSequence


def shift_add_fusion(low_res_images: Sequence[ImageData],
                     motion_shift_sequence: MotionShiftSequence,
                     upsampling_scale: int,
                     inpaint: bool = True) -> ImageData:
    """
    Fuses LR frames onto an HR grid `upsampling_scale` times larger.

    LR pixel (y, x) of frame i lands on HR pixel (scale * y - dy_i, scale * x - dx_i);
    positions outside the HR grid are dropped and later frames overwrite earlier ones.

    Args:
        low_res_images (Sequence[ImageData]): LR frames of identical shape and channel count.
        motion_shift_sequence (MotionShiftSequence): one shift per frame.
        upsampling_scale (int): integer scale factor >= 1.
        inpaint (bool): fill uncovered HR pixels with cv2.inpaint (Navier-Stokes,
            radius = scale). If False they stay 0.

    Returns:
        ImageData: the fused HR image.
    """
    if not low_res_images:
        raise ConfigurationError("Shift-add fusion needs at least one low-resolution image.")
    if len(motion_shift_sequence) != len(low_res_images):
        raise ConfigurationError(
            f"The number of motion shifts ({len(motion_shift_sequence)}) must match "
            f"the number of frames ({len(low_res_images)}).")
    if int(upsampling_scale) != upsampling_scale or upsampling_scale < 1:
        raise ConfigurationError(f"Upsampling scale must be an integer >= 1, got {upsampling_scale}.")
    upsampling_scale = int(upsampling_scale)

    low_res_shape = low_res_images[0].image_shape
    num_channels = low_res_images[0].num_channels
    hr_rows, hr_cols = low_res_shape[0] * upsampling_scale, low_res_shape[1] * upsampling_scale

    fusion_channels = np.zeros((num_channels, hr_rows, hr_cols), dtype=np.float64)
    # non-zero pixels still need inpainting
    inpaint_mask = np.ones((hr_rows, hr_cols), dtype=np.uint8)

    lr_rows, lr_cols = np.meshgrid(np.arange(low_res_shape[0]), np.arange(low_res_shape[1]), indexing='ij')
    for frame_index, low_res_image in enumerate(low_res_images):
        if low_res_image.image_shape != low_res_shape or low_res_image.num_channels != num_channels:
            raise ConfigurationError("All low-resolution images must share shape and channel count.")

        motion_shift = motion_shift_sequence[frame_index]
        hr_y = upsampling_scale * lr_rows - motion_shift.dy
        hr_x = upsampling_scale * lr_cols - motion_shift.dx
        inside = (hr_y >= 0) & (hr_y < hr_rows) & (hr_x >= 0) & (hr_x < hr_cols)

        for channel_index in range(num_channels):
            channel = low_res_image.get_channel_image(channel_index)
            fusion_channels[channel_index, hr_y[inside], hr_x[inside]] = channel[inside]
        inpaint_mask[hr_y[inside], hr_x[inside]] = 0

    if inpaint and inpaint_mask.any():
        fusion_channels = np.stack([
            cv2.inpaint(channel.astype(np.float32), inpaint_mask, upsampling_scale, cv2.INPAINT_NS)
            for channel in fusion_channels
        ]).astype(np.float64)

    fused_image = ImageData()
    for channel in fusion_channels:
        fused_image.add_channel(channel, normalize_image=False)
    return fused_image
