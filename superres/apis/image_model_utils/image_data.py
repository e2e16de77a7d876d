import copy
from typing import List, Optional, Sequence, Tuple

import cv2
import numpy as np

from ..errors import ConfigurationError


class ImageData:
    """
    Multi-channel image container used by every degradation operator and solver.

    Each channel is a float64 2D array; all channels share one shape. Shapes are
    numpy shapes (rows, cols), and pixel vectors are row-major, so pixel
    (row, col) lives at index ``row * width + col``.

    Args:
        image (np.ndarray): Optional (H, W) or (H, W, C) array to split into channels.
        normalize_image (bool): If True, uint8 input is scaled from [0, 255] to [0, 1].
    """

    def __init__(self, image: Optional[np.ndarray] = None, normalize_image: bool = True):
        self._channels: List[np.ndarray] = []
        if image is None:
            return

        image = np.asarray(image)
        if image.ndim == 2:
            self.add_channel(image, normalize_image)
        elif image.ndim == 3:
            for channel_index in range(image.shape[2]):
                self.add_channel(image[:, :, channel_index], normalize_image)
        else:
            raise ValueError(f"Image must be 2D (H, W) or 3D (H, W, C), got ndim={image.ndim}.")

    @classmethod
    def from_channel_vectors(cls, channel_vectors: Sequence[np.ndarray], image_shape: Tuple[int, int]) -> "ImageData":
        """Builds an image from flat row-major channel vectors of length rows * cols."""
        image_data = cls()
        for vector in channel_vectors:
            vector = np.asarray(vector, dtype=np.float64)
            if vector.size != image_shape[0] * image_shape[1]:
                raise ConfigurationError(
                    f"Channel vector of length {vector.size} does not fit image shape {tuple(image_shape)}.")
            image_data.add_channel(vector.reshape(image_shape), normalize_image=False)
        return image_data

    def add_channel(self, channel_image: np.ndarray, normalize_image: bool = True) -> None:
        channel_image = np.asarray(channel_image)
        if channel_image.ndim != 2:
            raise ValueError(f"A channel must be a 2D array, got ndim={channel_image.ndim}.")
        if self._channels and channel_image.shape != self.image_shape:
            raise ConfigurationError(
                f"Channel shape {channel_image.shape} does not match image shape {self.image_shape}.")

        is_uint8 = channel_image.dtype == np.uint8
        channel_image = channel_image.astype(np.float64)  # always a copy
        if normalize_image and is_uint8:
            channel_image /= 255.0
        self._channels.append(channel_image)

    def replace_channels(self, channels: Sequence[np.ndarray]) -> None:
        """
        Swaps in a new set of channels, e.g. after an operator changed the image size.
        The number of channels must not change.
        """
        channels = [np.asarray(channel, dtype=np.float64) for channel in channels]
        if len(channels) != len(self._channels):
            raise ConfigurationError(
                f"Expected {len(self._channels)} channels, got {len(channels)}.")
        if any(channel.shape != channels[0].shape for channel in channels):
            raise ConfigurationError("All channels of an image must share identical dimensions.")
        self._channels = channels

    @property
    def num_channels(self) -> int:
        return len(self._channels)

    @property
    def image_shape(self) -> Tuple[int, int]:
        if not self._channels:
            return 0, 0
        return self._channels[0].shape

    @property
    def num_pixels(self) -> int:
        rows, cols = self.image_shape
        return rows * cols

    def get_channel_image(self, channel_index: int) -> np.ndarray:
        if not 0 <= channel_index < len(self._channels):
            raise IndexError(f"Channel index {channel_index} out of range [0, {len(self._channels)}).")
        return self._channels[channel_index]

    def get_channel_vector(self, channel_index: int) -> np.ndarray:
        return self.get_channel_image(channel_index).reshape(-1).copy()

    def get_pixel_value(self, channel_index: int, pixel_index: int) -> float:
        return float(self.get_channel_image(channel_index).flat[pixel_index])

    def copy(self) -> "ImageData":
        return copy.deepcopy(self)

    def resize(self, image_shape: Tuple[int, int], interpolation: int = cv2.INTER_CUBIC) -> "ImageData":
        """Returns an interpolated copy at the given (rows, cols) shape."""
        rows, cols = image_shape
        resized = ImageData()
        for channel in self._channels:
            resized.add_channel(cv2.resize(channel, (cols, rows), interpolation=interpolation),
                                normalize_image=False)
        return resized

    def to_array(self) -> np.ndarray:
        """(H, W) for single-channel images, (H, W, C) otherwise."""
        if len(self._channels) == 1:
            return self._channels[0].copy()
        return np.stack(self._channels, axis=-1)

    def to_uint8(self) -> np.ndarray:
        return np.uint8((np.clip(self.to_array(), 0, 1) * 255.0).round())
