import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import cv2
import numpy as np
from PIL import Image

from superres.apis.image_model_utils.image_data import ImageData

IMAGE_EXTENSIONS = ('.png', '.jpg', '.jpeg', '.bmp', '.tif', '.tiff')


def save_json(data: Dict[str, Any], filepath: Path):
    """
    Saves a dictionary to a JSON file with human-readable formatting.

    Args:
        data (Dict[str, Any]): The dictionary data to save.
        filepath (Path): The path to the output JSON file.
    """
    print(f"Saving JSON data to {filepath}...")
    Path(filepath).parent.mkdir(parents=True, exist_ok=True)
    with open(filepath, 'w', encoding='utf-8') as f:
        json.dump(data, f, ensure_ascii=False, indent=4)
    print("Save complete.")


def load_json(filepath: Path) -> Dict[str, Any]:
    """Loads data from a JSON file."""
    print(f"Loading JSON data from {filepath}...")
    with open(filepath, 'r', encoding='utf-8') as f:
        data = json.load(f)
    print("Load complete.")
    return data


def load_frames_from_directory(image_dir: Path, grayscale: bool = False) -> List[ImageData]:
    """
    Loads every image of a directory, in alphabetical file name order, as normalized ImageData.

    Args:
        image_dir (Path): directory holding the frames.
        grayscale (bool): convert every frame to a single luminance channel.

    Returns:
        List[ImageData]: one entry per frame.
    """
    image_dir = Path(image_dir)
    if not image_dir.is_dir():
        raise FileNotFoundError(f"Image directory not found: {image_dir}")

    image_paths = sorted(p for p in image_dir.iterdir() if p.suffix.lower() in IMAGE_EXTENSIONS)
    if not image_paths:
        raise FileNotFoundError(f"No image files found in {image_dir}")

    print(f"Loading {len(image_paths)} frames from {image_dir}...")
    frames = []
    for image_path in image_paths:
        with Image.open(image_path) as img:
            img = img.convert('L' if grayscale else 'RGB')
            frames.append(ImageData(np.array(img, dtype=np.uint8)))
    return frames


def load_image(image_path: Path, grayscale: bool = False) -> ImageData:
    with Image.open(image_path) as img:
        img = img.convert('L' if grayscale else 'RGB')
        return ImageData(np.array(img, dtype=np.uint8))


# ================ reconstruction related functions ================= #
def crop_to_multiple(image_data: ImageData, scale: int) -> ImageData:
    """Crops the bottom/right border so both dimensions are divisible by `scale`."""
    rows, cols = image_data.image_shape
    rows, cols = rows - rows % scale, cols - cols % scale
    cropped = ImageData()
    for c in range(image_data.num_channels):
        cropped.add_channel(image_data.get_channel_image(c)[:rows, :cols], normalize_image=False)
    return cropped


def save_image(img: np.ndarray, img_path: Path, resize_size: Optional[Tuple[int, int]] = None):
    """
    Validates, optionally resizes, and saves a NumPy array as an image file.

    Args:
        img (np.ndarray): The input image data as a NumPy array (dtype=uint8).
        img_path (Path): The path where the image will be saved.
        resize_size (Optional[Tuple[int, int]]): If provided, the image is resized
                                     to (rows, cols) before saving.
    """
    # --- Validation Block ---
    if not isinstance(img, np.ndarray):
        raise TypeError("Input 'img' must be a NumPy array.")

    if img.dtype != np.uint8:
        raise ValueError(f"NumPy array must have dtype 'uint8', but got '{img.dtype}'.")

    # Squeeze to remove empty dimensions (e.g., from (H, W, 1) to (H, W))
    img = np.squeeze(img)

    if resize_size is not None:
        # INTER_NEAREST keeps the pixel grid visible when enlarging LR frames for comparison.
        rows, cols = resize_size
        img = cv2.resize(img, (cols, rows), interpolation=cv2.INTER_NEAREST)

    # --- Saving Logic ---
    # Convert RGB to BGR for OpenCV, if it's a color image
    if img.ndim == 3 and img.shape[2] == 3:
        img = cv2.cvtColor(img, cv2.COLOR_RGB2BGR)

    img_path = Path(img_path)
    img_path.parent.mkdir(parents=True, exist_ok=True)
    cv2.imwrite(str(img_path), img)
