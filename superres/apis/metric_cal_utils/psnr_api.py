import numpy as np
import piq
import torch
import torch.nn.functional as F


def _to_piq_format(image: np.ndarray) -> torch.Tensor:
    """
    Converts an (H, W) or (H, W, C) float image in [0, 1] to a (1, C, H, W) tensor,
    clamped to [0, 1] as piq requires.
    """
    if not isinstance(image, np.ndarray):
        raise TypeError(f"Input must be a NumPy array, got {type(image)}")

    tensor_image = torch.from_numpy(np.ascontiguousarray(image)).float()
    if tensor_image.ndim == 2:
        tensor_image = tensor_image.unsqueeze(-1)
    elif tensor_image.ndim != 3:
        raise ValueError(f"Unsupported image ndim for PSNR: {tensor_image.ndim}. Expected 2 or 3.")

    tensor_image = tensor_image.permute(2, 0, 1).unsqueeze(0)
    return torch.clamp(tensor_image, 0.0, 1.0)


def psnr_api(recon_img: np.ndarray, gt_img: np.ndarray, rescale_to_match: bool = True) -> float:
    """
    Calculates PSNR (dB) of a reconstruction against the ground truth using piq.

    Args:
        recon_img (np.ndarray): reconstructed image, (H, W) or (H, W, C), values in [0, 1].
        gt_img (np.ndarray): ground truth image, same channel layout, values in [0, 1].
        rescale_to_match (bool): if True, resizes the ground truth to the reconstruction size
            (bicubic) when the shapes differ.

    Returns:
        float: PSNR score, higher is better.
    """
    recon_tensor = _to_piq_format(recon_img)
    gt_tensor = _to_piq_format(gt_img)

    if recon_tensor.shape[1] != gt_tensor.shape[1]:
        raise ValueError(
            f"Channel mismatch: reconstruction has {recon_tensor.shape[1]}, ground truth {gt_tensor.shape[1]}.")

    if recon_tensor.shape[2:] != gt_tensor.shape[2:]:
        if not rescale_to_match:
            raise ValueError(f"Shape mismatch: {tuple(recon_tensor.shape)} vs {tuple(gt_tensor.shape)}.")
        gt_tensor = F.interpolate(gt_tensor, size=recon_tensor.shape[2:], mode='bicubic', align_corners=False)
        gt_tensor = torch.clamp(gt_tensor, 0.0, 1.0)

    psnr_index: torch.Tensor = piq.psnr(recon_tensor, gt_tensor, data_range=1.)
    return psnr_index.item()
