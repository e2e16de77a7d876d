from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import cv2
import numpy as np

from .. import utils
from superres.apis.errors import ConfigurationError
from superres.apis.fusion_utils.shift_add_fusion import shift_add_fusion
from superres.apis.image_model_utils.additive_noise_module import AdditiveNoiseModule
from superres.apis.image_model_utils.blur_module import BlurModule
from superres.apis.image_model_utils.downsampling_module import DownsamplingModule
from superres.apis.image_model_utils.image_data import ImageData
from superres.apis.image_model_utils.image_model import ImageModel
from superres.apis.image_model_utils.motion_module import MotionModule
from superres.apis.image_model_utils.motion_shift import MotionShift, MotionShiftSequence
from superres.apis.metric_cal_utils.psnr_api import psnr_api
from superres.apis.solver_utils.map_solver import MapSolver

INITIAL_ESTIMATES = ("shift_add", "bicubic")

project_root = Path(__file__).resolve().parent.parent.parent


def validate_config(config: Dict[str, Any]) -> None:
    """Raises ConfigurationError for missing sections or out-of-range parameters."""
    for section in ("data_folders", "image_model_params", "solver_params"):
        if section not in config:
            raise ConfigurationError(f"Config is missing the '{section}' section.")

    model_params = config["image_model_params"]
    solver_params = config["solver_params"]

    scale = model_params.get("upsampling_scale", 2)
    if not isinstance(scale, int) or scale < 1:
        raise ConfigurationError(f"upsampling_scale must be an integer >= 1, got {scale}.")
    kernel_size = model_params.get("blur_kernel_size", 1)
    if not isinstance(kernel_size, int) or kernel_size < 1 or kernel_size % 2 == 0:
        raise ConfigurationError(f"blur_kernel_size must be an odd integer >= 1, got {kernel_size}.")
    for key in ("blur_sigma", "noise_sigma"):
        if model_params.get(key, 0.0) < 0:
            raise ConfigurationError(f"{key} must be non-negative, got {model_params[key]}.")

    if solver_params.get("regularization_parameter", 0.0) < 0:
        raise ConfigurationError(
            f"regularization_parameter must be non-negative, got {solver_params['regularization_parameter']}.")
    for key in ("irls_iterations", "solver_iterations"):
        if solver_params.get(key, 1) < 1:
            raise ConfigurationError(f"{key} must be >= 1, got {solver_params[key]}.")
    initial_estimate = solver_params.get("initial_estimate", "shift_add")
    if initial_estimate not in INITIAL_ESTIMATES:
        raise ConfigurationError(
            f"Unknown initial_estimate '{initial_estimate}'. Available: {list(INITIAL_ESTIMATES)}")


def build_image_model(image_model_params: Dict[str, Any],
                      motion_shift_sequence: MotionShiftSequence,
                      include_noise: bool = False,
                      noise_seed: Optional[int] = None) -> ImageModel:
    """
    motion -> blur -> downsampling (-> noise). Noise is only added when simulating
    LR frames; the reconstruction model is the noise-free linear part.
    """
    image_model = ImageModel()
    image_model.add_degradation_operator(MotionModule(motion_shift_sequence))

    kernel_size = image_model_params.get("blur_kernel_size", 1)
    blur_sigma = image_model_params.get("blur_sigma", 0.0)
    if kernel_size > 1 and blur_sigma > 0:
        image_model.add_degradation_operator(BlurModule(kernel_size, blur_sigma))

    image_model.add_degradation_operator(DownsamplingModule(image_model_params.get("upsampling_scale", 2)))

    noise_sigma = image_model_params.get("noise_sigma", 0.0)
    if include_noise and noise_sigma > 0:
        image_model.add_degradation_operator(AdditiveNoiseModule(noise_sigma, seed=noise_seed))
    return image_model


def default_motion_shift_sequence(upsampling_scale: int) -> MotionShiftSequence:
    """One frame per sub-pixel offset of the LR grid: scale * scale shifts."""
    return MotionShiftSequence([
        MotionShift(-dx, -dy) for dy in range(upsampling_scale) for dx in range(upsampling_scale)
    ])


def simulate_low_res_frames(hr_image: ImageData,
                            motion_shift_sequence: MotionShiftSequence,
                            image_model: ImageModel) -> List[ImageData]:
    return [image_model.apply_to_image(hr_image, index) for index in range(len(motion_shift_sequence))]


def run_reconstruction(low_res_images: List[ImageData],
                       motion_shift_sequence: MotionShiftSequence,
                       config: Dict[str, Any],
                       verbose: bool = True) -> Tuple[ImageData, ImageData]:
    """
    Builds the initial estimate and runs the MAP-IRLS solver on the LR frames.

    Returns:
        (initial_estimate, reconstruction), both on the HR grid.
    """
    model_params = config["image_model_params"]
    solver_params = config["solver_params"]
    scale = model_params.get("upsampling_scale", 2)

    if len(motion_shift_sequence) != len(low_res_images):
        raise ConfigurationError(
            f"The number of motion shifts ({len(motion_shift_sequence)}) must match "
            f"the number of frames ({len(low_res_images)}).")

    initial_estimate_type = solver_params.get("initial_estimate", "shift_add")
    if initial_estimate_type == "shift_add":
        initial_estimate = shift_add_fusion(low_res_images, motion_shift_sequence, scale)
    else:
        rows, cols = low_res_images[0].image_shape
        initial_estimate = low_res_images[0].resize((rows * scale, cols * scale), interpolation=cv2.INTER_CUBIC)
    if verbose:
        print(f"Initial estimate ({initial_estimate_type}): {initial_estimate.image_shape}, "
              f"{initial_estimate.num_channels} channel(s)")

    solver = MapSolver(
        build_image_model(model_params, motion_shift_sequence, include_noise=False),
        low_res_images,
        regularizer_type=solver_params.get("regularizer", "tv"),
        regularization_parameter=solver_params.get("regularization_parameter", 0.01),
        irls_iterations=solver_params.get("irls_iterations", 10),
        solver_iterations=solver_params.get("solver_iterations", 50),
        use_numerical_differentiation=solver_params.get("numerical_differentiation", False),
        convergence_tolerance=solver_params.get("convergence_tolerance", 1e-5),
        verbose=verbose,
    )
    return initial_estimate, solver.solve(initial_estimate)


def _resolve(path_str: Optional[str]) -> Optional[Path]:
    if not path_str:
        return None
    path = Path(path_str)
    return path if path.is_absolute() else project_root / path


def main(cfg_path_str: str = "configs/map_irls_config.json", verbose: bool = True):
    config = utils.load_json(_resolve(cfg_path_str))
    validate_config(config)

    data_folders = config["data_folders"]
    model_params = config["image_model_params"]
    scale = model_params.get("upsampling_scale", 2)
    grayscale = config.get("grayscale", False)

    input_image_dir = _resolve(data_folders.get("input_image_dir"))
    motion_path = _resolve(data_folders.get("input_motion_sequence"))
    ground_truth_path = _resolve(data_folders.get("ground_truth_image"))
    results_dir = _resolve(data_folders.get("results")) or project_root / "results"

    ground_truth = None
    if ground_truth_path is not None:
        ground_truth = utils.crop_to_multiple(utils.load_image(ground_truth_path, grayscale), scale)

    if motion_path is not None:
        motion_shift_sequence = MotionShiftSequence.load_from_file(motion_path)
    else:
        motion_shift_sequence = default_motion_shift_sequence(scale)

    if input_image_dir is not None:
        low_res_images = utils.load_frames_from_directory(input_image_dir, grayscale)
    elif ground_truth is not None:
        print(f"\n--- Simulating {len(motion_shift_sequence)} LR frames from {ground_truth_path} ---")
        simulation_model = build_image_model(
            model_params, motion_shift_sequence, include_noise=True, noise_seed=config.get("seed"))
        low_res_images = simulate_low_res_frames(ground_truth, motion_shift_sequence, simulation_model)
    else:
        raise ConfigurationError("Either 'input_image_dir' or 'ground_truth_image' must be set.")

    if len(low_res_images) != len(motion_shift_sequence):
        raise ConfigurationError(
            f"Found {len(low_res_images)} frames but {len(motion_shift_sequence)} motion shifts.")

    print(f"\n--- Starting MAP-IRLS reconstruction: {len(low_res_images)} frames, scale {scale} ---")
    initial_estimate, reconstruction = run_reconstruction(low_res_images, motion_shift_sequence, config, verbose)

    hr_shape = reconstruction.image_shape
    utils.save_image(low_res_images[0].to_uint8(), results_dir / "low_res_frame_0.png", resize_size=hr_shape)
    utils.save_image(initial_estimate.to_uint8(), results_dir / "initial_estimate.png")
    utils.save_image(reconstruction.to_uint8(), results_dir / "reconstruction.png")

    summary = {
        "num_frames": len(low_res_images),
        "upsampling_scale": scale,
        "hr_shape": list(hr_shape),
        "image_model_params": model_params,
        "solver_params": config["solver_params"],
    }
    if ground_truth is not None:
        gt_array = ground_truth.to_array()
        summary["psnr_initial_estimate"] = psnr_api(np.clip(initial_estimate.to_array(), 0, 1), gt_array)
        summary["psnr_reconstruction"] = psnr_api(np.clip(reconstruction.to_array(), 0, 1), gt_array)
        print(f"PSNR initial estimate: {summary['psnr_initial_estimate']:.3f} dB, "
              f"reconstruction: {summary['psnr_reconstruction']:.3f} dB")

    utils.save_json(summary, results_dir / "summary.json")
    print(f"\nResults saved to: {results_dir}")
    return reconstruction


if __name__ == "__main__":
    main()
