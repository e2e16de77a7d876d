"""Unit tests for the pipeline_map_super_resolution module and the I/O helpers."""

import json
import sys
from pathlib import Path

import numpy as np
import pytest
from PIL import Image

# Add project root to path
project_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(project_root))


def _config(**solver_overrides):
    solver_params = {
        "regularization_parameter": 0.01,
        "irls_iterations": 2,
        "solver_iterations": 30,
        "numerical_differentiation": False,
        "initial_estimate": "shift_add",
        "convergence_tolerance": 1e-5,
    }
    solver_params.update(solver_overrides)
    return {
        "data_folders": {"results": "results"},
        "image_model_params": {
            "upsampling_scale": 2,
            "blur_kernel_size": 3,
            "blur_sigma": 1.0,
            "noise_sigma": 0.0,
        },
        "solver_params": solver_params,
    }


class TestValidateConfig:
    """Tests for validate_config."""

    def test_valid_config_passes(self):
        from superres.pipelines.pipeline_map_super_resolution import validate_config

        validate_config(_config())

    @pytest.mark.parametrize("section", ["data_folders", "image_model_params", "solver_params"])
    def test_missing_section_raises(self, section):
        from superres.apis.errors import ConfigurationError
        from superres.pipelines.pipeline_map_super_resolution import validate_config

        config = _config()
        del config[section]
        with pytest.raises(ConfigurationError):
            validate_config(config)

    @pytest.mark.parametrize("key, value", [
        ("upsampling_scale", 0),
        ("upsampling_scale", 1.5),
        ("blur_kernel_size", 4),
        ("blur_sigma", -1.0),
        ("noise_sigma", -0.1),
    ])
    def test_invalid_model_params_raise(self, key, value):
        from superres.apis.errors import ConfigurationError
        from superres.pipelines.pipeline_map_super_resolution import validate_config

        config = _config()
        config["image_model_params"][key] = value
        with pytest.raises(ConfigurationError):
            validate_config(config)

    @pytest.mark.parametrize("overrides", [
        {"regularization_parameter": -0.5},
        {"irls_iterations": 0},
        {"initial_estimate": "nearest"},
    ])
    def test_invalid_solver_params_raise(self, overrides):
        from superres.apis.errors import ConfigurationError
        from superres.pipelines.pipeline_map_super_resolution import validate_config

        with pytest.raises(ConfigurationError):
            validate_config(_config(**overrides))


class TestBuildImageModel:
    """Tests for build_image_model and the default motion sequence."""

    def test_operator_chain(self):
        from superres.pipelines.pipeline_map_super_resolution import (
            build_image_model, default_motion_shift_sequence)

        params = {"upsampling_scale": 2, "blur_kernel_size": 3, "blur_sigma": 1.0, "noise_sigma": 0.05}
        motion_shift_sequence = default_motion_shift_sequence(2)

        assert len(build_image_model(params, motion_shift_sequence)) == 3
        assert len(build_image_model(params, motion_shift_sequence, include_noise=True)) == 4
        params["blur_kernel_size"] = 1
        assert len(build_image_model(params, motion_shift_sequence)) == 2

    def test_default_motion_covers_every_subpixel_offset(self):
        from superres.pipelines.pipeline_map_super_resolution import default_motion_shift_sequence

        motion_shift_sequence = default_motion_shift_sequence(3)

        assert len(motion_shift_sequence) == 9
        assert {(s.dx, s.dy) for s in motion_shift_sequence} == \
            {(-dx, -dy) for dx in range(3) for dy in range(3)}


class TestRunReconstruction:
    """End-to-end reconstruction on a small simulated problem."""

    @pytest.mark.parametrize("initial_estimate", ["shift_add", "bicubic"])
    def test_reconstruction_shapes(self, initial_estimate):
        from superres.apis.image_model_utils.image_data import ImageData
        from superres.pipelines.pipeline_map_super_resolution import (
            build_image_model, default_motion_shift_sequence, run_reconstruction, simulate_low_res_frames)

        config = _config(initial_estimate=initial_estimate)
        hr_image = ImageData(np.random.default_rng(0).random((8, 10)))
        motion_shift_sequence = default_motion_shift_sequence(2)
        low_res_images = simulate_low_res_frames(
            hr_image, motion_shift_sequence, build_image_model(config["image_model_params"], motion_shift_sequence))

        assert len(low_res_images) == 4
        assert low_res_images[0].image_shape == (4, 5)

        initial, reconstruction = run_reconstruction(low_res_images, motion_shift_sequence, config, verbose=False)

        assert initial.image_shape == (8, 10)
        assert reconstruction.image_shape == (8, 10)
        assert np.all(np.isfinite(reconstruction.to_array()))

    def test_frame_motion_mismatch_raises(self):
        from superres.apis.errors import ConfigurationError
        from superres.apis.image_model_utils.image_data import ImageData
        from superres.pipelines.pipeline_map_super_resolution import (
            default_motion_shift_sequence, run_reconstruction)

        with pytest.raises(ConfigurationError):
            run_reconstruction([ImageData(np.zeros((4, 4)))], default_motion_shift_sequence(2), _config(),
                               verbose=False)


class TestMain:
    """Tests for the main entry point with a temporary config."""

    def test_simulated_run_writes_results(self, tmp_path):
        from superres.pipelines.pipeline_map_super_resolution import main

        ground_truth = (np.random.default_rng(1).random((9, 12)) * 255).astype(np.uint8)
        Image.fromarray(ground_truth).save(tmp_path / "gt.png")

        config = _config()
        config["grayscale"] = True
        config["seed"] = 0
        config["data_folders"] = {
            "ground_truth_image": str(tmp_path / "gt.png"),
            "results": str(tmp_path / "results"),
        }
        cfg_path = tmp_path / "config.json"
        cfg_path.write_text(json.dumps(config))

        reconstruction = main(str(cfg_path), verbose=False)

        # the 9-row ground truth is cropped to a multiple of the scale
        assert reconstruction.image_shape == (8, 12)
        for name in ("reconstruction.png", "initial_estimate.png", "low_res_frame_0.png", "summary.json"):
            assert (tmp_path / "results" / name).exists()
        summary = json.loads((tmp_path / "results" / "summary.json").read_text())
        assert summary["num_frames"] == 4
        assert np.isfinite(summary["psnr_reconstruction"])

    @pytest.mark.parametrize("results", ["", None])
    def test_empty_results_folder_falls_back_to_default(self, tmp_path, monkeypatch, results):
        from superres.pipelines import pipeline_map_super_resolution

        monkeypatch.setattr(pipeline_map_super_resolution, "project_root", tmp_path)
        ground_truth = (np.random.default_rng(2).random((8, 8)) * 255).astype(np.uint8)
        Image.fromarray(ground_truth).save(tmp_path / "gt.png")

        config = _config()
        config["grayscale"] = True
        config["seed"] = 0
        config["data_folders"] = {"ground_truth_image": "gt.png", "results": results}
        cfg_path = tmp_path / "config.json"
        cfg_path.write_text(json.dumps(config))

        pipeline_map_super_resolution.main(str(cfg_path), verbose=False)

        assert (tmp_path / "results" / "reconstruction.png").exists()
        assert (tmp_path / "results" / "summary.json").exists()


class TestMotionShiftSequence:
    """Tests for MotionShiftSequence file I/O and lookup."""

    def test_load_from_file(self, tmp_path):
        from superres.apis.image_model_utils.motion_shift import MotionShift, MotionShiftSequence

        motion_path = tmp_path / "motion.txt"
        motion_path.write_text("# dx dy\n0 0\n\n1 -2\n-3 4\n")

        motion_shift_sequence = MotionShiftSequence.load_from_file(motion_path)

        assert list(motion_shift_sequence) == [MotionShift(0, 0), MotionShift(1, -2), MotionShift(-3, 4)]

    def test_save_and_reload(self, tmp_path):
        from superres.apis.image_model_utils.motion_shift import MotionShift, MotionShiftSequence

        motion_shift_sequence = MotionShiftSequence([MotionShift(2, 1), MotionShift(0, -1)])
        motion_shift_sequence.save_to_file(tmp_path / "motion.txt")

        assert list(MotionShiftSequence.load_from_file(tmp_path / "motion.txt")) == list(motion_shift_sequence)

    @pytest.mark.parametrize("content", ["1\n", "1 2 3\n", "a b\n", "1.5 2\n"])
    def test_malformed_line_raises(self, tmp_path, content):
        from superres.apis.errors import ConfigurationError
        from superres.apis.image_model_utils.motion_shift import MotionShiftSequence

        motion_path = tmp_path / "motion.txt"
        motion_path.write_text(content)
        with pytest.raises(ConfigurationError):
            MotionShiftSequence.load_from_file(motion_path)

    def test_index_bounds(self):
        from superres.apis.image_model_utils.motion_shift import MotionShift, MotionShiftSequence

        motion_shift_sequence = MotionShiftSequence([MotionShift(1, 1)])
        assert motion_shift_sequence[0] == MotionShift(1, 1)
        with pytest.raises(IndexError):
            motion_shift_sequence[1]
        with pytest.raises(IndexError):
            motion_shift_sequence[-1]


class TestUtils:
    """Tests for the utils I/O helpers."""

    def test_load_frames_in_alphabetical_order(self, tmp_path):
        from superres import utils

        for name, value in [("frame_b.png", 200), ("frame_a.png", 100)]:
            Image.fromarray(np.full((3, 4), value, dtype=np.uint8)).save(tmp_path / name)

        frames = utils.load_frames_from_directory(tmp_path, grayscale=True)

        assert len(frames) == 2
        assert frames[0].image_shape == (3, 4)
        np.testing.assert_allclose(frames[0].get_channel_image(0), 100 / 255.0)
        np.testing.assert_allclose(frames[1].get_channel_image(0), 200 / 255.0)

    def test_missing_directory_raises(self, tmp_path):
        from superres import utils

        with pytest.raises(FileNotFoundError):
            utils.load_frames_from_directory(tmp_path / "missing")
        with pytest.raises(FileNotFoundError):
            utils.load_frames_from_directory(tmp_path)

    def test_save_image_validates_dtype(self, tmp_path):
        from superres import utils

        with pytest.raises(ValueError):
            utils.save_image(np.zeros((2, 2)), tmp_path / "img.png")
        with pytest.raises(TypeError):
            utils.save_image([[0, 1]], tmp_path / "img.png")

    def test_save_image_round_trip(self, tmp_path):
        from superres import utils

        image = np.random.default_rng(2).integers(0, 256, (5, 6, 3), dtype=np.uint8)
        utils.save_image(image, tmp_path / "out" / "img.png")

        with Image.open(tmp_path / "out" / "img.png") as img:
            np.testing.assert_array_equal(np.array(img.convert("RGB")), image)

    def test_json_round_trip(self, tmp_path):
        from superres import utils

        data = {"psnr": 31.5, "shape": [8, 12]}
        utils.save_json(data, tmp_path / "data.json")

        assert utils.load_json(tmp_path / "data.json") == data
