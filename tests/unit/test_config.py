"""
Unit tests for configuration loading and settings validation.
"""

import os
import shutil
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from scene_transcode.config import TranscodeSettings, get_config, load_env_file

CPU_COUNT = 'scene_transcode.config.available_concurrency'


class TestEnvConfig(unittest.TestCase):
    """Test .env loading."""

    def setUp(self):
        self.temp_dir = Path(tempfile.mkdtemp())
        self.env_file = self.temp_dir / ".env"

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_load_env_file(self):
        """Test comments and blank lines are skipped."""
        self.env_file.write_text("# comment\n\nvmaf_target = 95\nencoder=libsvtav1\nbroken line\n")
        self.assertEqual(load_env_file(self.env_file), {"vmaf_target": "95", "encoder": "libsvtav1"})

    def test_get_config_prefers_env_file(self):
        """Test .env values override the defaults."""
        self.env_file.write_text("vmaf_target=93\nscene_split_min=1.5\ndebug=yes\n")
        config = get_config(self.env_file)
        self.assertEqual(config["vmaf_target"], 93)
        self.assertEqual(config["scene_split_min"], 1.5)
        self.assertTrue(config["debug"])

    @patch.dict(os.environ, {"VMAF_THREADS": "6"})
    def test_get_config_environment(self):
        """Test process environment is used when .env is silent."""
        config = get_config(self.temp_dir / "missing.env")
        self.assertEqual(config["vmaf_threads"], 6)
        self.assertEqual(config["encoder"], os.environ.get("ENCODER", "libx265"))


@patch(CPU_COUNT, return_value=8)
class TestTranscodeSettings(unittest.TestCase):
    """Test settings validation and output naming."""

    def test_defaults_valid(self, mock_cpus):
        """Test the defaults pass validation."""
        self.assertIsInstance(TranscodeSettings().validate(), TranscodeSettings)

    def test_invalid_values(self, mock_cpus):
        """Test each out-of-range setting is rejected."""
        invalid = [
            {"mode": "fast"},
            {"vmaf_target": 0},
            {"vmaf_target": 101},
            {"vmaf_target": 95.5},
            {"encoder": "libx264"},
            {"vmaf_pool": "median"},
            {"vmaf_threads": 0},
            {"vmaf_threads": 9},
            {"workers": 16},
            {"vmaf_subsample": 0},
            {"scene_split_min": 0},
            {"scene_split_min": -1.0},
            {"max_attempts": 0},
        ]
        for overrides in invalid:
            with self.subTest(**overrides):
                with self.assertRaises(ValueError):
                    TranscodeSettings(**overrides).validate()

    def test_workers_default_to_threads(self, mock_cpus):
        """Test the worker count follows vmaf threads unless set."""
        self.assertEqual(TranscodeSettings(vmaf_threads=4).effective_workers, 4)
        self.assertEqual(TranscodeSettings(vmaf_threads=4, workers=2).effective_workers, 2)

    def test_output_path(self, mock_cpus):
        """Test the output name carries encoder and quality settings."""
        settings = TranscodeSettings(encoder="libsvtav1", vmaf_target=95, vmaf_pool="harmonic_mean",
                                     vmaf_subsample=5)
        self.assertEqual(settings.output_path(Path("/media/show/ep1.mkv")),
                         Path("/media/show/ep1.libsvtav1.vmaf95.harmonic_mean.subsample5.mkv"))
        settings.output_folder = Path("/out")
        self.assertEqual(settings.output_path(Path("/media/ep1.mp4")).parent, Path("/out"))


if __name__ == '__main__':
    unittest.main()
