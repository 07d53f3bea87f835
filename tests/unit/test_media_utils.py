"""
Unit tests for media_utils module.

Tests ffprobe parsing and the fallback order of the frame count and
bitrate probes with subprocess calls mocked out.
"""

import subprocess
import unittest
from pathlib import Path
from unittest.mock import patch

from scene_transcode.core.modules.analysis import media_utils
from scene_transcode.core.modules.analysis.media_utils import (
    get_audio_details, get_bitrate_kbps, get_duration_sec, get_fps, get_frame_count, get_video_details,
    probe_media
)

RUN_COMMAND = 'scene_transcode.core.modules.analysis.media_utils.run_command'


def completed(stdout="", stderr="", returncode=0):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


class TestBasicProbes(unittest.TestCase):
    """Test single-value ffprobe queries."""

    def setUp(self):
        self.file = Path("/videos/movie.mkv")

    @patch(RUN_COMMAND)
    def test_duration(self, mock_run):
        """Test duration is read from the container."""
        mock_run.return_value = completed("1234.567\n")
        self.assertAlmostEqual(get_duration_sec(self.file), 1234.567)
        cmd = mock_run.call_args[0][0]
        self.assertIn("format=duration", cmd)
        self.assertNotIn("-select_streams", cmd)

    @patch(RUN_COMMAND)
    def test_duration_unknown(self, mock_run):
        """Test N/A and failures both read as zero."""
        mock_run.return_value = completed("N/A\n")
        self.assertEqual(get_duration_sec(self.file), 0.0)
        mock_run.return_value = completed("", returncode=1)
        self.assertEqual(get_duration_sec(self.file), 0.0)

    @patch(RUN_COMMAND)
    def test_fps_fraction(self, mock_run):
        """Test rational frame rates are divided out."""
        mock_run.return_value = completed("24000/1001\n")
        self.assertAlmostEqual(get_fps(self.file), 23.976, places=3)

    @patch(RUN_COMMAND)
    def test_fps_zero_denominator(self, mock_run):
        """Test a 0/0 rate reads as unknown."""
        mock_run.return_value = completed("0/0\n")
        self.assertEqual(get_fps(self.file), 0.0)

    @patch(RUN_COMMAND)
    def test_bitrate_from_stream(self, mock_run):
        """Test stream bitrate is converted to kbps."""
        mock_run.return_value = completed("4500123\n")
        self.assertEqual(get_bitrate_kbps(self.file), 4500)
        self.assertEqual(mock_run.call_count, 1)

    @patch(RUN_COMMAND)
    def test_bitrate_falls_back_to_container(self, mock_run):
        """Test the format bitrate is used when the stream has none."""
        mock_run.side_effect = [completed("N/A\n"), completed("8000000\n")]
        self.assertEqual(get_bitrate_kbps(self.file), 8000)
        self.assertIn("format=bit_rate", mock_run.call_args[0][0])


class TestFrameCount(unittest.TestCase):
    """Test the frame count fallback ladder."""

    def setUp(self):
        self.file = Path("/videos/movie.mkv")

    @patch(RUN_COMMAND)
    def test_language_tag_first(self, mock_run):
        """Test the mkvmerge statistics tag short-circuits the ladder."""
        mock_run.return_value = completed("34512\n")
        self.assertEqual(get_frame_count(self.file), 34512)
        self.assertEqual(mock_run.call_count, 1)
        self.assertIn("stream_tags=NUMBER_OF_FRAMES-eng", mock_run.call_args[0][0])

    @patch(RUN_COMMAND)
    def test_plain_tag_second(self, mock_run):
        """Test the untagged statistics value is tried next."""
        mock_run.side_effect = [completed(""), completed("1200\n")]
        self.assertEqual(get_frame_count(self.file), 1200)

    @patch(RUN_COMMAND)
    def test_copy_count_third(self, mock_run):
        """Test the last frame= counter of a stream copy is used."""
        copy_output = "frame=  100 fps=0.0 q=-1.0 size=N/A\rframe=  250 fps=0.0 q=-1.0 Lsize=N/A\n"
        mock_run.side_effect = [completed(""), completed(""), completed(stderr=copy_output)]
        self.assertEqual(get_frame_count(self.file), 250)
        self.assertIn("copy", mock_run.call_args[0][0])

    @patch(RUN_COMMAND)
    def test_full_decode_last(self, mock_run):
        """Test -count_frames is the final fallback."""
        mock_run.side_effect = [completed(""), completed(""), completed(stderr=""), completed("999\n")]
        with patch('builtins.print'):
            self.assertEqual(get_frame_count(self.file), 999)
        self.assertIn("-count_frames", mock_run.call_args[0][0])

    @patch(RUN_COMMAND)
    def test_nothing_works(self, mock_run):
        """Test zero is returned when every source fails."""
        mock_run.return_value = completed("", returncode=1)
        with patch('builtins.print'):
            self.assertEqual(get_frame_count(self.file), 0)


class TestProbeMedia(unittest.TestCase):
    """Test the combined probe."""

    def setUp(self):
        self.patches = {name: patch.object(media_utils, name) for name in (
            "get_duration_sec", "get_fps", "get_frame_count", "get_bitrate_kbps",
            "get_file_size", "get_audio_details", "get_video_details")}
        self.mocks = {name: p.start() for name, p in self.patches.items()}
        self.mocks["get_duration_sec"].return_value = 60.0
        self.mocks["get_frame_count"].return_value = 1440
        self.mocks["get_bitrate_kbps"].return_value = 5000
        self.mocks["get_file_size"].return_value = 1000
        self.mocks["get_audio_details"].return_value = []
        self.mocks["get_video_details"].return_value = []

    def tearDown(self):
        for p in self.patches.values():
            p.stop()

    def test_frame_count_skipped_when_fps_known(self):
        """Test the expensive frame count is not run when the frame rate is known."""
        self.mocks["get_fps"].return_value = 24.0
        info = probe_media(Path("a.mkv"))
        self.mocks["get_frame_count"].assert_not_called()
        self.assertEqual((info.fps, info.frame_count), (24.0, 0))

    def test_frame_count_used_when_fps_unknown(self):
        """Test the frame count is probed when the frame rate is missing."""
        self.mocks["get_fps"].return_value = 0.0
        info = probe_media(Path("a.mkv"))
        self.mocks["get_frame_count"].assert_called_once()
        self.assertEqual(info.frame_count, 1440)


class TestStreamDetails(unittest.TestCase):
    """Test audio and video stream listings."""

    @patch(RUN_COMMAND)
    def test_audio_streams(self, mock_run):
        """Test every audio stream is listed in order."""
        mock_run.return_value = completed("truehd,8,7.1\naac,2,stereo\nopus,1\n")
        streams = get_audio_details(Path("a.mkv"))
        self.assertEqual([(s.index, s.codec, s.channels, s.channel_layout) for s in streams],
                         [(0, "truehd", 8, "7.1"), (1, "aac", 2, "stereo"), (2, "opus", 1, "")])
        self.assertIn("stream=codec_name,channels,channel_layout", mock_run.call_args[0][0])

    @patch(RUN_COMMAND)
    def test_video_streams(self, mock_run):
        """Test dimensions are parsed and missing fields read as zero."""
        mock_run.return_value = completed("hevc,3840,2160\nmjpeg\n")
        streams = get_video_details(Path("a.mkv"))
        self.assertEqual((streams[0].width, streams[0].height), (3840, 2160))
        self.assertEqual((streams[1].codec, streams[1].width), ("mjpeg", 0))

    @patch(RUN_COMMAND)
    def test_probe_failure_gives_empty_list(self, mock_run):
        """Test a failing ffprobe yields no streams."""
        mock_run.return_value = completed("", returncode=1)
        self.assertEqual(get_audio_details(Path("a.mkv")), [])

    def test_file_size_of_missing_file(self):
        """Test a missing file has size zero."""
        self.assertEqual(media_utils.get_file_size(Path("/does/not/exist.mkv")), 0)


if __name__ == '__main__':
    unittest.main()
