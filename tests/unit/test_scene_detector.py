"""
Unit tests for scene_detector module.

Tests boundary merging, scene construction, the scene-to-frame map and
the segmenter's handling of ffmpeg output and failures.
"""

import unittest
from pathlib import Path
from unittest.mock import Mock, patch

from scene_transcode.core.modules.analysis.scene_detector import (
    Scene, SceneSegmenter, build_frame_map, build_scenes, measure_scene_size, merge_boundaries
)
from scene_transcode.core.modules.system.errors import ParseFailure, SpawnFailure
from scene_transcode.core.modules.system.process_runner import ProcessOutcome


def scripted_stream(lines, returncode=0):
    """Runner whose stream() replays ``lines`` through the callback."""
    runner = Mock()

    def stream(cmd, on_line):
        listening = True
        for line in lines:
            if listening and on_line(line):
                listening = False
        return ProcessOutcome(returncode=returncode, tail=list(lines[-3:]))

    runner.stream.side_effect = stream
    return runner


class TestMergeBoundaries(unittest.TestCase):
    """Test minimum-duration merging of detected scene changes."""

    def test_no_detections_gives_single_scene(self):
        self.assertEqual(merge_boundaries([], 2.0, 60.0), [0.0, 60.0])

    def test_close_boundaries_drop_the_later_one(self):
        boundaries = merge_boundaries([1.0, 5.0, 6.5, 9.0, 10.0], 2.0, 30.0)
        self.assertEqual(boundaries, [0.0, 5.0, 9.0, 30.0])

    def test_timestamps_at_or_past_duration_are_ignored(self):
        self.assertEqual(merge_boundaries([10.0, 30.0, 31.0], 2.0, 30.0), [0.0, 10.0, 30.0])

    def test_merge_invariant_holds_except_trailing_boundary(self):
        detections = [0.3, 0.9, 2.1, 2.2, 4.0, 4.05, 7.9, 8.0, 11.5, 19.2, 19.9]
        for min_duration in (0.5, 1.0, 2.0, 3.5):
            boundaries = merge_boundaries(detections, min_duration, 20.0)
            gaps = [b - a for a, b in zip(boundaries, boundaries[1:-1])]
            self.assertTrue(all(g >= min_duration for g in gaps), (min_duration, boundaries))
            self.assertEqual(boundaries, sorted(set(boundaries)))

    def test_short_trailing_scene_is_kept(self):
        boundaries = merge_boundaries([9.5], 2.0, 10.0)
        self.assertEqual(boundaries, [0.0, 9.5, 10.0])


class TestBuildScenes(unittest.TestCase):
    """Test scene partitioning and frame mapping."""

    def test_scenes_partition_duration(self):
        scenes = build_scenes([0.0, 4.0, 9.5, 12.0])
        self.assertEqual(scenes[0].start, 0.0)
        self.assertEqual(scenes[-1].end, 12.0)
        for current, following in zip(scenes, scenes[1:]):
            self.assertEqual(current.end, following.start)
        self.assertEqual([s.index for s in scenes], [0, 1, 2])
        self.assertTrue(all(s.end > s.start for s in scenes))

    def test_frame_map_cumulative(self):
        scenes = build_scenes([0.0, 2.0, 5.0])
        frame_map = build_frame_map(scenes, 24.0)
        self.assertEqual([(f.start_frame, f.end_frame, f.frames) for f in frame_map],
                         [(0, 48, 48), (48, 120, 72)])
        self.assertEqual([f.cumulative_frames for f in frame_map], [48, 120])

    def test_frame_map_rounds_fractional_rates(self):
        scenes = build_scenes([0.0, 1.0, 2.0])
        frame_map = build_frame_map(scenes, 23.976)
        self.assertEqual(frame_map[-1].cumulative_frames, 48)


class TestSceneSegmenter(unittest.TestCase):
    """Test the ffmpeg scene scan."""

    SCAN_OUTPUT = [
        "Input #0, matroska,webm, from 'movie.mkv':",
        "[Parsed_showinfo_1 @ 0x1] n:   0 pts:  100 pts_time:1.5 duration:1",
        "[Parsed_showinfo_1 @ 0x1] n:   1 pts:  400 pts_time:4.0 duration:1",
        "[Parsed_showinfo_1 @ 0x1] n:   2 pts:  450 pts_time:4.5 duration:1",
        "[out#0/null @ 0x2] video:0kB audio:0kB",
        "[Parsed_showinfo_1 @ 0x1] n:   3 pts:  900 pts_time:9.0 duration:1",
    ]

    def test_segment_merges_and_stops_at_summary(self):
        segmenter = SceneSegmenter(scripted_stream(self.SCAN_OUTPUT), 2.0, show_progress=False)
        scenes = segmenter.segment(Path("movie.mkv"), duration=12.0)
        self.assertEqual(scenes, [Scene(0, 0.0, 4.0), Scene(1, 4.0, 12.0)])

    def test_scan_command_uses_scene_filter(self):
        runner = scripted_stream([])
        SceneSegmenter(runner, 2.0, show_progress=False).detect_scene_changes(Path("a.mkv"), 10.0)
        cmd = runner.stream.call_args[0][0]
        self.assertIn("select='gt(scene,0.4)',showinfo", cmd)
        self.assertEqual(cmd[-3:], ["-f", "null", "-"])

    @patch('scene_transcode.core.modules.analysis.scene_detector.get_duration_sec', return_value=0.0)
    def test_unknown_duration_skips_file(self, mock_duration):
        runner = scripted_stream(self.SCAN_OUTPUT)
        with patch('builtins.print'):
            self.assertIsNone(SceneSegmenter(runner, 2.0, show_progress=False).segment(Path("x.mkv")))
        runner.stream.assert_not_called()

    def test_spawn_failure_propagates(self):
        runner = Mock()
        runner.stream.side_effect = SpawnFailure(["ffmpeg"], "not found")
        with patch('builtins.print'):
            with self.assertRaises(SpawnFailure):
                SceneSegmenter(runner, 2.0, show_progress=False).segment(Path("x.mkv"), duration=5.0)

    def test_failed_scan_raises_parse_failure(self):
        runner = scripted_stream(["x.mkv: Invalid data found when processing input"], returncode=1)
        with patch('builtins.print'):
            with self.assertRaises(ParseFailure):
                SceneSegmenter(runner, 2.0, show_progress=False).segment(Path("x.mkv"), duration=5.0)

    def test_min_scene_duration_must_be_positive(self):
        with self.assertRaises(ValueError):
            SceneSegmenter(Mock(), 0)


class TestMeasureSceneSize(unittest.TestCase):
    """Test the copy-only scene size probe."""

    def test_size_from_summary(self):
        runner = Mock()
        runner.run.return_value = ProcessOutcome(0, stderr="[out#0/null @ 0x1] video:470kB audio:0kB\n")
        size = measure_scene_size(runner, Path("a.mkv"), Scene(0, 0.0, 10.0))
        self.assertEqual(size, 470 * 1024)
        cmd = runner.run.call_args[0][0]
        self.assertIn("copy", cmd)
        self.assertEqual(cmd[cmd.index("-ss") + 1], "0.000")
        self.assertEqual(cmd[cmd.index("-to") + 1], "10.000")

    def test_bitrate_fallback(self):
        runner = Mock()
        runner.run.return_value = ProcessOutcome(0, stderr="nothing useful")
        self.assertEqual(measure_scene_size(runner, Path("a.mkv"), Scene(0, 0.0, 8.0), bitrate_kbps=1000),
                         1_000_000)

    def test_no_signal_returns_zero(self):
        runner = Mock()
        runner.run.return_value = ProcessOutcome(1, stderr="")
        with patch('builtins.print'):
            self.assertEqual(measure_scene_size(runner, Path("a.mkv"), Scene(3, 1.0, 2.0)), 0)


if __name__ == '__main__':
    unittest.main()
