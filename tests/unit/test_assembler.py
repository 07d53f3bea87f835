"""
Unit tests for assembler module.

Tests the coverage precondition, the ffmpeg step sequence and that state
is kept whenever a step fails.
"""

import shutil
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from scene_transcode.core.modules.processing.assembler import (
    CONCAT_LIST, MERGED_VIDEO, SIDE_CONTAINER, Assembler
)
from scene_transcode.core.modules.processing.scene_encoder import scene_artifact_name
from scene_transcode.core.modules.system.checkpoint_store import DONE_LOG, CheckpointStore
from scene_transcode.core.modules.system.errors import AssemblyFailure, AssemblyIncomplete
from scene_transcode.core.modules.system.process_runner import ProcessOutcome


class FakeFfmpeg:
    """Creates the last path of each command; fails the commands named in ``fail``."""

    def __init__(self, fail=(), no_side_streams=False):
        self.fail = set(fail)
        self.no_side_streams = no_side_streams
        self.commands = []

    def run(self, cmd, timeout=None):
        self.commands.append(list(cmd))
        output = Path(cmd[-1])
        if output.name == SIDE_CONTAINER and self.no_side_streams:
            return ProcessOutcome(1, stderr="Output file #0 does not contain any stream\n",
                                  tail=["Output file #0 does not contain any stream"])
        output.write_bytes(b"data")
        step = {SIDE_CONTAINER: "side", MERGED_VIDEO: "concat"}.get(output.name, "remux")
        if step in self.fail:
            return ProcessOutcome(1, stderr="error\n", tail=["error"])
        return ProcessOutcome(0)


class TestAssembler(unittest.TestCase):
    """Test final assembly of scene artifacts."""

    def setUp(self):
        self.temp_dir = Path(tempfile.mkdtemp())
        self.work_dir = self.temp_dir / "work"
        self.work_dir.mkdir()
        self.input_file = self.temp_dir / "movie.mkv"
        self.input_file.write_bytes(b"source")
        self.output_file = self.temp_dir / "out" / "movie.av1.mkv"
        self.checkpoint = CheckpointStore(self.work_dir).load()
        self.print_patch = patch('builtins.print')
        self.print_patch.start()

    def tearDown(self):
        self.print_patch.stop()
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def complete_scenes(self, indices):
        for i in indices:
            (self.work_dir / scene_artifact_name(i)).write_bytes(b"scene")
            self.checkpoint.record(i, 100, 50)

    def test_missing_scene_blocks_assembly(self):
        self.complete_scenes([0, 1, 3])
        runner = FakeFfmpeg()
        with self.assertRaises(AssemblyIncomplete) as ctx:
            Assembler(self.work_dir, self.checkpoint, runner).assemble(self.input_file, 4, self.output_file)

        self.assertEqual(ctx.exception.missing, [2])
        self.assertEqual(runner.commands, [])
        self.assertFalse(self.output_file.exists())
        self.assertEqual(self.checkpoint.completed_indices, frozenset({0, 1, 3}))
        self.assertTrue((self.work_dir / scene_artifact_name(3)).exists())

    def test_checkpointed_scene_without_artifact_is_missing(self):
        self.complete_scenes([0, 1])
        (self.work_dir / scene_artifact_name(1)).unlink()
        assembler = Assembler(self.work_dir, self.checkpoint, FakeFfmpeg())
        self.assertEqual(assembler.missing_scenes(2), [1])

    def test_successful_assembly_cleans_up(self):
        self.complete_scenes(range(3))
        runner = FakeFfmpeg()
        result = Assembler(self.work_dir, self.checkpoint, runner).assemble(self.input_file, 3, self.output_file)

        self.assertEqual(result, self.output_file)
        self.assertTrue(self.output_file.exists())
        self.assertEqual(len(runner.commands), 3)
        remux = runner.commands[-1]
        self.assertIn(str(self.work_dir / SIDE_CONTAINER), remux)
        self.assertEqual(remux[remux.index("-map") + 1], "0:v")
        self.assertEqual(sorted(p.name for p in self.work_dir.iterdir()), [])
        self.assertEqual(self.checkpoint.completed_indices, frozenset())

    def test_concat_list_in_index_order(self):
        self.complete_scenes(range(12))
        runner = FakeFfmpeg(fail={"remux"})
        with self.assertRaises(AssemblyFailure):
            Assembler(self.work_dir, self.checkpoint, runner).assemble(self.input_file, 12, self.output_file)

        entries = (self.work_dir / CONCAT_LIST).read_text().splitlines()
        self.assertEqual(len(entries), 12)
        self.assertTrue(entries[0].endswith("scene_000_encoded.mkv'"))
        self.assertTrue(entries[11].endswith("scene_011_encoded.mkv'"))

    def test_remux_failure_preserves_state(self):
        self.complete_scenes(range(2))
        runner = FakeFfmpeg(fail={"remux"})
        with self.assertRaises(AssemblyFailure) as ctx:
            Assembler(self.work_dir, self.checkpoint, runner).assemble(self.input_file, 2, self.output_file)

        self.assertEqual(ctx.exception.step, "remux")
        self.assertFalse(self.output_file.exists())
        self.assertTrue((self.work_dir / scene_artifact_name(0)).exists())
        self.assertTrue((self.work_dir / DONE_LOG).exists())
        self.assertEqual(CheckpointStore(self.work_dir).load().completed_indices, frozenset({0, 1}))

    def test_concat_failure_preserves_state(self):
        self.complete_scenes(range(2))
        runner = FakeFfmpeg(fail={"concat"})
        with self.assertRaises(AssemblyFailure):
            Assembler(self.work_dir, self.checkpoint, runner).assemble(self.input_file, 2, self.output_file)
        self.assertEqual(len(runner.commands), 2)
        self.assertEqual(self.checkpoint.completed_indices, frozenset({0, 1}))

    def test_video_only_source(self):
        self.complete_scenes(range(1))
        runner = FakeFfmpeg(no_side_streams=True)
        Assembler(self.work_dir, self.checkpoint, runner).assemble(self.input_file, 1, self.output_file)

        remux = runner.commands[-1]
        self.assertEqual(remux.count("-i"), 1)
        self.assertNotIn("-map", remux)

    def test_existing_side_container_reused(self):
        self.complete_scenes(range(1))
        (self.work_dir / SIDE_CONTAINER).write_bytes(b"audio")
        runner = FakeFfmpeg()
        Assembler(self.work_dir, self.checkpoint, runner).assemble(self.input_file, 1, self.output_file)
        self.assertEqual(len(runner.commands), 2)

    def test_side_extraction_failure(self):
        runner = FakeFfmpeg(fail={"side"})
        with self.assertRaises(AssemblyFailure):
            Assembler(self.work_dir, self.checkpoint, runner).extract_side_container(self.input_file)


if __name__ == '__main__':
    unittest.main()
