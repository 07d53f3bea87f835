"""
Supervised execution of external tools (ffmpeg, ffprobe, ab-av1).

Three shapes of invocation are needed by the pipeline:
- run: wait for completion and capture both streams
- stream: feed stderr line by line to a callback while the tool runs
- pipe: connect a producer's stdout to a consumer's stdin (encode into measure)

All spawn errors are surfaced as SpawnFailure. Exit statuses are returned,
never raised, so callers decide what a non-zero status means for them.
"""

import shlex
import subprocess
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

from ....utils.logging import get_logger
from .errors import SpawnFailure
from .system_utils import run_command

logger = get_logger("process_runner")

# Number of trailing stderr lines kept for diagnostics
TAIL_LINES = 20

LineHandler = Callable[[str], Optional[bool]]


@dataclass
class ProcessOutcome:
    """Exit status and captured output of one external tool run."""
    returncode: int
    stdout: str = ""
    stderr: str = ""
    tail: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class ProcessRunner:
    """Thin supervisory wrapper around subprocess for line-oriented tools."""

    def run(self, cmd: Sequence[str], timeout: Optional[int] = None) -> ProcessOutcome:
        """Run to completion, capturing stdout and stderr as text."""
        result = run_command(list(cmd), timeout=timeout)
        stderr = result.stderr or ""
        return ProcessOutcome(
            returncode=result.returncode,
            stdout=result.stdout or "",
            stderr=stderr,
            tail=stderr.splitlines()[-TAIL_LINES:],
        )

    def stream(self, cmd: Sequence[str], on_line: LineHandler) -> ProcessOutcome:
        """
        Run a tool and hand every stderr line to ``on_line`` as it arrives.

        When ``on_line`` returns True the handler is not called again, but
        stderr keeps being drained so the tool never blocks on a full pipe.
        """
        proc = self._spawn(cmd, stdout=subprocess.DEVNULL, stderr=subprocess.PIPE)
        tail: deque = deque(maxlen=TAIL_LINES)
        listening = True
        try:
            assert proc.stderr is not None
            for raw in proc.stderr:
                line = raw.rstrip("\r\n")
                tail.append(line)
                if listening and on_line(line):
                    listening = False
            returncode = proc.wait()
        except BaseException:
            proc.kill()
            proc.wait()
            raise
        return ProcessOutcome(returncode=returncode, tail=list(tail))

    def pipe(self, producer_cmd: Sequence[str], consumer_cmd: Sequence[str]) -> tuple[int, ProcessOutcome]:
        """
        Stream ``producer_cmd`` stdout into ``consumer_cmd`` stdin.

        Returns the producer exit status and the consumer outcome (with its
        stderr captured, which is where ffmpeg filters report results).
        """
        producer = self._spawn(producer_cmd, stdout=subprocess.PIPE, stderr=subprocess.DEVNULL, text=False)
        try:
            consumer = self._spawn(consumer_cmd, stdin=producer.stdout,
                                   stdout=subprocess.DEVNULL, stderr=subprocess.PIPE)
        except SpawnFailure:
            producer.kill()
            producer.wait()
            raise
        # The consumer now owns the read end; closing ours lets the producer see SIGPIPE.
        if producer.stdout is not None:
            producer.stdout.close()
        try:
            _, stderr = consumer.communicate()
            producer_rc = producer.wait()
        except BaseException:
            consumer.kill()
            producer.kill()
            consumer.wait()
            producer.wait()
            raise
        stderr = stderr or ""
        return producer_rc, ProcessOutcome(
            returncode=consumer.returncode,
            stderr=stderr,
            tail=stderr.splitlines()[-TAIL_LINES:],
        )

    def _spawn(self, cmd: Sequence[str], text: bool = True, **kwargs) -> subprocess.Popen:
        cmd = list(cmd)
        logger.cmd(" ".join(shlex.quote(c) for c in cmd))
        try:
            if text:
                return subprocess.Popen(cmd, text=True, errors="replace", **kwargs)
            return subprocess.Popen(cmd, **kwargs)
        except OSError as e:
            raise SpawnFailure(cmd, str(e)) from e
