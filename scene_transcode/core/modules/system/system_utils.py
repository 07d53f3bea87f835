"""
System utilities for scene_transcode.

This module provides system-level utilities including:
- Subprocess execution with consistent error handling
- CPU concurrency detection and monitoring
- File removal with cleanup logging
- Human-readable sizes
"""

import shlex
import subprocess
import threading
from pathlib import Path
from typing import Iterable, Optional

import psutil

from ....utils.logging import get_logger
from .errors import SpawnFailure

logger = get_logger("system_utils")


def format_size(bytes_size: int) -> str:
    """Convert bytes to human readable format:
    - Bytes: integer no decimal ("500 B", "0 B")
    - >= KB: two decimals ("1.50 KB", "2.00 MB")
    """
    negative = bytes_size < 0
    size = float(abs(bytes_size))
    units = ['B', 'KB', 'MB', 'GB', 'TB', 'PB']
    unit_index = 0
    while unit_index < len(units) - 1 and size >= 1024.0:
        size /= 1024.0
        unit_index += 1
    unit = units[unit_index]
    if unit == 'B':
        formatted = f"{int(size)} {unit}"
    else:
        formatted = f"{size:.2f} {unit}"
    return f"-{formatted}" if negative else formatted


def run_command(cmd: list[str], timeout: Optional[int] = 30, capture_output: bool = True,
                text: bool = True, check: bool = False) -> subprocess.CompletedProcess:
    """
    Standardized subprocess command runner with consistent error handling.

    Args:
        cmd: Command as list of strings
        timeout: Timeout in seconds (default: 30, None waits forever)
        capture_output: Whether to capture stdout/stderr (default: True)
        text: Whether to use text mode (default: True)
        check: Whether to raise exception on non-zero exit (default: False)

    Returns:
        CompletedProcess object

    Raises:
        SpawnFailure: the executable is missing or cannot be started
    """
    logger.cmd(" ".join(shlex.quote(c) for c in cmd))
    try:
        return subprocess.run(
            cmd,
            capture_output=capture_output,
            text=text,
            errors="replace" if text else None,
            timeout=timeout,
            check=check
        )
    except subprocess.TimeoutExpired:
        logger.error(f"Command timed out after {timeout}s: {' '.join(cmd[:3])}...")
        raise
    except OSError as e:
        raise SpawnFailure(cmd, str(e)) from e


def available_concurrency() -> int:
    """Number of logical CPUs available to analysis threads."""
    return psutil.cpu_count(logical=True) or 1


def remove_files(paths: Iterable[Path]) -> int:
    """Delete files that exist, returning how many were removed."""
    removed = 0
    for path in paths:
        path = Path(path)
        if path.exists():
            path.unlink()
            removed += 1
            logger.debug(f"removed {path}")
    return removed


def start_cpu_monitor(interval: float = 5.0) -> tuple[threading.Thread, threading.Event]:
    """Start CPU monitoring in background. Returns (thread, stop_event)"""
    stop_event = threading.Event()
    cores = available_concurrency()

    def monitor_cpu():
        logger.debug(f"Starting CPU monitoring (cores: {cores})")
        while not stop_event.is_set():
            cpu_percent = psutil.cpu_percent(interval=1)
            cpu_per_core = psutil.cpu_percent(percpu=True, interval=None)
            active_cores = sum(1 for c in cpu_per_core if c > 10)
            logger.debug(f"CPU: {cpu_percent:5.1f}% total, {active_cores}/{cores} cores active (>10%)")
            stop_event.wait(interval)

    thread = threading.Thread(target=monitor_cpu, daemon=True)
    thread.start()
    return thread, stop_event
