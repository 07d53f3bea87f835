"""
Centralized logging utilities for scene_transcode

Every message is one tagged line on stdout:
- [INFO] / [WARN] / [ERROR] / [RESULT] with the module name
- [DEBUG] only in debug mode (--debug or DEBUG=1)
- [SCENE] [SEARCH] [ENCODE] [CHECKPOINT] [ASSEMBLE] for pipeline stages
- [PROBE] [CMD] [SEARCH-DEBUG] for debug-only detail

Quiet mode keeps warnings, errors and results only.

Usage:
    from scene_transcode.utils.logging import get_logger, set_debug_mode

    set_debug_mode(True)

    logger = get_logger("worker_pool")
    logger.info("Dispatching 12 scene(s)")
    logger.search("Scene 3: CRF 23 -> VMAF 96.10")
"""

import os
from enum import Enum
from typing import Optional

from tqdm import tqdm

# Global logging configuration
_DEBUG_ENABLED = os.getenv('DEBUG', '').lower() in ('1', 'true', 'yes')
_QUIET_MODE = False


class LogLevel(Enum):
    DEBUG = 0
    INFO = 1
    WARN = 2
    ERROR = 3


def set_debug_mode(enabled: bool):
    """Enable or disable debug mode globally"""
    global _DEBUG_ENABLED
    _DEBUG_ENABLED = enabled


def set_quiet_mode(enabled: bool):
    """Enable or disable quiet mode (suppress INFO and DEBUG messages)"""
    global _QUIET_MODE
    _QUIET_MODE = enabled


def get_debug_mode() -> bool:
    return _DEBUG_ENABLED


def _enabled(level: LogLevel) -> bool:
    if level == LogLevel.DEBUG:
        return _DEBUG_ENABLED and not _QUIET_MODE
    if level == LogLevel.INFO:
        return not _QUIET_MODE
    return True


class Logger:
    """Module-scoped logger writing tagged lines"""

    def __init__(self, module_name: str = ""):
        self.module_name = module_name
        self.prefix = f"[{module_name}] " if module_name else ""

    def _emit(self, tag: str, message: str, level: LogLevel = LogLevel.INFO, with_module: bool = True):
        if _enabled(level):
            print(f"[{tag}] {self.prefix if with_module else ''}{message}")

    def debug(self, message: str):
        self._emit("DEBUG", message, LogLevel.DEBUG)

    def info(self, message: str):
        self._emit("INFO", message)

    def warn(self, message: str):
        self._emit("WARN", message, LogLevel.WARN)

    def error(self, message: str):
        self._emit("ERROR", message, LogLevel.ERROR)

    def result(self, message: str):
        """Final outcomes; shown even in quiet mode"""
        self._emit("RESULT", message, LogLevel.WARN)

    # Pipeline stages
    def scene(self, message: str):
        self._emit("SCENE", message, with_module=False)

    def search(self, message: str):
        self._emit("SEARCH", message, with_module=False)

    def search_debug(self, message: str):
        self._emit("SEARCH-DEBUG", message, LogLevel.DEBUG, with_module=False)

    def encode(self, message: str):
        self._emit("ENCODE", message, with_module=False)

    def checkpoint(self, message: str):
        self._emit("CHECKPOINT", message, with_module=False)

    def assemble(self, message: str):
        self._emit("ASSEMBLE", message, with_module=False)

    def cleanup(self, message: str):
        self._emit("CLEANUP", message, with_module=False)

    def discovery(self, message: str):
        self._emit("DISCOVERY", message, with_module=False)

    def probe(self, message: str):
        self._emit("PROBE", message, LogLevel.DEBUG, with_module=False)

    def cmd(self, message: str):
        """External command lines, debug mode only"""
        self._emit("CMD", message, LogLevel.DEBUG, with_module=False)


def get_logger(module_name: str = "") -> Logger:
    """Get a logger instance for a module"""
    return Logger(module_name)


def create_progress_bar(total: Optional[float] = None, desc: str = "", unit: str = "it",
                        position: Optional[int] = None, leave: bool = True,
                        bar_format: Optional[str] = None):
    """Create a progress bar with consistent styling"""
    return tqdm(total=total, desc=desc, unit=unit, position=position, leave=leave,
                bar_format=bar_format, dynamic_ncols=True)


def format_elapsed(seconds: float) -> str:
    """Format elapsed seconds as ``Hh:Mm:Ss`` for run summaries"""
    total = int(seconds)
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours}h:{minutes}m:{secs}s"
