"""Configuration management for scene-transcode."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Dict, Any

from .core.modules.analysis.vmaf_evaluator import VMAF_POOL_METHODS
from .core.modules.config.encoder_config import DEFAULT_PIX_FMT, SUPPORTED_ENCODERS
from .core.modules.system.system_utils import available_concurrency

MODES = ("default", "chunked")


def load_env_file(env_path: Optional[Path] = None) -> Dict[str, str]:
    """Load environment variables from .env file."""
    if env_path is None:
        # Look for .env in current directory, then in package directory
        candidates = [
            Path.cwd() / ".env",
            Path(__file__).parent.parent / ".env",
        ]

        for candidate in candidates:
            if candidate.exists():
                env_path = candidate
                break

    env_vars = {}

    if env_path and env_path.exists():
        with open(env_path, 'r', encoding='utf-8') as f:
            for line in f:
                line = line.strip()
                if line and not line.startswith('#'):
                    if '=' in line:
                        key, value = line.split('=', 1)
                        env_vars[key.strip()] = value.strip()

    return env_vars


def get_config(env_path: Optional[Path] = None) -> Dict[str, Any]:
    """Get configuration defaults from environment variables and .env file."""
    env_vars = load_env_file(env_path)

    def lookup(key: str, default: str) -> str:
        return env_vars.get(key.lower(), os.getenv(key, default))

    config = {
        'vmaf_target': int(lookup('VMAF_TARGET', '97')),
        'vmaf_threads': int(lookup('VMAF_THREADS', '2')),
        'scene_split_min': float(lookup('SCENE_SPLIT_MIN', '2')),
        'encoder': lookup('ENCODER', 'libx265'),
        'debug': lookup('DEBUG', 'false').lower() in ('true', '1', 'yes'),
    }

    return config


@dataclass
class TranscodeSettings:
    """Validated inputs for one batch run."""
    mode: str = "chunked"
    vmaf_target: int = 97
    encoder: str = "libx265"
    vmaf_pool: str = "mean"
    vmaf_threads: int = 2
    vmaf_subsample: int = 1
    workers: Optional[int] = None
    pix_fmt: str = DEFAULT_PIX_FMT
    scene_split_min: float = 2.0
    max_crf: int = 28
    sample_every: str = "3m"
    max_attempts: int = 5
    preset: Optional[str] = None
    params: Optional[str] = None
    output_folder: Optional[Path] = None
    work_dir: Path = Path(".")
    task_id: str = ""
    verbose: bool = False

    @property
    def effective_workers(self) -> int:
        return self.workers if self.workers is not None else self.vmaf_threads

    def validate(self) -> "TranscodeSettings":
        """Raise ValueError describing the first out-of-range setting."""
        cpus = available_concurrency()
        if self.mode not in MODES:
            raise ValueError(f"mode must be one of {', '.join(MODES)}")
        if isinstance(self.vmaf_target, bool) or not isinstance(self.vmaf_target, int) \
                or not 0 < self.vmaf_target <= 100:
            raise ValueError("vmaf target must be a positive integer no greater than 100")
        if self.encoder not in SUPPORTED_ENCODERS:
            raise ValueError(f"encoder must be one of {', '.join(SUPPORTED_ENCODERS)}")
        if self.vmaf_pool not in VMAF_POOL_METHODS:
            raise ValueError(f"vmaf pool must be one of {', '.join(VMAF_POOL_METHODS)}")
        if not 1 <= self.vmaf_threads <= cpus:
            raise ValueError(f"vmaf threads must be between 1 and {cpus}")
        if not 1 <= self.effective_workers <= cpus:
            raise ValueError(f"workers must be between 1 and {cpus}")
        if self.vmaf_subsample < 1:
            raise ValueError("vmaf subsample must be >= 1")
        if not self.scene_split_min > 0:
            raise ValueError("scene split minimum must be > 0 seconds")
        if not 0 <= self.max_crf <= 63:
            raise ValueError("max crf must be between 0 and 63")
        if self.max_attempts < 1:
            raise ValueError("max attempts must be >= 1")
        return self

    def output_path(self, input_file: Path) -> Path:
        """``{stem}.{encoder}.vmaf{target}.{pool}.subsample{n}.{ext}`` in the output folder."""
        input_file = Path(input_file)
        folder = Path(self.output_folder) if self.output_folder else input_file.parent
        name = (f"{input_file.stem}.{self.encoder}.vmaf{self.vmaf_target}."
                f"{self.vmaf_pool}.subsample{self.vmaf_subsample}{input_file.suffix}")
        return folder / name
