"""
Scene Transcode - scene-parallel video transcoding to a target VMAF score.
"""

__version__ = "1.0.0"
__author__ = "Rallade"
__email__ = "rallade@hotmail.com"

# Import configuration utilities
from .config import TranscodeSettings, get_config, load_env_file

__all__ = [
    "TranscodeSettings",
    "get_config",
    "load_env_file",
]
