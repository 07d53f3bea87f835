"""CLI entry points for scene-transcode package."""

import sys


def main_transcode():
    """Entry point for scene-transcode command."""
    from scene_transcode.core.main import main
    sys.exit(main())


if __name__ == "__main__":
    main_transcode()
