"""Core transcoding engine for scene_transcode."""
