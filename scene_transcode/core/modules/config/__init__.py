"""Encoder configuration for scene_transcode."""
