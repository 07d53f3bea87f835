"""Shared utilities for scene_transcode."""
