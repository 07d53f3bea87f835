"""Modular components of the scene_transcode engine."""
