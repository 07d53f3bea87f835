"""HTTP progress accessor for scene_transcode."""
