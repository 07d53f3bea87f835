"""
Test package for scene_transcode.

Unit tests cover each engine component in isolation with external tools
mocked; integration tests exercise checkpoint/resume, assembly, the CLI
batch loop and the progress API together.
"""

# Test configuration
TEST_CONFIG = {
    'timeout': 30,  # Default timeout for tests
    'temp_cleanup': True,  # Whether to clean up temp files
    'mock_subprocess': True,  # Whether to mock subprocess calls by default
}

__version__ = "1.0.0"
