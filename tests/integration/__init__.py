"""Multi-component tests: resume, assembly, CLI and progress API."""
