"""Component tests with external tools mocked."""
