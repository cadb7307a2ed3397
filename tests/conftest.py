"""Shared pytest configuration for the timebox_sync test-suite."""

from typing import Any


def pytest_configure(config: Any) -> None:
    """Configure pytest with optimized markers."""
    config.addinivalue_line("markers", "unit: Fast unit tests")
    config.addinivalue_line("markers", "fast: Tests that finish in well under a second")
    config.addinivalue_line("markers", "critical_path: Core functionality tests")
    config.addinivalue_line("markers", "smoke: Basic smoke tests")
