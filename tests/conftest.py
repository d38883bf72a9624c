"""Pytest configuration for test discovery."""

import sys
from pathlib import Path

import pytest

# Ensure the project root is in sys.path for imports without installation
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from cronrunner.config import CronConfig  # noqa: E402


@pytest.fixture
def config(tmp_path):
    """Config with metrics written into a per-test directory."""
    return CronConfig(metrics_dir=str(tmp_path))


@pytest.fixture
def no_metrics_config():
    return CronConfig(metrics_enabled=False)
