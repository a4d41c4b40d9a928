"""
Global pytest configuration and fixtures for configurer tests.

Environment-touching tests use ``MemoryEnvStore`` where they can, and
``patch.dict(os.environ)`` where the code under test reads the real process
environment.
"""

import io
import os
import tempfile
from collections.abc import Generator
from pathlib import Path
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from configurer.config import LogFormat, LogLevel
from configurer.environ import MemoryEnvStore
from configurer.logger import LogConfig, setup_logging


@pytest.fixture(autouse=True)
def log_stream() -> io.StringIO:
    """Capture log output of each test."""
    stream = io.StringIO()
    setup_logging(
        LogConfig(level=LogLevel.DEBUG, format_type=LogFormat.JSON, stream=stream)
    )
    return stream


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Provide a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmp_dir:
        yield Path(tmp_dir)


@pytest.fixture
def env() -> MemoryEnvStore:
    """Isolated environment store."""
    return MemoryEnvStore()


@pytest.fixture
def clean_environ() -> Generator[None, None, None]:
    """Restore the process environment after the test."""
    with patch.dict(os.environ):
        yield


@pytest.fixture
def runner() -> CliRunner:
    """CLI test runner."""
    return CliRunner()
