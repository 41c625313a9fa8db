"""
pytest configuration for interaction-logger tests

This file ensures tests can find the interaction_logger package and the
shared fakes regardless of environment
"""

import sys
from pathlib import Path

import pytest
from twisted.internet import task

# Add parent directory to path so tests can import interaction_logger
repo_root = Path(__file__).parent.parent
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))

# Shared fakes live next to this file
tests_dir = Path(__file__).parent
if str(tests_dir) not in sys.path:
    sys.path.insert(0, str(tests_dir))


@pytest.fixture
def clock():
    """Deterministic reactor clock"""
    return task.Clock()
