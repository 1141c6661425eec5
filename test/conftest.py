"""Pytest configuration and shared fixtures."""

import os
import sys
from unittest.mock import MagicMock

import pytest

PROJECT_ROOT = os.path.dirname(os.path.dirname(__file__))
SRC_PATH = os.path.join(PROJECT_ROOT, "src")
if SRC_PATH not in sys.path:
    sys.path.insert(0, SRC_PATH)

from hubtracker.config import TrackerConfig  # noqa: E402  (import after path adjustment)
from hubtracker.models import Repository  # noqa: E402
from hubtracker.source import TrackerServices  # noqa: E402
from hubtracker.storage import PackagesStore  # noqa: E402


@pytest.fixture
def http_repository() -> Repository:
    """Return a sample HTTP based Helm repository."""
    return Repository(
        repository_id="00000000-0000-0000-0000-000000000001",
        name="repo1",
        url="https://repo.example.com/charts",
    )


@pytest.fixture
def oci_repository() -> Repository:
    """Return a sample OCI based Helm repository."""
    return Repository(
        repository_id="00000000-0000-0000-0000-000000000002",
        name="repo2",
        url="oci://registry.example.com/charts/app",
    )


@pytest.fixture
def svc() -> TrackerServices:
    """Tracker services with a mocked HTTP client and no image store."""
    return TrackerServices(cfg=TrackerConfig(concurrency=2), hc=MagicMock())


@pytest.fixture
def store() -> PackagesStore:
    return PackagesStore()
