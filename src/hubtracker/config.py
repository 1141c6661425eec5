"""Tracker configuration loaded from the environment.

Values are read from ``config.env`` (when present) and the process
environment, the latter taking precedence.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

DEFAULT_CONCURRENCY = 10
DEFAULT_GITHUB_RATE_LIMIT = 5000  # requests per hour
DEFAULT_HTTP_TIMEOUT = 60.0
DEFAULT_HELM_BIN = "helm"

_TRUE_VALUES = {"1", "t", "true", "yes", "y", "on"}


def _get_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in _TRUE_VALUES


def _get_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


def _get_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except ValueError:
        return default


@dataclass
class TrackerConfig:
    """Settings used by the tracker source and its adapters.

    Attributes:
        bypass_digest_check: Enrich every chart version even when its digest
            matches the one already registered
        concurrency: Maximum number of chart versions processed at once
        github_token: Token used to authenticate requests to GitHub
        github_rate_limit: Requests per hour allowed against GitHub
        http_timeout: Timeout in seconds for outgoing HTTP requests
        helm_bin: Path of the helm binary used to render charts
    """

    bypass_digest_check: bool = False
    concurrency: int = DEFAULT_CONCURRENCY
    github_token: Optional[str] = None
    github_rate_limit: int = DEFAULT_GITHUB_RATE_LIMIT
    http_timeout: float = DEFAULT_HTTP_TIMEOUT
    helm_bin: str = DEFAULT_HELM_BIN

    @classmethod
    def from_env(cls, env_file: str = "config.env") -> "TrackerConfig":
        """Build a configuration from ``env_file`` and environment variables."""
        load_dotenv(env_file)
        concurrency = _get_int("TRACKER_CONCURRENCY", DEFAULT_CONCURRENCY)
        return cls(
            bypass_digest_check=_get_bool("TRACKER_BYPASS_DIGEST_CHECK"),
            concurrency=concurrency if concurrency > 0 else DEFAULT_CONCURRENCY,
            github_token=os.getenv("CREDS_GITHUB_TOKEN") or None,
            github_rate_limit=_get_int("GITHUB_RATE_LIMIT", DEFAULT_GITHUB_RATE_LIMIT),
            http_timeout=_get_float("HTTP_TIMEOUT", DEFAULT_HTTP_TIMEOUT),
            helm_bin=os.getenv("HELM_BIN") or DEFAULT_HELM_BIN,
        )
