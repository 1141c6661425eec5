"""Unit tests for the tracker configuration."""

import os
from unittest.mock import patch

import pytest

from hubtracker.config import DEFAULT_CONCURRENCY, TrackerConfig

ENV_VARS = [
    "TRACKER_BYPASS_DIGEST_CHECK",
    "TRACKER_CONCURRENCY",
    "CREDS_GITHUB_TOKEN",
    "GITHUB_RATE_LIMIT",
    "HTTP_TIMEOUT",
    "HELM_BIN",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@patch("hubtracker.config.load_dotenv")
def test_defaults(mock_load_dotenv) -> None:
    cfg = TrackerConfig.from_env()

    assert cfg == TrackerConfig()
    assert cfg.concurrency == 10
    assert cfg.github_token is None
    mock_load_dotenv.assert_called_once_with("config.env")


@patch("hubtracker.config.load_dotenv")
def test_from_env(mock_load_dotenv, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TRACKER_BYPASS_DIGEST_CHECK", "true")
    monkeypatch.setenv("TRACKER_CONCURRENCY", "4")
    monkeypatch.setenv("CREDS_GITHUB_TOKEN", "ghp_token")
    monkeypatch.setenv("GITHUB_RATE_LIMIT", "100")
    monkeypatch.setenv("HTTP_TIMEOUT", "5.5")

    cfg = TrackerConfig.from_env()

    assert cfg.bypass_digest_check is True
    assert cfg.concurrency == 4
    assert cfg.github_token == "ghp_token"
    assert cfg.github_rate_limit == 100
    assert cfg.http_timeout == 5.5


@patch("hubtracker.config.load_dotenv")
@pytest.mark.parametrize("value", ["0", "-3", "many"])
def test_invalid_concurrency_falls_back(mock_load_dotenv, value: str, monkeypatch) -> None:
    monkeypatch.setenv("TRACKER_CONCURRENCY", value)
    assert TrackerConfig.from_env().concurrency == DEFAULT_CONCURRENCY


@patch("hubtracker.config.load_dotenv")
def test_bypass_not_truthy(mock_load_dotenv, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TRACKER_BYPASS_DIGEST_CHECK", "no")
    assert TrackerConfig.from_env().bypass_digest_check is False


def test_helm_bin_from_env_file(tmp_path) -> None:
    env_file = tmp_path / "config.env"
    env_file.write_text("HELM_BIN=/opt/helm/bin/helm\nTRACKER_CONCURRENCY=3\n")

    with patch.dict(os.environ):
        cfg = TrackerConfig.from_env(str(env_file))

    assert cfg.helm_bin == "/opt/helm/bin/helm"
    assert cfg.concurrency == 3
    assert "HELM_BIN" not in os.environ


@patch("hubtracker.config.load_dotenv")
def test_helm_bin_default(mock_load_dotenv, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("HELM_BIN", "")
    assert TrackerConfig.from_env().helm_bin == "helm"
