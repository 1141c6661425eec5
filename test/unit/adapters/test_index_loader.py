"""Unit tests for the Helm repository index loader."""

import hashlib
from datetime import datetime, timezone
from test.helpers.builders import build_index, make_response
from unittest.mock import MagicMock

import pytest

from hubtracker.adapters.index_loader import (
    ChartVersion,
    HelmIndexLoader,
    index_url,
    parse_index,
)
from hubtracker.errors import NOT_FOUND, SCHEMA_ERROR, AppError
from hubtracker.models import Repository


@pytest.mark.parametrize(
    "repo_url,expected",
    [
        ("https://repo.example.com", "https://repo.example.com/index.yaml"),
        ("https://repo.example.com/charts", "https://repo.example.com/charts/index.yaml"),
        ("https://repo.example.com/charts/", "https://repo.example.com/charts/index.yaml"),
    ],
)
def test_index_url(repo_url: str, expected: str) -> None:
    assert index_url(repo_url) == expected


class TestParseIndex:
    def test_entries(self) -> None:
        data = build_index(
            {
                "pkg1": [
                    {
                        "apiVersion": "v2",
                        "name": "pkg1",
                        "version": "1.0.0",
                        "digest": "sha256:abc",
                        "urls": ["pkg1-1.0.0.tgz"],
                        "created": "2021-02-03T10:11:12.123456789Z",
                    },
                ],
            }
        )

        index = parse_index(data)

        assert index.api_version == "v1"
        cv = index.entries["pkg1"][0]
        assert cv.name == "pkg1"
        assert cv.version == "1.0.0"
        assert cv.digest == "sha256:abc"
        assert cv.urls == ["pkg1-1.0.0.tgz"]
        assert cv.created == datetime(2021, 2, 3, 10, 11, 12, 123456, tzinfo=timezone.utc)

    def test_invalid_entries_skipped(self) -> None:
        data = build_index(
            {
                "pkg1": [
                    {"name": "pkg1", "version": "not-semver"},
                    {"name": "pkg1", "version": "1.0.0"},
                ],
                "pkg2": [{"name": "pkg2", "version": "x"}],
            }
        )

        index = parse_index(data)

        assert [cv.version for cv in index.entries["pkg1"]] == ["1.0.0"]
        assert "pkg2" not in index.entries

    def test_malformed_entries_skipped(self) -> None:
        data = build_index(
            {
                "pkg1": [
                    {"name": "pkg1", "version": "1.0.0", "annotations": ["oops"]},
                    {"name": "pkg1", "version": "1.1.0", "urls": "pkg1-1.1.0.tgz"},
                    {"name": "pkg1", "version": "1.2.0", "deprecated": "false"},
                    {"name": "pkg1", "version": "2.0.0", "urls": ["pkg1-2.0.0.tgz"]},
                ],
                "pkg2": "not-a-list",
            }
        )

        index = parse_index(data)

        assert [cv.version for cv in index.entries["pkg1"]] == ["2.0.0"]
        assert "pkg2" not in index.entries

    def test_entries_not_a_mapping(self) -> None:
        with pytest.raises(AppError) as exc_info:
            parse_index(b"apiVersion: v1\nentries:\n  - name: pkg1\n")
        assert exc_info.value.code == SCHEMA_ERROR

    def test_entry_api_version_defaults_to_v1(self) -> None:
        index = parse_index(build_index({"pkg1": [{"name": "pkg1", "version": "1.0.0"}]}))
        assert index.entries["pkg1"][0].metadata.api_version == "v1"

    def test_no_api_version(self) -> None:
        with pytest.raises(AppError) as exc_info:
            parse_index(b"entries: {}\n")
        assert exc_info.value.code == SCHEMA_ERROR
        assert exc_info.value.message == "no API version specified"

    def test_invalid_yaml(self) -> None:
        with pytest.raises(AppError) as exc_info:
            parse_index(b"apiVersion: [v1")
        assert exc_info.value.code == SCHEMA_ERROR


def test_chart_version_from_dict_without_urls() -> None:
    cv = ChartVersion.from_dict({"name": "pkg1", "version": "1.0.0"})
    assert cv.urls == []
    assert cv.digest == ""
    assert cv.created is None


class TestHelmIndexLoader:
    def test_load_index(self) -> None:
        data = build_index({"pkg1": [{"name": "pkg1", "version": "1.0.0"}]})
        hc = MagicMock()
        hc.get_ok.return_value = make_response(200, content=data)
        repository = Repository(
            repository_id="r1",
            url="https://repo.example.com/charts",
            auth_user="user",
            auth_pass="pass",
        )

        index, digest = HelmIndexLoader(hc).load_index(repository)

        assert list(index.entries) == ["pkg1"]
        assert digest == hashlib.sha256(data).hexdigest()
        hc.get_ok.assert_called_once_with(
            "https://repo.example.com/charts/index.yaml", auth=("user", "pass")
        )

    def test_load_index_error(self) -> None:
        hc = MagicMock()
        hc.get_ok.side_effect = AppError(NOT_FOUND, "resource not found (404)")
        repository = Repository(repository_id="r1", url="https://repo.example.com")

        with pytest.raises(AppError) as exc_info:
            HelmIndexLoader(hc).load_index(repository)

        assert exc_info.value.code == NOT_FOUND
