import pytest

from hubtracker.errors import INVALID_METADATA, AppError
from hubtracker.versions import is_valid_version, normalize_version, parse_version


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("1.0.0", "1.0.0"),
        ("v1.2.3", "1.2.3"),
        ("1.2", "1.2.0"),
        ("2", "2.0.0"),
        ("1.0.0-beta.1+build.5", "1.0.0-beta.1+build.5"),
    ],
)
def test_normalize_version(raw: str, expected: str) -> None:
    assert normalize_version(raw) == expected


def test_parse_version_invalid() -> None:
    with pytest.raises(AppError) as exc_info:
        parse_version("1.0.0.0")
    assert exc_info.value.code == INVALID_METADATA
    assert "invalid semantic version" in exc_info.value.message


def test_is_valid_version() -> None:
    assert is_valid_version("0.1.0")
    assert not is_valid_version("")
    assert not is_valid_version("latest")
