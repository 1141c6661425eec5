"""Semantic version parsing for chart versions.

Chart versions are parsed leniently: a leading ``v`` is accepted and missing
minor or patch components default to zero, so ``v1.2`` normalises to
``1.2.0``.
"""

from __future__ import annotations

import semver

from hubtracker.errors import INVALID_METADATA, AppError


def parse_version(version: str) -> semver.Version:
    """Parse ``version`` into a semver.Version.

    Raises:
        AppError: If the version is not a valid semantic version
    """
    raw = (version or "").strip()
    if raw[:1] in ("v", "V"):
        raw = raw[1:]
    try:
        return semver.Version.parse(raw, optional_minor_and_patch=True)
    except (ValueError, TypeError) as e:
        raise AppError(
            code=INVALID_METADATA,
            message=f"invalid semantic version: {version!r}",
            cause=e,
        ) from e


def normalize_version(version: str) -> str:
    """Return the canonical string form of a chart version."""
    return str(parse_version(version))


def is_valid_version(version: str) -> bool:
    try:
        parse_version(version)
    except AppError:
        return False
    return True
