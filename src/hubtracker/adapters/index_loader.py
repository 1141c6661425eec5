"""Loader for the index file of classic (HTTP based) Helm repositories.

The index file (``index.yaml``) lists every chart version published in the
repository, keyed by chart name. Entries that do not pass metadata
validation are skipped, as Helm itself does when loading an index.
"""

from __future__ import annotations

import hashlib
import posixpath
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional
from urllib.parse import urlparse, urlunparse

import yaml

from hubtracker.adapters.client import HTTPClient, basic_auth
from hubtracker.chart import API_VERSION_V1, ChartMetadata
from hubtracker.errors import INVALID_METADATA, SCHEMA_ERROR, AppError
from hubtracker.log import logger
from hubtracker.models import Repository


@dataclass
class ChartVersion:
    """A chart version entry of a repository index.

    Attributes:
        metadata: The chart metadata included in the entry
        urls: Locations of the chart archive (absolute or relative)
        digest: Digest of the chart archive
        created: When the chart version was added to the index
    """

    metadata: ChartMetadata
    urls: list[str] = field(default_factory=list)
    digest: str = ""
    created: Optional[datetime] = None

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def version(self) -> str:
        return self.metadata.version

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ChartVersion":
        """Build a chart version from an index entry.

        Raises:
            AppError: With INVALID_METADATA code if a field has the wrong type
        """
        metadata = ChartMetadata.from_dict(data)
        if not metadata.api_version:
            metadata.api_version = API_VERSION_V1
        urls = data.get("urls") or []
        if not isinstance(urls, list):
            raise AppError(INVALID_METADATA, "chart version urls must be a list")
        return cls(
            metadata=metadata,
            urls=[str(u) for u in urls],
            digest=str(data.get("digest") or ""),
            created=_parse_time(data.get("created")),
        )


@dataclass
class IndexFile:
    api_version: str
    entries: dict[str, list[ChartVersion]] = field(default_factory=dict)
    generated: Optional[datetime] = None


def index_url(repository_url: str) -> str:
    """Return the url of the index file of the repository provided."""
    u = urlparse(repository_url)
    path = posixpath.join(u.path or "/", "index.yaml")
    return urlunparse(u._replace(path=path))


def parse_index(data: bytes) -> IndexFile:
    """Parse the content of an index file.

    Raises:
        AppError: With SCHEMA_ERROR code if the content is not a valid index
    """
    try:
        raw = yaml.safe_load(data)
    except yaml.YAMLError as e:
        raise AppError(SCHEMA_ERROR, f"error parsing index file: {e}", cause=e) from e
    if not isinstance(raw, dict):
        raise AppError(SCHEMA_ERROR, "error parsing index file: unexpected content")
    if not raw.get("apiVersion"):
        raise AppError(SCHEMA_ERROR, "no API version specified")

    index = IndexFile(
        api_version=str(raw["apiVersion"]),
        generated=_parse_time(raw.get("generated")),
    )
    entries_by_name = raw.get("entries") or {}
    if not isinstance(entries_by_name, dict):
        raise AppError(SCHEMA_ERROR, "error parsing index file: entries must be a mapping")

    for name, entries in entries_by_name.items():
        if not isinstance(entries, list):
            logger.info(f"skipping loading invalid entries for chart {name!r}")
            continue
        versions: list[ChartVersion] = []
        for entry in entries:
            if not isinstance(entry, dict):
                continue
            try:
                cv = ChartVersion.from_dict(entry)
                cv.metadata.validate()
            except AppError as e:
                logger.info(f"skipping loading invalid entry for chart {name!r}: {e.message}")
                continue
            versions.append(cv)
        if versions:
            index.entries[str(name)] = versions
    return index


class HelmIndexLoader:
    """Loads the index file of HTTP based Helm repositories."""

    def __init__(self, hc: Optional[HTTPClient] = None) -> None:
        self.hc = hc or HTTPClient()

    def load_index(self, repository: Repository) -> tuple[IndexFile, str]:
        """Download and parse the repository index file.

        Returns:
            tuple[IndexFile, str]: The index and the sha256 digest of its content

        Raises:
            AppError: If the index could not be downloaded or parsed
        """
        url = index_url(repository.url)
        logger.debug(f"Loading index file {url}")
        response = self.hc.get_ok(
            url, auth=basic_auth(repository.auth_user, repository.auth_pass)
        )
        data = response.content
        digest = hashlib.sha256(data).hexdigest()
        return parse_index(data), digest


def _parse_time(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value
    if not isinstance(value, str) or not value:
        return None
    text = value.strip().replace("Z", "+00:00")
    # Helm writes nanoseconds, datetime only handles microseconds
    if "." in text:
        head, _, rest = text.partition(".")
        digits = len(rest) - len(rest.lstrip("0123456789"))
        text = head + "." + rest[:digits][:6].ljust(6, "0") + rest[digits:]
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
