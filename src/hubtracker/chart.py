"""Helm chart archives: loading and metadata validation.

A chart archive is a gzipped tarball holding a single top-level directory
named after the chart. ``load_archive`` unpacks it in memory into a
``Chart``, keeping the raw bytes around so the chart can be rendered later.
"""

from __future__ import annotations

import gzip
import io
import json
import posixpath
import re
import tarfile
from dataclasses import dataclass, field
from typing import Any, Optional

import yaml

from hubtracker.errors import INVALID_METADATA, SCHEMA_ERROR, AppError
from hubtracker.versions import is_valid_version

API_VERSION_V1 = "v1"
VALID_CHART_TYPES = {"", "application", "library"}

MAX_DECOMPRESSED_CHART_SIZE = 100 * 1024 * 1024
MAX_DECOMPRESSED_FILE_SIZE = 5 * 1024 * 1024
GZIP_MAGIC = b"\x1f\x8b"

_ALIAS_RE = re.compile(r"^[a-zA-Z0-9-_]+$")


@dataclass
class ChartMaintainer:
    name: str = ""
    email: str = ""
    url: str = ""


@dataclass
class ChartDependency:
    name: str = ""
    version: str = ""
    repository: str = ""
    condition: str = ""
    alias: str = ""
    tags: list[str] = field(default_factory=list)


@dataclass
class ChartMetadata:
    """The content of a chart's Chart.yaml file."""

    name: str = ""
    version: str = ""
    api_version: str = ""
    app_version: str = ""
    description: str = ""
    home: str = ""
    icon: str = ""
    kube_version: str = ""
    type: str = ""
    deprecated: bool = False
    keywords: list[str] = field(default_factory=list)
    sources: list[str] = field(default_factory=list)
    maintainers: list[Optional[ChartMaintainer]] = field(default_factory=list)
    dependencies: list[Optional[ChartDependency]] = field(default_factory=list)
    annotations: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ChartMetadata":
        """Build chart metadata from a parsed Chart.yaml (or index entry).

        Raises:
            AppError: With INVALID_METADATA code if a field has the wrong type
        """
        return cls(
            name=_str(data.get("name")),
            version=_str(data.get("version")),
            api_version=_str(data.get("apiVersion")),
            app_version=_str(data.get("appVersion")),
            description=_str(data.get("description")),
            home=_str(data.get("home")),
            icon=_str(data.get("icon")),
            kube_version=_str(data.get("kubeVersion")),
            type=_str(data.get("type")),
            deprecated=_bool(data, "deprecated"),
            keywords=[_str(k) for k in _list(data, "keywords")],
            sources=[_str(s) for s in _list(data, "sources")],
            maintainers=[_maintainer(m) for m in _list(data, "maintainers")],
            dependencies=_dependencies(_list(data, "dependencies")),
            annotations={_str(k): _str(v) for k, v in _mapping(data, "annotations").items()},
        )

    def validate(self) -> None:
        """Check the metadata for known issues, sanitizing its strings.

        Raises:
            AppError: With INVALID_METADATA code on the first issue found
        """
        self._sanitize()

        if not self.api_version:
            raise _invalid("chart.metadata.apiVersion is required")
        if not self.name:
            raise _invalid("chart.metadata.name is required")
        if self.name != posixpath.basename(self.name):
            raise _invalid(f"chart.metadata.name {self.name!r} is invalid")
        if not self.version:
            raise _invalid("chart.metadata.version is required")
        if not is_valid_version(self.version):
            raise _invalid(f"chart.metadata.version {self.version!r} is invalid")
        if self.type not in VALID_CHART_TYPES:
            raise _invalid("chart.metadata.type must be application or library")

        for m in self.maintainers:
            if m is None:
                raise _invalid("maintainers must not contain empty or null nodes")

        seen: set[str] = set()
        for d in self.dependencies:
            if d is None:
                raise _invalid("dependencies must not contain empty or null nodes")
            if not d.name:
                raise _invalid("dependencies must have a name")
            if d.alias and not _ALIAS_RE.match(d.alias):
                raise _invalid(f"dependency {d.name!r} has disallowed characters in the alias")
            key = d.alias or d.name
            if key in seen:
                raise _invalid(f"more than one dependency with name or alias {key!r}")
            seen.add(key)

    def _sanitize(self) -> None:
        for attr in (
            "name", "version", "api_version", "app_version", "description",
            "home", "icon", "kube_version", "type",
        ):
            setattr(self, attr, sanitize_string(getattr(self, attr)))
        self.keywords = [sanitize_string(k) for k in self.keywords]
        self.sources = [sanitize_string(s) for s in self.sources]
        for m in self.maintainers:
            if m is not None:
                m.name = sanitize_string(m.name)
                m.email = sanitize_string(m.email)
                m.url = sanitize_string(m.url)
        for d in self.dependencies:
            if d is not None:
                d.name = sanitize_string(d.name)
                d.version = sanitize_string(d.version)
                d.repository = sanitize_string(d.repository)


@dataclass
class ChartFile:
    name: str
    data: bytes


@dataclass
class Chart:
    """A chart loaded from an archive.

    Attributes:
        metadata: Parsed Chart.yaml
        values: Parsed values.yaml (default values)
        schema: Raw content of values.schema.json, if present
        templates: Files under templates/
        files: Every other file in the chart (README.md, LICENSE, crds/...)
        subcharts: Names of the entries found under charts/
        raw: The archive the chart was loaded from
    """

    metadata: ChartMetadata
    values: dict[str, Any] = field(default_factory=dict)
    schema: Optional[bytes] = None
    templates: list[ChartFile] = field(default_factory=list)
    files: list[ChartFile] = field(default_factory=list)
    subcharts: list[str] = field(default_factory=list)
    raw: bytes = b""

    def validate(self) -> None:
        self.metadata.validate()

    def get_file(self, name: str) -> Optional[ChartFile]:
        """Return the file with the chart-relative ``name`` provided."""
        for f in self.files:
            if f.name == name:
                return f
        return None


def load_archive(data: bytes) -> Chart:
    """Load a chart from the gzipped tarball provided.

    Raises:
        AppError: With SCHEMA_ERROR code if the archive is not a valid chart
    """
    try:
        tar = tarfile.open(fileobj=io.BytesIO(data), mode="r:*")
    except (tarfile.TarError, OSError, EOFError) as e:
        raise AppError(SCHEMA_ERROR, f"invalid chart archive: {e}", cause=e) from e

    entries: dict[str, bytes] = {}
    total = 0
    with tar:
        try:
            members = tar.getmembers()
        except (tarfile.TarError, OSError, EOFError) as e:
            raise AppError(SCHEMA_ERROR, f"invalid chart archive: {e}", cause=e) from e
        for member in members:
            if not member.isfile():
                continue
            parts = posixpath.normpath(member.name.lstrip("/")).split("/", 1)
            if len(parts) < 2 or parts[1].startswith(".."):
                continue
            if member.size > MAX_DECOMPRESSED_FILE_SIZE:
                raise AppError(
                    SCHEMA_ERROR,
                    f"decompressed chart file {parts[1]!r} is larger than the maximum file size",
                )
            total += member.size
            if total > MAX_DECOMPRESSED_CHART_SIZE:
                raise AppError(SCHEMA_ERROR, "decompressed chart is larger than the maximum size")
            fobj = tar.extractfile(member)
            if fobj is None:
                continue
            entries[parts[1]] = fobj.read()

    if "Chart.yaml" not in entries:
        raise AppError(SCHEMA_ERROR, "Chart.yaml file is missing")

    chart_yaml = _load_yaml(entries.pop("Chart.yaml"), "Chart.yaml")
    metadata = ChartMetadata.from_dict(chart_yaml)
    if not metadata.api_version:
        metadata.api_version = API_VERSION_V1

    # Archives may arrive already decompressed (Content-Encoding: gzip)
    raw = data if data[:2] == GZIP_MAGIC else gzip.compress(data)
    chart = Chart(metadata=metadata, raw=raw)
    for name in sorted(entries):
        content = entries[name]
        if name == "values.yaml":
            chart.values = _load_yaml(content, name)
        elif name == "values.schema.json":
            chart.schema = content
        elif name == "requirements.yaml":
            if metadata.api_version == API_VERSION_V1:
                reqs = _load_yaml(content, name)
                metadata.dependencies = _dependencies(_list(reqs, "dependencies"))
            chart.files.append(ChartFile(name, content))
        elif name.startswith("templates/"):
            chart.templates.append(ChartFile(name, content))
        elif name.startswith("charts/"):
            subchart = name.split("/")[1]
            if subchart.endswith(".tgz"):
                subchart = subchart[: -len(".tgz")]
            if subchart not in chart.subcharts:
                chart.subcharts.append(subchart)
        else:
            chart.files.append(ChartFile(name, content))

    return chart


def parse_schema(schema: Optional[bytes]) -> Optional[Any]:
    """Decode a values.schema.json file, returning None when it is not valid JSON."""
    if not schema:
        return None
    try:
        return json.loads(schema)
    except ValueError:
        return None


def sanitize_string(s: str) -> str:
    """Replace whitespace with spaces and drop non printable characters."""
    return "".join(" " if c.isspace() else c for c in s if c.isspace() or c.isprintable())


def _invalid(message: str) -> AppError:
    return AppError(code=INVALID_METADATA, message=message)


def _load_yaml(content: bytes, name: str) -> dict[str, Any]:
    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise AppError(SCHEMA_ERROR, f"error parsing {name}: {e}", cause=e) from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise AppError(SCHEMA_ERROR, f"error parsing {name}: unexpected content")
    return data


def _str(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _bool(data: dict[str, Any], key: str) -> bool:
    value = data.get(key)
    if value is None:
        return False
    if not isinstance(value, bool):
        raise _invalid(f"chart.metadata.{key} must be a boolean")
    return value


def _list(data: dict[str, Any], key: str) -> list[Any]:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise _invalid(f"chart.metadata.{key} must be a list")
    return value


def _mapping(data: dict[str, Any], key: str) -> dict[Any, Any]:
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise _invalid(f"chart.metadata.{key} must be a mapping")
    return value


def _maintainer(entry: Any) -> Optional[ChartMaintainer]:
    if not isinstance(entry, dict):
        return None
    return ChartMaintainer(
        name=_str(entry.get("name")),
        email=_str(entry.get("email")),
        url=_str(entry.get("url")),
    )


def _dependencies(entries: list[Any]) -> list[Optional[ChartDependency]]:
    deps: list[Optional[ChartDependency]] = []
    for entry in entries:
        if not isinstance(entry, dict):
            deps.append(None)
            continue
        deps.append(
            ChartDependency(
                name=_str(entry.get("name")),
                version=_str(entry.get("version")),
                repository=_str(entry.get("repository")),
                condition=_str(entry.get("condition")),
                alias=_str(entry.get("alias")),
                tags=[_str(t) for t in _list(entry, "tags")],
            )
        )
    return deps
