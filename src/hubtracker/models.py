"""Data models for repositories and the packages tracked from them.

This module defines Pydantic models for Helm repositories and the package
versions prepared from their charts, along with the small structures carried
by a package (links, maintainers, containers images, etc.).
"""

from typing import Any, Optional

from pydantic import BaseModel, Field

OCI_PREFIX = "oci://"


class Repository(BaseModel):
    """A Helm repository (HTTP index based or OCI registry).

    Attributes:
        repository_id: Unique repository identifier
        name: Repository name
        url: Repository url (http, https or oci scheme)
        auth_user: Optional username for basic authentication
        auth_pass: Optional password for basic authentication
    """

    repository_id: str
    name: str = ""
    url: str
    auth_user: str = Field(default="", repr=False)
    auth_pass: str = Field(default="", repr=False)

    def has_credentials(self) -> bool:
        return bool(self.auth_user or self.auth_pass)


class Link(BaseModel):
    name: str = ""
    url: str = ""


class Maintainer(BaseModel):
    name: str = ""
    email: str = ""


class ContainerImage(BaseModel):
    """A container image referenced by a chart."""

    name: str = ""
    image: str = ""
    whitelisted: bool = False


class Recommendation(BaseModel):
    url: str = ""


class SignKey(BaseModel):
    fingerprint: str = ""
    url: str = ""


class Change(BaseModel):
    """An entry of a package version changelog."""

    kind: str = ""
    description: str = ""
    links: list[Link] = Field(default_factory=list)


class Package(BaseModel):
    """A package version prepared from a chart version.

    The minimal form (name, version, digest, content_url, repository, ts) is
    always populated. The remaining attributes are only set when the package
    has been enriched with the content of its chart archive.
    """

    name: str
    version: str
    digest: str = ""
    content_url: str = ""
    repository: Repository
    ts: Optional[int] = None

    logo_url: Optional[str] = None
    logo_image_id: Optional[str] = None
    signed: bool = False

    description: str = ""
    keywords: list[str] = Field(default_factory=list)
    home_url: str = ""
    app_version: str = ""
    deprecated: bool = False
    values_schema: Optional[Any] = None
    data: dict[str, Any] = Field(default_factory=dict)
    license: str = ""
    links: list[Link] = Field(default_factory=list)
    maintainers: list[Maintainer] = Field(default_factory=list)
    is_operator: bool = False
    readme: str = ""
    containers_images: list[ContainerImage] = Field(default_factory=list)

    changes: list[Change] = Field(default_factory=list)
    crds: list[Any] = Field(default_factory=list)
    crds_examples: list[Any] = Field(default_factory=list)
    capabilities: str = ""
    prerelease: bool = False
    recommendations: list[Recommendation] = Field(default_factory=list)
    contains_security_updates: bool = False
    sign_key: Optional[SignKey] = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize the package, leaving out repository credentials."""
        return self.model_dump(exclude={"repository": {"auth_user", "auth_pass"}})


def build_key(package: Package) -> str:
    """Return the key identifying a package version: ``name@version``."""
    return f"{package.name}@{package.version}"
