"""OCI registry access for Helm charts stored as OCI artifacts.

Registry operations go through the ORAS client. Only what the tracker needs
is exposed: listing the tags (versions) of a chart repository and pulling
the chart content layer of a given reference.
"""

from __future__ import annotations

from typing import Any, Optional

from oras.client import OrasClient

from hubtracker.errors import NETWORK_ERROR, SCHEMA_ERROR, AppError
from hubtracker.log import logger
from hubtracker.models import OCI_PREFIX, Repository

HELM_CHART_CONFIG_MEDIA_TYPE = "application/vnd.cncf.helm.config.v1+json"
HELM_CHART_CONTENT_LAYER_MEDIA_TYPES = (
    "application/vnd.cncf.helm.chart.content.v1.tar+gzip",
    "application/tar+gzip",
)
OCI_MANIFEST_MEDIA_TYPES = [
    "application/vnd.oci.image.manifest.v1+json",
    "application/vnd.docker.distribution.manifest.v2+json",
]


def strip_oci_prefix(url: str) -> str:
    if url.startswith(OCI_PREFIX):
        return url[len(OCI_PREFIX):]
    return url


def registry_host(ref: str) -> str:
    """Return the registry host of an OCI reference (with or without scheme)."""
    return strip_oci_prefix(ref).split("/", 1)[0]


def new_client(ref: str, username: str = "", password: str = "") -> OrasClient:
    """Create an ORAS client for the registry hosting ``ref``.

    The client logs in to the registry when credentials are provided.

    Raises:
        AppError: If authentication fails
    """
    host = registry_host(ref)
    has_credentials = bool(username or password)
    client = OrasClient(
        hostname=host,
        auth_backend="basic" if has_credentials else "token",
    )
    if has_credentials:
        try:
            client.login(username=username, password=password, hostname=host)
        except Exception as e:
            raise AppError(
                NETWORK_ERROR,
                f"error authenticating with registry {host}: {e}",
                cause=e,
                context={"host": host},
            ) from e
    return client


class OCITagsGetter:
    """Lists the tags available in an OCI chart repository."""

    def tags(self, repository: Repository) -> list[str]:
        """Return the tags of the repository provided.

        Raises:
            AppError: If the tags could not be listed
        """
        ref = strip_oci_prefix(repository.url)
        client = new_client(ref, repository.auth_user, repository.auth_pass)
        try:
            result: Any = client.get_tags(ref)
        except Exception as e:
            raise AppError(
                NETWORK_ERROR,
                f"error listing tags: {e}",
                cause=e,
                context={"url": repository.url},
            ) from e

        # Older ORAS releases return the raw tags list response
        if isinstance(result, dict):
            result = result.get("tags") or []
        tags = [str(t) for t in result or []]
        logger.debug(f"Found {len(tags)} tags in {repository.url}")
        return tags


def pull_chart_content(ref: str, username: str = "", password: str = "") -> bytes:
    """Pull the chart content layer of the OCI reference provided.

    Args:
        ref: Chart reference, with or without the oci:// prefix
            (e.g. oci://registry.example.com/charts/app:1.0.0)
        username: Optional username for the registry
        password: Optional password for the registry

    Returns:
        bytes: The chart archive (gzipped tarball)

    Raises:
        AppError: If the manifest or the content layer could not be retrieved
    """
    target = strip_oci_prefix(ref)
    client = new_client(target, username, password)
    try:
        manifest = client.get_manifest(target, allowed_media_type=OCI_MANIFEST_MEDIA_TYPES)
    except Exception as e:
        raise AppError(
            NETWORK_ERROR, f"error getting manifest: {e}", cause=e, context={"ref": target}
        ) from e

    layer = find_content_layer(manifest)
    if layer is None:
        raise AppError(SCHEMA_ERROR, "content layer not found", context={"ref": target})

    try:
        response = client.get_blob(target, layer["digest"])
        response.raise_for_status()
    except Exception as e:
        raise AppError(
            NETWORK_ERROR, f"error pulling content layer: {e}", cause=e, context={"ref": target}
        ) from e
    return response.content


def find_content_layer(manifest: Optional[dict[str, Any]]) -> Optional[dict[str, Any]]:
    """Return the Helm chart content layer descriptor of a manifest, if any."""
    for layer in (manifest or {}).get("layers") or []:
        if layer.get("mediaType") in HELM_CHART_CONTENT_LAYER_MEDIA_TYPES and layer.get("digest"):
            return layer
    return None
