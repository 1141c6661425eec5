"""Dry-run rendering of charts to discover the containers images they use.

Charts are rendered with ``helm template`` using their default values, the
same as a client-only dry-run install would, and the resulting manifest is
scanned for ``image:`` fields.
"""

from __future__ import annotations

import os
import re
import subprocess
import tempfile

from hubtracker.chart import Chart
from hubtracker.config import DEFAULT_HELM_BIN
from hubtracker.errors import INTERNAL_ERROR, AppError
from hubtracker.log import logger

RELEASE_NAME = "release-name"
RENDER_TIMEOUT = 60

# Matches containers images in kubernetes manifests
CONTAINERS_IMAGES_RE = re.compile(r"\simage:\s(\S+)")


def render_manifest(chart: Chart, helm_bin: str = DEFAULT_HELM_BIN) -> str:
    """Render the chart provided with its default values.

    Raises:
        AppError: If the chart could not be rendered
    """
    if not chart.raw:
        raise AppError(INTERNAL_ERROR, "chart archive not available for rendering")

    with tempfile.TemporaryDirectory(prefix="hubtracker_") as tmp_dir:
        archive = os.path.join(tmp_dir, "chart.tgz")
        with open(archive, "wb") as f:
            f.write(chart.raw)
        cmd = [
            helm_bin,
            "template",
            RELEASE_NAME,
            archive,
            "--include-crds",
            "--no-hooks",
        ]
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                check=True,
                timeout=RENDER_TIMEOUT,
            )
        except FileNotFoundError as e:
            raise AppError(INTERNAL_ERROR, "helm binary not found", cause=e) from e
        except subprocess.TimeoutExpired as e:
            raise AppError(INTERNAL_ERROR, "timeout rendering chart", cause=e) from e
        except subprocess.CalledProcessError as e:
            raise AppError(
                INTERNAL_ERROR,
                f"error rendering chart: {(e.stderr or '').strip()}",
                cause=e,
            ) from e
    return result.stdout


def find_containers_images(manifest: str) -> list[str]:
    """Return the unique images referenced in ``manifest``, in order of appearance."""
    images: list[str] = []
    for match in CONTAINERS_IMAGES_RE.finditer(manifest):
        image = match.group(1).strip("\"'")
        if image and image not in images:
            images.append(image)
    return images


def extract_containers_images(chart: Chart, helm_bin: str = DEFAULT_HELM_BIN) -> list[str]:
    """Extract the containers images referenced in the chart's rendered manifest.

    Raises:
        AppError: If the chart could not be rendered
    """
    manifest = render_manifest(chart, helm_bin)
    images = find_containers_images(manifest)
    logger.debug(f"Found {len(images)} images in chart {chart.metadata.name}")
    return images
