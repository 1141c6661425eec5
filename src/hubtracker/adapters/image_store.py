"""Storage for package logo images.

Logos referenced by charts (``icon``) are downloaded once and stored under an
id derived from their content, so the same image used by many chart versions
is stored a single time.
"""

from __future__ import annotations

import hashlib
from threading import Lock
from typing import Optional

from hubtracker.adapters.client import HTTPClient
from hubtracker.errors import SCHEMA_ERROR, AppError
from hubtracker.log import logger

ALLOWED_CONTENT_TYPES = ("image/", "application/octet-stream")


class ImageStore:
    """In-memory, content addressed image store."""

    def __init__(self, hc: Optional[HTTPClient] = None) -> None:
        self.hc = hc or HTTPClient()
        self._images: dict[str, bytes] = {}
        self._lock = Lock()

    def save_image(self, data: bytes) -> str:
        """Store ``data`` and return its id."""
        image_id = hashlib.sha256(data).hexdigest()
        with self._lock:
            self._images.setdefault(image_id, data)
        return image_id

    def get_image(self, image_id: str) -> Optional[bytes]:
        with self._lock:
            return self._images.get(image_id)

    def download_and_save_image(self, url: str) -> str:
        """Download the image at ``url`` and store it.

        Returns:
            str: The id of the stored image

        Raises:
            AppError: If the image could not be downloaded or is not an image
        """
        response = self.hc.get_ok(url)
        content_type = response.headers.get("Content-Type", "")
        if content_type and not content_type.startswith(ALLOWED_CONTENT_TYPES):
            raise AppError(
                SCHEMA_ERROR,
                f"unexpected content type: {content_type}",
                context={"url": url},
            )
        if not response.content:
            raise AppError(SCHEMA_ERROR, "empty image", context={"url": url})
        image_id = self.save_image(response.content)
        logger.debug(f"Stored image {url} as {image_id}")
        return image_id
