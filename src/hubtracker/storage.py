"""Storage layer for the packages registered from tracked repositories.

This module provides in-memory storage for package versions, grouped by
repository. Alongside each package the digest it was registered with is
kept, which is what tracker runs use to decide whether a chart version
needs to be processed again.
"""

from __future__ import annotations

import logging
from threading import Lock
from typing import Dict, List, Optional

from hubtracker.models import Package, build_key

logger = logging.getLogger("hubtracker.storage")


class PackagesStore:
    """In-memory storage of registered packages.

    Packages are stored per repository id and keyed by ``name@version``.
    All operations are thread safe.
    """

    def __init__(self) -> None:
        """Initialize empty package storage."""
        self._packages: Dict[str, Dict[str, Package]] = {}
        self._lock = Lock()

    def reset(self) -> None:
        with self._lock:
            self._packages.clear()

    def register(self, package: Package) -> Package:
        """Register (or register again) a package version.

        Args:
            package: Package to register

        Returns:
            Package: The registered package
        """
        repository_id = package.repository.repository_id
        key = build_key(package)
        with self._lock:
            self._packages.setdefault(repository_id, {})[key] = package
        logger.info(f"Registered package {key} (repository: {repository_id})")
        return package

    def unregister(self, repository_id: str, key: str) -> Optional[Package]:
        """Remove a package version from the registry.

        Returns:
            Optional[Package]: The package removed, or None if it was not registered
        """
        with self._lock:
            package = self._packages.get(repository_id, {}).pop(key, None)
        if package is not None:
            logger.info(f"Unregistered package {key} (repository: {repository_id})")
        return package

    def get_package(self, repository_id: str, key: str) -> Optional[Package]:
        with self._lock:
            return self._packages.get(repository_id, {}).get(key)

    def get_packages_digest(self, repository_id: str) -> Dict[str, str]:
        """Return the digests of the packages registered for a repository.

        Returns:
            Dict[str, str]: Digest of each registered package keyed by ``name@version``
        """
        with self._lock:
            return {
                key: package.digest
                for key, package in self._packages.get(repository_id, {}).items()
            }

    def list_packages(
        self, repository_id: Optional[str] = None, offset: int = 0, limit: int = 100
    ) -> List[Package]:
        """List registered packages, optionally limited to one repository.

        Packages are sorted by name and version for stable pagination.
        """
        with self._lock:
            if repository_id is not None:
                packages = list(self._packages.get(repository_id, {}).values())
            else:
                packages = [p for repo in self._packages.values() for p in repo.values()]
        packages.sort(key=lambda p: (p.name, p.version))
        return packages[offset : offset + limit]
