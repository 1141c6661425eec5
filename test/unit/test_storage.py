"""Unit tests for the packages store.

Tests cover registering and unregistering package versions, digests
lookups used by tracker runs, and listing with pagination.
"""

from __future__ import annotations

import threading

import pytest

from hubtracker.models import Package, Repository
from hubtracker.storage import PackagesStore


def make_package(repository: Repository, name: str = "pkg1", version: str = "1.0.0", digest: str = "d1") -> Package:
    return Package(name=name, version=version, digest=digest, repository=repository)


class TestPackagesStore:
    def test_register_and_get(self, store: PackagesStore, http_repository: Repository) -> None:
        p = make_package(http_repository)

        assert store.register(p) is p
        assert store.get_package(http_repository.repository_id, "pkg1@1.0.0") is p
        assert store.get_package(http_repository.repository_id, "pkg1@2.0.0") is None
        assert store.get_package("other", "pkg1@1.0.0") is None

    def test_register_again_replaces(self, store: PackagesStore, http_repository: Repository) -> None:
        store.register(make_package(http_repository, digest="d1"))
        store.register(make_package(http_repository, digest="d2"))

        assert store.get_packages_digest(http_repository.repository_id) == {"pkg1@1.0.0": "d2"}

    def test_unregister(self, store: PackagesStore, http_repository: Repository) -> None:
        p = store.register(make_package(http_repository))

        assert store.unregister(http_repository.repository_id, "pkg1@1.0.0") is p
        assert store.unregister(http_repository.repository_id, "pkg1@1.0.0") is None
        assert store.get_packages_digest(http_repository.repository_id) == {}

    def test_packages_digest_per_repository(
        self, store: PackagesStore, http_repository: Repository, oci_repository: Repository
    ) -> None:
        store.register(make_package(http_repository, digest="d1"))
        store.register(make_package(oci_repository, name="app", digest="d2"))

        assert store.get_packages_digest(http_repository.repository_id) == {"pkg1@1.0.0": "d1"}
        assert store.get_packages_digest(oci_repository.repository_id) == {"app@1.0.0": "d2"}
        assert store.get_packages_digest("unknown") == {}

    def test_list_packages(
        self, store: PackagesStore, http_repository: Repository, oci_repository: Repository
    ) -> None:
        store.register(make_package(http_repository, name="pkg2"))
        store.register(make_package(http_repository, name="pkg1", version="2.0.0"))
        store.register(make_package(http_repository, name="pkg1", version="1.0.0"))
        store.register(make_package(oci_repository, name="app"))

        all_names = [(p.name, p.version) for p in store.list_packages()]
        assert all_names == [
            ("app", "1.0.0"),
            ("pkg1", "1.0.0"),
            ("pkg1", "2.0.0"),
            ("pkg2", "1.0.0"),
        ]
        repo_names = [p.name for p in store.list_packages(http_repository.repository_id)]
        assert repo_names == ["pkg1", "pkg1", "pkg2"]
        page = store.list_packages(offset=1, limit=2)
        assert [(p.name, p.version) for p in page] == [("pkg1", "1.0.0"), ("pkg1", "2.0.0")]

    def test_reset(self, store: PackagesStore, http_repository: Repository) -> None:
        store.register(make_package(http_repository))
        store.reset()
        assert store.list_packages() == []

    @pytest.mark.parametrize("workers", [8])
    def test_concurrent_register(
        self, store: PackagesStore, http_repository: Repository, workers: int
    ) -> None:
        def register(i: int) -> None:
            for j in range(50):
                store.register(make_package(http_repository, version=f"{i}.{j}.0"))

        threads = [threading.Thread(target=register, args=(i,)) for i in range(workers)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(store.get_packages_digest(http_repository.repository_id)) == workers * 50
