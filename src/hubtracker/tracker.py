"""Tracking of a repository against the packages already registered.

A tracking run gets the packages available in the repository and brings
the registered state up to date: new (or changed) package versions are
registered and those no longer published are unregistered.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Optional

from hubtracker.log import logger
from hubtracker.models import Package, Repository
from hubtracker.source import IndexLoader, TagsGetter, TrackerServices, TrackerSource, TrackerSourceInput
from hubtracker.storage import PackagesStore


@dataclass
class TrackerReport:
    """Outcome of tracking a repository.

    Attributes:
        repository_id: Id of the repository tracked
        packages_available: Packages available in the repository, keyed by
            ``name@version``
        registered: Keys of the packages registered in this run
        unregistered: Keys of the packages unregistered in this run
        errors: Errors found while processing the repository
        duration_ms: Time taken by the run in milliseconds
    """

    repository_id: str
    packages_available: dict[str, Package] = field(default_factory=dict)
    registered: list[str] = field(default_factory=list)
    unregistered: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    duration_ms: int = 0


def track_repository(
    repository: Repository,
    store: PackagesStore,
    svc: TrackerServices,
    index_loader: Optional[IndexLoader] = None,
    tags_getter: Optional[TagsGetter] = None,
) -> TrackerReport:
    """Track the repository provided, updating the packages registered in store.

    Raises:
        AppError: If the repository could not be processed at all (index
            not available, unsupported scheme, cancellation...)
    """
    t0 = time.perf_counter()
    logger.info(f"Tracking repository {repository.name or repository.url}")
    report = TrackerReport(repository_id=repository.repository_id)

    registered = store.get_packages_digest(repository.repository_id)
    source = TrackerSource(
        TrackerSourceInput(repository=repository, packages_registered=registered, svc=svc),
        index_loader=index_loader,
        tags_getter=tags_getter,
    )
    available = source.get_packages_available()
    report.packages_available = available

    # Register new packages and those whose content has changed
    for key in sorted(available):
        package = available[key]
        digest = registered.get(key)
        if digest is None or digest != package.digest or svc.cfg.bypass_digest_check:
            store.register(package)
            report.registered.append(key)

    # Unregister packages no longer available. Versions that failed to be
    # prepared this time are kept until the problem is fixed.
    for key in sorted(registered):
        if key in available or key in source.failed_keys:
            continue
        store.unregister(repository.repository_id, key)
        report.unregistered.append(key)

    report.errors = svc.ec.get(repository.repository_id)
    report.duration_ms = int((time.perf_counter() - t0) * 1000)
    logger.info(
        f"Repository {repository.name or repository.url} tracked: "
        f"{len(available)} available, {len(report.registered)} registered, "
        f"{len(report.unregistered)} unregistered, {len(report.errors)} errors "
        f"({report.duration_ms}ms)"
    )
    return report
