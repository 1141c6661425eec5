"""Tracker source for Helm repositories.

The tracker source returns the packages available in a Helm repository,
either a classic one (HTTP server with an index.yaml file) or an OCI
registry. Chart versions are processed concurrently. Versions already
registered with the same digest are returned in their minimal form, and the
rest are enriched with the content of their chart archive.
"""

from __future__ import annotations

import posixpath
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Callable, Optional, Protocol
from urllib.parse import urlparse, urlunparse

import requests

from hubtracker.adapters.client import HTTPClient, basic_auth, is_github_url, rate_limited
from hubtracker.adapters.image_store import ImageStore
from hubtracker.adapters.index_loader import ChartVersion, HelmIndexLoader, IndexFile
from hubtracker.adapters.oci import OCITagsGetter, pull_chart_content
from hubtracker.chart import Chart, ChartMetadata, load_archive
from hubtracker.config import TrackerConfig
from hubtracker.enrich import enrich_package_from_annotations, enrich_package_from_chart
from hubtracker.errors import (
    CANCELLED,
    INTERNAL_ERROR,
    INVALID_METADATA,
    SCHEMA_ERROR,
    AppError,
    http_error_from_response,
    unsupported_scheme_error,
)
from hubtracker.errors_collector import ErrorsCollector
from hubtracker.log import logger
from hubtracker.models import Package, Repository, build_key
from hubtracker.versions import normalize_version

HTTP_SCHEMES = ("http", "https")
OCI_SCHEME = "oci"
PROVENANCE_SIGNATURE = b"PGP SIGNATURE"


class IndexLoader(Protocol):
    def load_index(self, repository: Repository) -> tuple[IndexFile, str]: ...


class TagsGetter(Protocol):
    def tags(self, repository: Repository) -> list[str]: ...


@dataclass
class TrackerServices:
    """Services shared by the tracker sources of a tracking run.

    Attributes:
        cfg: Tracker configuration
        hc: HTTP client used for every HTTP request
        image_store: Store where packages logos are saved
        ec: Collector of the errors found while tracking
        github_get: Rate limited GET used for requests sent to GitHub
        stop_event: When set, in-progress tracking is cancelled
    """

    cfg: TrackerConfig = field(default_factory=TrackerConfig)
    hc: HTTPClient = field(default_factory=HTTPClient)
    image_store: Optional[ImageStore] = None
    ec: ErrorsCollector = field(default_factory=ErrorsCollector)
    github_get: Optional[Callable[..., requests.Response]] = None
    stop_event: threading.Event = field(default_factory=threading.Event)

    @classmethod
    def from_config(cls, cfg: TrackerConfig) -> "TrackerServices":
        hc = HTTPClient(timeout=cfg.http_timeout)
        github_get = None
        if cfg.github_rate_limit > 0:
            github_get = rate_limited(hc.get, cfg.github_rate_limit)
        return cls(cfg=cfg, hc=hc, image_store=ImageStore(hc), github_get=github_get)


@dataclass
class TrackerSourceInput:
    """Input of a tracker source.

    Attributes:
        repository: Repository to track
        packages_registered: Digests of the package versions already
            registered, keyed by ``name@version``
        svc: Shared services
    """

    repository: Repository
    packages_registered: dict[str, str] = field(default_factory=dict)
    svc: TrackerServices = field(default_factory=TrackerServices)


@dataclass
class LoadChartArchiveOptions:
    """Options used to load a chart archive from its remote location."""

    hc: Optional[HTTPClient] = None
    username: str = ""
    password: str = ""
    github_token: Optional[str] = None
    github_get: Optional[Callable[..., requests.Response]] = None


def load_chart_archive(url: str, opts: Optional[LoadChartArchiveOptions] = None) -> Chart:
    """Load a chart from the remote archive located at the url provided.

    Raises:
        AppError: If the archive could not be retrieved or is not a valid chart
    """
    opts = opts or LoadChartArchiveOptions()
    scheme = urlparse(url).scheme

    if scheme in HTTP_SCHEMES:
        headers = {"Accept-Encoding": "*"}
        get = (opts.hc or HTTPClient()).get
        if is_github_url(url):
            if opts.github_token:
                headers["Authorization"] = f"token {opts.github_token}"
            if opts.github_get is not None:
                get = opts.github_get
        response = get(url, headers=headers, auth=basic_auth(opts.username, opts.password))
        if response.status_code != 200:
            err = http_error_from_response(url=url, status=response.status_code)
            err.message = f"unexpected status code received: {response.status_code}"
            raise err
        data = response.content
    elif scheme == OCI_SCHEME:
        data = pull_chart_content(url, opts.username, opts.password)
    else:
        raise unsupported_scheme_error(url)

    return load_archive(data)


def resolve_chart_url(chart_url: str, repository_url: str) -> str:
    """Make a chart url absolute using the repository url when needed.

    Raises:
        AppError: If the chart url cannot be parsed
    """
    try:
        u = urlparse(chart_url)
    except ValueError as e:
        raise AppError(
            INVALID_METADATA, f"invalid chart url {chart_url}: {e}", cause=e
        ) from e
    if u.scheme and u.netloc:
        return chart_url

    repo = urlparse(repository_url)
    path = u.path
    if not path.startswith("/"):
        path = posixpath.normpath(posixpath.join(repo.path or "/", path))
        if not path.startswith("/"):
            path = "/" + path
    return urlunparse(u._replace(scheme=repo.scheme, netloc=repo.netloc, path=path))


class TrackerSource:
    """Tracker source implementation for Helm repositories."""

    def __init__(
        self,
        i: TrackerSourceInput,
        index_loader: Optional[IndexLoader] = None,
        tags_getter: Optional[TagsGetter] = None,
    ) -> None:
        self.i = i
        self.il = index_loader or HelmIndexLoader(i.svc.hc)
        self.tg = tags_getter or OCITagsGetter()
        # Keys of the chart versions that could not be prepared in the last run
        self.failed_keys: set[str] = set()

    @property
    def repository(self) -> Repository:
        return self.i.repository

    def get_packages_available(self) -> dict[str, Package]:
        """Return the packages available in the repository, keyed by ``name@version``.

        Chart versions that cannot be prepared are skipped; the problem is
        logged and recorded in the errors collector.

        Raises:
            AppError: If the repository charts cannot be listed, or with
                CANCELLED code if the stop event is set while processing
        """
        packages_available: dict[str, Package] = {}
        lock = threading.Lock()
        concurrency = max(1, self.i.svc.cfg.concurrency)
        limiter = threading.Semaphore(concurrency)
        stop_event = self.i.svc.stop_event

        self.failed_keys = set()
        charts = self.get_charts()

        def process(chart_version: ChartVersion) -> None:
            try:
                p = self.prepare_package(chart_version)
            except Exception as e:
                self.warn(chart_version.metadata, f"error preparing package: {_message(e)}")
                with lock:
                    self.failed_keys.add(_chart_version_key(chart_version))
                return
            finally:
                limiter.release()
            with lock:
                packages_available[build_key(p)] = p

        futures: list[Future] = []
        with ThreadPoolExecutor(max_workers=concurrency, thread_name_prefix="tracker") as executor:
            for chart_versions in charts.values():
                for chart_version in chart_versions:
                    # Return ASAP if tracking has been cancelled
                    if stop_event.is_set():
                        wait(futures)
                        raise AppError(
                            CANCELLED,
                            "tracking cancelled",
                            context={"repository": self.repository.name},
                        )
                    limiter.acquire()
                    futures.append(executor.submit(process, chart_version))
            wait(futures)

        return packages_available

    def get_charts(self) -> dict[str, list[ChartVersion]]:
        """Return the charts versions available in the repository, keyed by chart name.

        Raises:
            AppError: If the index or tags could not be retrieved, or if the
                repository url scheme is not supported
        """
        charts: dict[str, list[ChartVersion]] = {}
        url = self.repository.url
        scheme = urlparse(url).scheme

        if scheme in HTTP_SCHEMES:
            try:
                index, _ = self.il.load_index(self.repository)
            except AppError as e:
                raise _wrap(e, "error loading repository index file") from e
            for name, chart_versions in index.entries.items():
                charts.setdefault(name, []).extend(chart_versions)
        elif scheme == OCI_SCHEME:
            try:
                tags = self.tg.tags(self.repository)
            except AppError as e:
                raise _wrap(e, "error getting repository available versions") from e
            name = posixpath.basename(url.rstrip("/"))
            for tag in tags:
                # OCI tags cannot hold "+", Helm replaces it with "_" when pushing
                version = tag.replace("_", "+")
                charts.setdefault(name, []).append(
                    ChartVersion(
                        metadata=ChartMetadata(name=name, version=version),
                        urls=[f"{url}:{tag}"],
                    )
                )
        else:
            raise unsupported_scheme_error(url)

        return charts

    def prepare_package(self, chart_version: ChartVersion) -> Package:
        """Prepare a package version from the chart version provided.

        Raises:
            AppError: If the chart version is not valid or its chart archive
                could not be loaded or processed
        """
        md = chart_version.metadata
        try:
            version = normalize_version(md.version)
        except AppError as e:
            raise _wrap(e, "invalid package version") from e

        if not chart_version.urls:
            raise AppError(INVALID_METADATA, "chart version does not contain any url")
        chart_url = resolve_chart_url(chart_version.urls[0], self.repository.url)

        p = Package(
            name=md.name,
            version=version,
            digest=chart_version.digest,
            content_url=chart_url,
            repository=self.repository,
        )
        if chart_version.created is not None:
            p.ts = int(chart_version.created.timestamp())

        # Enrich the package with the content of the chart archive only when
        # the version is not registered yet or its digest has changed.
        bypass_digest_check = self.i.svc.cfg.bypass_digest_check
        registered_digest = self.i.packages_registered.get(build_key(p))
        if (
            registered_digest is not None
            and registered_digest == chart_version.digest
            and not bypass_digest_check
        ):
            return p

        svc = self.i.svc
        try:
            chart = load_chart_archive(
                chart_url,
                LoadChartArchiveOptions(
                    hc=svc.hc,
                    username=self.repository.auth_user,
                    password=self.repository.auth_pass,
                    github_token=svc.cfg.github_token,
                    github_get=svc.github_get,
                ),
            )
        except AppError as e:
            raise _wrap(e, f"error loading chart ({chart_url})") from e
        md = chart.metadata

        try:
            chart.validate()
        except AppError as e:
            raise _wrap(e, "invalid metadata") from e

        # Logo
        if md.icon and svc.image_store is not None:
            try:
                p.logo_image_id = svc.image_store.download_and_save_image(md.icon)
                p.logo_url = md.icon
            except AppError as e:
                self.warn(md, f"error getting logo image {md.icon}: {e.message}")

        # Signature (provenance file)
        if urlparse(chart_url).scheme in HTTP_SCHEMES:
            try:
                p.signed = self.chart_has_provenance_file(chart_url)
            except AppError as e:
                self.warn(md, f"error checking provenance file: {e.message}")

        enrich_package_from_chart(p, chart, svc.cfg.helm_bin)
        try:
            enrich_package_from_annotations(p, md.annotations)
        except AppError as e:
            raise _wrap(e, "error enriching package from annotations") from e

        return p

    def chart_has_provenance_file(self, chart_url: str) -> bool:
        """Check if the chart version at ``chart_url`` has a provenance file.

        Raises:
            AppError: If the request fails or the provenance file is not valid
        """
        response = self.i.svc.hc.get(
            chart_url + ".prov",
            auth=basic_auth(self.repository.auth_user, self.repository.auth_pass),
        )
        if response.status_code != 200:
            return False
        if PROVENANCE_SIGNATURE not in response.content:
            raise AppError(SCHEMA_ERROR, "invalid provenance file", context={"url": chart_url})
        return True

    def warn(self, md: ChartMetadata, message: str) -> None:
        """Log a warning about a chart version and record it in the errors collector.

        Errors of deprecated charts are only logged.
        """
        message = f"{message} (package: {md.name} version: {md.version})"
        logger.warning(message)
        if not md.deprecated:
            self.i.svc.ec.append(self.repository.repository_id, message)


def _message(e: BaseException) -> str:
    if isinstance(e, AppError):
        return e.message
    return str(e) or type(e).__name__


def _wrap(e: AppError, prefix: str) -> AppError:
    return AppError(
        code=e.code or INTERNAL_ERROR,
        message=f"{prefix}: {e.message}",
        cause=e,
        context=e.context,
    )


def _chart_version_key(chart_version: ChartVersion) -> str:
    md = chart_version.metadata
    try:
        version = normalize_version(md.version)
    except AppError:
        version = md.version
    return f"{md.name}@{version}"
