import time
from typing import Callable, Optional
from urllib.parse import urlparse

import requests
from ratelimit import limits, sleep_and_retry

from hubtracker.errors import NETWORK_ERROR, AppError, http_error_from_response

GITHUB_HOSTS = {"github.com", "raw.githubusercontent.com"}
USER_AGENT = "hubtracker"
GITHUB_RATE_LIMIT_PERIOD = 3600  # seconds

# Request errors caused by the url itself, never retried
INVALID_URL_ERRORS = (
    requests.exceptions.InvalidURL,
    requests.exceptions.MissingSchema,
    requests.exceptions.InvalidSchema,
)


def is_github_url(url: str) -> bool:
    return urlparse(url).netloc.lower() in GITHUB_HOSTS


def rate_limited(
    func: Callable[..., requests.Response],
    calls: int,
    period: int = GITHUB_RATE_LIMIT_PERIOD,
) -> Callable[..., requests.Response]:
    """Wrap ``func`` so it runs at most ``calls`` times every ``period`` seconds.

    Callers going over the limit sleep until the current period ends. The
    limit is shared by every thread using the returned callable.
    """
    return sleep_and_retry(limits(calls=calls, period=period)(func))


class HTTPClient:
    """A session-backed HTTP client used to reach remote chart repositories.

    Failed requests are retried with exponential backoff on connection
    errors, 5xx responses and 429 responses (honouring ``Retry-After``).

    Attributes:
        timeout (float): Timeout in seconds applied to every request.
        retries (int): Number of retry attempts for failed requests.
        backoff (float): The backoff multiplier for retry delays.
    """

    def __init__(
        self,
        timeout: float = 60.0,
        retries: int = 2,
        backoff: float = 2.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.timeout = timeout
        self.retries = retries
        self.backoff = backoff
        self.session = session or requests.Session()
        self.session.headers.setdefault("User-Agent", USER_AGENT)

    def get(
        self,
        url: str,
        headers: Optional[dict[str, str]] = None,
        auth: Optional[tuple[str, str]] = None,
    ) -> requests.Response:
        """Perform a GET request returning the last response received.

        The response is returned whatever its status code once retries are
        exhausted, so callers decide how to treat non-200 statuses.

        Raises:
            AppError: If the request could not be performed at all.
        """
        last_exc: Optional[requests.exceptions.RequestException] = None
        for attempt in range(self.retries + 1):
            try:
                response = self.session.get(
                    url, headers=headers or {}, auth=auth, timeout=self.timeout
                )
            except INVALID_URL_ERRORS as e:
                raise AppError(
                    code=NETWORK_ERROR,
                    message=f"invalid url: {e}",
                    cause=e,
                    context={"url": url},
                ) from e
            except requests.exceptions.RequestException as e:
                last_exc = e
                if attempt < self.retries:
                    time.sleep(self.backoff * 2**attempt)
                    continue
                break

            if response.status_code >= 500 and attempt < self.retries:
                time.sleep(self.backoff * 2**attempt)
                continue
            if response.status_code == 429 and attempt < self.retries:
                wait_time = response.headers.get("Retry-After", self.backoff * 2**attempt)
                try:
                    time.sleep(float(wait_time))
                except ValueError:
                    time.sleep(self.backoff * 2**attempt)
                continue
            return response

        raise AppError(
            code=NETWORK_ERROR,
            message=f"error performing request: {last_exc}",
            cause=last_exc,
            context={"url": url},
        )

    def get_ok(
        self,
        url: str,
        headers: Optional[dict[str, str]] = None,
        auth: Optional[tuple[str, str]] = None,
    ) -> requests.Response:
        """Like ``get`` but raises an AppError for non-200 responses."""
        response = self.get(url, headers=headers, auth=auth)
        if response.status_code != 200:
            raise http_error_from_response(
                url=url,
                status=response.status_code,
                body=_safe_text(response),
                headers=dict(response.headers),
            )
        return response


def _safe_text(response: requests.Response) -> Optional[str]:
    ctype = response.headers.get("Content-Type", "")
    if ctype.startswith("text/") or "json" in ctype or "yaml" in ctype:
        return response.text
    return None


def basic_auth(username: str, password: str) -> Optional[tuple[str, str]]:
    if username or password:
        return (username, password)
    return None

