"""Collection of the errors found while tracking repositories.

Errors are not fatal for a tracking run: a chart version that cannot be
processed is skipped, and the problem is recorded here against its
repository so it can be reported to the repository owner afterwards.
"""

from __future__ import annotations

from collections import defaultdict
from threading import Lock

from hubtracker.log import logger


class ErrorsCollector:
    """Thread-safe collector of error messages grouped by repository id."""

    def __init__(self) -> None:
        self._errors: dict[str, list[str]] = defaultdict(list)
        self._lock = Lock()

    def append(self, repository_id: str, message: str) -> None:
        with self._lock:
            self._errors[repository_id].append(message)

    def get(self, repository_id: str) -> list[str]:
        """Return a copy of the errors collected for the repository provided."""
        with self._lock:
            return list(self._errors.get(repository_id, []))

    def repositories(self) -> list[str]:
        with self._lock:
            return [r for r, errs in self._errors.items() if errs]

    def flush(self) -> dict[str, list[str]]:
        """Log and clear the errors collected, returning them."""
        with self._lock:
            errors = {r: errs for r, errs in self._errors.items() if errs}
            self._errors.clear()
        for repository_id, errs in errors.items():
            logger.warning(
                f"{len(errs)} errors found tracking repository {repository_id}:\n"
                + "\n".join(errs)
            )
        return errors
