import json
import signal
import sys
import uuid
from typing import Any

from hubtracker.config import TrackerConfig
from hubtracker.errors import AppError
from hubtracker.models import Repository
from hubtracker.source import TrackerServices
from hubtracker.storage import PackagesStore
from hubtracker.tracker import track_repository

USAGE = "Usage: python -m hubtracker <repository_url> [repository_name]"


def main(argv: list[str]) -> int:
    """Track a repository and print its available packages as NDJSON."""
    if len(argv) not in (2, 3):
        print(USAGE, file=sys.stderr)
        return 2

    url = argv[1]
    name = argv[2] if len(argv) == 3 else url.rstrip("/").rsplit("/", 1)[-1]
    repository = Repository(repository_id=str(uuid.uuid4()), name=name, url=url)

    svc = TrackerServices.from_config(TrackerConfig.from_env())
    signal.signal(signal.SIGINT, lambda *_: svc.stop_event.set())

    try:
        report = track_repository(repository, PackagesStore(), svc)
    except AppError as e:
        print(f"error tracking repository: {e}", file=sys.stderr)
        return 1

    for key in sorted(report.packages_available):
        record: dict[str, Any] = report.packages_available[key].to_dict()
        print(json.dumps(record, default=str))

    for error in svc.ec.flush().get(repository.repository_id, []):
        print(error, file=sys.stderr)
    return 0


def cli() -> None:
    sys.exit(main(sys.argv))


if __name__ == "__main__":
    cli()
