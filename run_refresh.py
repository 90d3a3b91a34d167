"""Refresh every subscribed feed once; meant to be run by cron or a scheduler."""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path

# Ensure the src directory is on the Python path so the feedreader package can be imported
SRC_PATH = Path(__file__).resolve().parent / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from feedreader.config import AppConfig  # noqa: E402  (import after path setup)
from feedreader.errors import StorageError  # noqa: E402
from feedreader.services import build_services  # noqa: E402


def main(argv: list[str] | None = None) -> int:
    """Load the configuration and refresh all feeds, printing per-feed results."""

    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")

    args = sys.argv[1:] if argv is None else argv
    config_path = args[0] if args else None

    try:
        config = AppConfig.load(config_path)
    except (FileNotFoundError, ValueError) as exc:
        logging.error("Could not load configuration: %s", exc)
        return 1

    _, ingestor, _ = build_services(config)

    try:
        results = ingestor.refresh_all()
    except StorageError as exc:
        logging.error("Refresh aborted: %s", exc)
        return 1

    for result in results:
        if result.ok:
            logging.info("%s: %d new articles", result.name, result.new_articles)
        else:
            logging.error("%s: %s", result.name, result.error)

    print(json.dumps([result.to_json() for result in results], indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
