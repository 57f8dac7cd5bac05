"""
Wait for the database before the service starts.

Run as ``resilientdb-pre-start`` (or ``python -m resilientdb.backend_pre_start``)
from a container entrypoint. Exits non-zero when the database stays
unreachable; SIGINT/SIGTERM abort the wait.
"""

import logging
import sys

from resilientdb.core.db import Database, build_database, install_signal_handlers

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def init(database: Database) -> bool:
    if not database.supported:
        logger.info("Database not available in this runtime, nothing to wait for")
        return True
    return database.manager.connect_with_retry()


def main() -> None:
    logger.info("Initializing service")
    database = build_database()
    install_signal_handlers(database)
    try:
        ok = init(database)
    finally:
        database.shutdown()
    if not ok:
        logger.error("Database is not reachable, giving up")
        sys.exit(1)
    logger.info("Service finished initializing")


if __name__ == "__main__":
    main()
