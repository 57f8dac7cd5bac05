"""
Health-check helpers for liveness and readiness probes.

Liveness:  is the process alive and not deadlocked?  (cheap, no I/O)
Readiness: can it serve traffic?  (database connected and healthy)

Readiness reads the shared health record; the health monitor keeps it fresh,
so the probe itself never touches the database.
"""

from resilientdb.core.db import Database


def liveness_check() -> tuple[bool, list[str]]:
    """
    Lightweight liveness probe, just confirms the Python process is responsive.
    Return format matches readiness_check for consistency.
    """
    return (True, [])


def readiness_check(database: Database) -> tuple[bool, list[str]]:
    """Returns (ok, list of failure messages)."""
    failures: list[str] = []
    if not database.supported:
        failures.append("database: not available in this runtime")
    elif not database.get_health_status().is_healthy:
        failures.append("database")
    return (len(failures) == 0, failures)
