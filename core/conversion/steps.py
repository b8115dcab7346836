"""Savepoint wrapper for conversion steps that may fail without aborting."""

import logging
from typing import Any, Callable

from clients.postgres_client import PostgresClient
from core.models import SideEffectFailure

logger = logging.getLogger(__name__)


def best_effort(
    postgres: PostgresClient,
    step: str,
    failures: list[SideEffectFailure],
    fn: Callable[..., Any],
    *args: Any
) -> Any:
    """
    Run fn(*args) in a savepoint.

    On failure the savepoint is rolled back, the failure is logged and
    appended to failures under the given step name, and None is returned.
    """
    try:
        with postgres.transaction():
            return fn(*args)
    except Exception as e:
        logger.warning("Conversion step %s failed: %s", step, e, exc_info=True)
        failures.append(SideEffectFailure(step=step, message=str(e)))
        return None
