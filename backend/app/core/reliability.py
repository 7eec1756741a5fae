"""
Reliability utilities.

Includes the transaction runner with a single transparent retry on
concurrency conflicts, and a circuit breaker for best-effort side channels.
"""

import time
import logging
from typing import Awaitable, Callable, Any, TypeVar

from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.config import settings
from backend.app.core.exceptions import ConcurrencyConflictError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# SQLSTATE codes PostgreSQL uses for serialization failures and deadlocks
_RETRYABLE_SQLSTATES = {"40001", "40P01"}


def _is_serialization_failure(exc: DBAPIError) -> bool:
    orig = getattr(exc, "orig", None)
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate in _RETRYABLE_SQLSTATES:
        return True
    # SQLite reports a lost write-lock race as a locked database
    return "database is locked" in str(orig)


async def run_in_transaction(
    db: AsyncSession,
    operation: Callable[[AsyncSession], Awaitable[T]],
    retries: int = None,
    label: str = "transaction",
) -> T:
    """
    Run ``operation`` as one atomic unit on ``db`` and commit it.

    Any exception rolls the session back so no partial effect survives.
    A ConcurrencyConflictError (or a database serialization failure) is
    retried ``retries`` times with a clean session state before surfacing.
    """
    retries = settings.conflict_retries if retries is None else retries
    attempt = 0
    while True:
        try:
            result = await operation(db)
            await db.commit()
            return result
        except ConcurrencyConflictError:
            await db.rollback()
            if attempt >= retries:
                raise
            logger.warning("Concurrency conflict in %s, retrying (attempt %d)", label, attempt + 1)
        except DBAPIError as exc:
            await db.rollback()
            if not _is_serialization_failure(exc):
                raise
            if attempt >= retries:
                raise ConcurrencyConflictError(entity=label, entity_id=None) from exc
            logger.warning("Serialization failure in %s, retrying (attempt %d)", label, attempt + 1)
        except BaseException:
            await db.rollback()
            raise
        attempt += 1


class CircuitOpenError(Exception):
    pass


class CircuitBreaker:
    """
    Simple Circuit Breaker implementation.
    If 'failure_threshold' failures occur within 'reset_timeout',
    the circuit opens and rejects calls for 'reset_timeout' seconds.
    """
    def __init__(self, failure_threshold: int = 5, reset_timeout: int = 60):
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self.failures = 0
        self.last_failure_time = 0
        self.state = "CLOSED"  # CLOSED, OPEN, HALF_OPEN

    async def call(self, func: Callable, *args, **kwargs) -> Any:
        if self.state == "OPEN":
            if time.time() - self.last_failure_time > self.reset_timeout:
                self.state = "HALF_OPEN"
            else:
                raise CircuitOpenError("Circuit is OPEN")

        try:
            result = await func(*args, **kwargs)
            if self.state == "HALF_OPEN":
                self.reset_state()
            return result
        except Exception:
            self.record_failure()
            raise

    def record_failure(self):
        self.failures += 1
        self.last_failure_time = time.time()
        if self.failures >= self.failure_threshold:
            self.state = "OPEN"

    def reset_state(self):
        self.failures = 0
        self.state = "CLOSED"


# Event fan-out must never slow down the ledger path
event_circuit_breaker = CircuitBreaker(failure_threshold=3, reset_timeout=30)
