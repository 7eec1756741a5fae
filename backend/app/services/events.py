"""
Domain event publishing.

Events are fanned out over Redis pub/sub after the owning transaction has
committed. Publishing is best-effort: failures are logged and never reach
the caller, and the circuit breaker stops hammering an unavailable Redis.
"""

import json
import logging
from typing import Any, Dict

import redis.asyncio as redis

from backend.app.core.config import settings
from backend.app.core.reliability import event_circuit_breaker, CircuitOpenError
from backend.app.services.simulation_clock import utcnow

logger = logging.getLogger(__name__)

# Async Redis client shared by the process
redis_client = redis.from_url(
    settings.redis_url,
    decode_responses=settings.redis_decode_responses,
)


async def ping_redis() -> bool:
    """
    Test Redis connection.

    Returns:
        True if connection successful, False otherwise
    """
    try:
        return await redis_client.ping()
    except (redis.RedisError, OSError):
        return False


async def publish_event(event_type: str, payload: Dict[str, Any]) -> bool:
    """
    Publish a domain event.

    Args:
        event_type: Dotted event name, e.g. "payment.reconciled"
        payload: JSON-serialisable body (Decimals and datetimes are stringified)

    Returns:
        True when the event was handed to Redis
    """
    message = json.dumps(
        {"type": event_type, "occurred_at": utcnow().isoformat(), "data": payload},
        default=str,
    )
    try:
        await event_circuit_breaker.call(redis_client.publish, settings.event_channel, message)
        return True
    except CircuitOpenError:
        logger.warning("Event channel circuit open, dropped %s", event_type)
    except (redis.RedisError, OSError) as exc:
        logger.warning("Failed to publish %s: %s", event_type, exc)
    return False
