"""
Health checks - dependency probes for the readiness endpoint.

- liveness: the process answers (no dependency checks)
- readiness: database and Redis reachable, circuit breaker states reported
"""
from typing import Any

from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from triplog.core.circuit_breaker import CircuitBreaker, CircuitState
from triplog.core.logging import get_logger
from triplog.core.redis_client import get_redis
from triplog.db.database import AsyncSessionLocal

logger = get_logger(__name__)

_STATUS_HEALTHY = "healthy"
_STATUS_DEGRADED = "degraded"

_CHECK_OK = "ok"

# No infrastructure details in the public response
_ERROR_DB = "error: db_unavailable"
_ERROR_REDIS = "error: redis_unavailable"


async def _check_db() -> str:
    try:
        async with AsyncSessionLocal() as session:
            await session.execute(text("SELECT 1"))
        return _CHECK_OK
    except (SQLAlchemyError, OSError) as e:
        logger.warning("Database health check failed", extra_data={"error": str(e)})
        return _ERROR_DB


async def _check_redis() -> str:
    try:
        client = await get_redis()
        await client.ping()
        return _CHECK_OK
    except (RedisError, OSError) as e:
        logger.warning("Redis health check failed", extra_data={"error": str(e)})
        return _ERROR_REDIS


async def check_readiness() -> dict[str, Any]:
    """
    Readiness of all dependencies.

    - status: "healthy" when db and redis are ok, otherwise "degraded"
    - db / redis: "ok" or "error: ..."
    - circuit_breakers: service → state; an open breaker does not degrade
      readiness since the bot keeps answering (geocoder falls back to
      coordinates)
    """
    checks = {
        "db": await _check_db(),
        "redis": await _check_redis(),
    }

    all_ok = all(v == _CHECK_OK for v in checks.values())
    overall_status = _STATUS_HEALTHY if all_ok else _STATUS_DEGRADED

    if not all_ok:
        logger.warning("Readiness check degraded", extra_data=checks)

    breakers = CircuitBreaker.snapshot()
    open_breakers = [name for name, state in breakers.items() if state == CircuitState.OPEN.value]
    if open_breakers:
        logger.warning("Circuit breakers open", extra_data={"services": open_breakers})

    return {"status": overall_status, **checks, "circuit_breakers": breakers}
