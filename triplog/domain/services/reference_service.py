"""
Reference Service - vehicles, stores and the daily report window.

Read paths are cached in Redis for ``REFERENCE_CACHE_TTL_SECONDS``. When
Redis is unreachable the lists are read straight from the database. Writes
go to the database and drop the matching cache key.
"""
import json
from dataclasses import asdict, dataclass
from typing import Any, Awaitable, Callable

from redis.exceptions import RedisError
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from triplog.core.config import settings
from triplog.core.exceptions import AppException, ErrorCode, ValidationException
from triplog.core.logging import get_logger
from triplog.core.redis_client import get_redis
from triplog.db.models.reference import ReportWindowSetting, Store, Vehicle
from triplog.domain.services.record_service import ReportWindow

logger = get_logger(__name__)

_CACHE_PREFIX = "triplog:reference"
VEHICLES_KEY = f"{_CACHE_PREFIX}:vehicles"
STORES_KEY = f"{_CACHE_PREFIX}:stores"
REPORT_WINDOW_KEY = f"{_CACHE_PREFIX}:report_window"


@dataclass(frozen=True)
class ReferenceItem:
    """A choice button: ``label`` is shown and sent back, ``value`` is informational"""

    label: str
    value: str


class ReferenceService:
    """Read-mostly reference lists used by the prompts and the report"""

    def __init__(self, db: AsyncSession, cache_ttl: int | None = None):
        self.db = db
        self.cache_ttl = cache_ttl if cache_ttl is not None else settings.REFERENCE_CACHE_TTL_SECONDS

    # ---- cache helpers -----------------------------------------------------

    async def _cached(self, key: str, loader: Callable[[], Awaitable[Any]]) -> Any:
        """JSON value from Redis, or ``loader()`` stored back with the TTL"""
        try:
            redis = await get_redis()
            raw = await redis.get(key)
            if raw is not None:
                return json.loads(raw)
        except (RedisError, OSError) as e:
            logger.warning("Reference cache unavailable, reading database", extra_data={
                "key": key, "error": str(e),
            })
            return await loader()

        value = await loader()
        try:
            await redis.setex(key, self.cache_ttl, json.dumps(value, ensure_ascii=False))
        except (RedisError, OSError) as e:
            logger.warning("Failed to populate reference cache", extra_data={
                "key": key, "error": str(e),
            })
        return value

    async def invalidate(self, *keys: str) -> None:
        try:
            redis = await get_redis()
            await redis.delete(*keys)
        except (RedisError, OSError) as e:
            # Entries expire with the TTL anyway
            logger.warning("Failed to invalidate reference cache", extra_data={
                "keys": list(keys), "error": str(e),
            })

    # ---- reads -------------------------------------------------------------

    async def _load_vehicles(self) -> list[dict[str, str]]:
        result = await self.db.execute(select(Vehicle).order_by(Vehicle.sort_order, Vehicle.id))
        return [
            asdict(ReferenceItem(label=v.vehicle_number, value=v.vehicle_number))
            for v in result.scalars().all()
        ]

    async def _load_stores(self) -> list[dict[str, str]]:
        result = await self.db.execute(select(Store).order_by(Store.sort_order, Store.id))
        return [
            asdict(ReferenceItem(label=s.store_name, value=s.address or s.store_name))
            for s in result.scalars().all()
        ]

    async def _load_report_window(self) -> dict[str, int]:
        result = await self.db.execute(select(ReportWindowSetting).order_by(ReportWindowSetting.id).limit(1))
        row = result.scalar_one_or_none()
        if row is None:
            return {
                "start_hour": settings.DEFAULT_REPORT_START_HOUR,
                "end_hour": settings.DEFAULT_REPORT_END_HOUR,
            }
        return {"start_hour": row.start_hour, "end_hour": row.end_hour}

    async def list_vehicles(self) -> list[ReferenceItem]:
        return [ReferenceItem(**item) for item in await self._cached(VEHICLES_KEY, self._load_vehicles)]

    async def list_stores(self) -> list[ReferenceItem]:
        return [ReferenceItem(**item) for item in await self._cached(STORES_KEY, self._load_stores)]

    async def get_report_window(self) -> ReportWindow:
        return ReportWindow(**await self._cached(REPORT_WINDOW_KEY, self._load_report_window))

    # ---- writes (admin API) ------------------------------------------------

    async def add_vehicle(self, vehicle_number: str, description: str | None = None, sort_order: int = 0) -> Vehicle:
        vehicle = Vehicle(vehicle_number=vehicle_number, description=description, sort_order=sort_order)
        await self._insert(vehicle, "vehicle", vehicle_number)
        await self.invalidate(VEHICLES_KEY)
        return vehicle

    async def add_store(self, store_name: str, address: str | None = None, sort_order: int = 0) -> Store:
        store = Store(store_name=store_name, address=address, sort_order=sort_order)
        await self._insert(store, "store", store_name)
        await self.invalidate(STORES_KEY)
        return store

    async def set_report_window(self, start_hour: int, end_hour: int) -> ReportWindow:
        if not (0 <= start_hour <= 23):
            raise ValidationException("start_hour must be between 0 and 23", field="start_hour")
        if not (0 <= end_hour <= 47) or end_hour == start_hour:
            raise ValidationException(
                "end_hour must be between 0 and 47 and differ from start_hour", field="end_hour"
            )

        result = await self.db.execute(select(ReportWindowSetting).order_by(ReportWindowSetting.id).limit(1))
        row = result.scalar_one_or_none()
        if row is None:
            row = ReportWindowSetting(start_hour=start_hour, end_hour=end_hour)
            self.db.add(row)
        else:
            row.start_hour = start_hour
            row.end_hour = end_hour
        await self.db.commit()
        await self.invalidate(REPORT_WINDOW_KEY)

        logger.info("Report window updated", extra_data={"start_hour": start_hour, "end_hour": end_hour})
        return ReportWindow(start_hour=start_hour, end_hour=end_hour)

    async def _insert(self, row: Any, resource: str, identifier: str) -> None:
        self.db.add(row)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise AppException(
                message=f"{resource} already exists: {identifier}",
                error_code=ErrorCode.ALREADY_EXISTS,
                status_code=409,
                details={"resource": resource, "identifier": identifier},
            )
        await self.db.refresh(row)
        logger.info(f"Reference {resource} added", extra_data={"identifier": identifier})
