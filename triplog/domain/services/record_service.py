"""
Record Service - append finalized trips and query them for the daily report
"""
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from triplog.core.exceptions import PersistenceError, ValidationException
from triplog.core.logging import get_logger, mask_user_id
from triplog.core.timeutils import DATE_FORMAT
from triplog.core.validation import parse_datetime
from triplog.db.models.trip_record import TripRecord
from triplog.state_machine.states import DraftField

logger = get_logger(__name__)


@dataclass(frozen=True)
class ReportWindow:
    """
    Hours relative to the report date.

    ``end_hour`` may exceed 23 (28 = 04:00 the next day); an ``end_hour``
    lower than ``start_hour`` also ends on the next day.
    """

    start_hour: int = 19
    end_hour: int = 28

    def bounds(self, date: str) -> tuple[datetime, datetime]:
        base = datetime.strptime(date, DATE_FORMAT)
        start = base + timedelta(hours=self.start_hour)
        end = base + timedelta(hours=self.end_hour)
        if self.end_hour < self.start_hour:
            end += timedelta(days=1)
        return start, end


class RecordService:
    """Trip records (append-only)"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def append(self, user_id: str, draft: dict[str, str]) -> TripRecord:
        """Insert a finalized draft; flushed, committed by the caller"""
        record = TripRecord(
            user_id=user_id,
            departure_time=draft.get(DraftField.DEPARTURE_TIME.value, ""),
            departure_point=draft.get(DraftField.DEPARTURE_POINT.value) or None,
            store_name=draft[DraftField.STORE_NAME.value],
            via_point=draft.get(DraftField.VIA_POINT.value) or None,
            arrival_time=draft[DraftField.ARRIVAL_TIME.value],
            destination=draft[DraftField.DESTINATION.value],
            distance=draft[DraftField.DISTANCE.value],
            amount=draft[DraftField.AMOUNT.value],
            vehicle_number=draft[DraftField.VEHICLE_NUMBER.value],
            note=draft.get(DraftField.NOTE.value) or None,
        )
        try:
            self.db.add(record)
            await self.db.flush()
        except SQLAlchemyError as e:
            logger.error(
                "Failed to append trip record",
                extra_data={"user_id": mask_user_id(user_id), "error": str(e)},
            )
            raise PersistenceError("append_record", str(e)) from e

        logger.info(
            "Trip record appended",
            extra_data={
                "user_id": mask_user_id(user_id),
                "sequence_no": record.sequence_no,
                "vehicle_number": record.vehicle_number,
            },
        )
        return record

    async def search(self, date: str, vehicle_number: str, window: ReportWindow) -> list[TripRecord]:
        """
        Records of ``vehicle_number`` whose departure time falls in
        ``[date + start_hour, date + end_hour)``, in sequence order.
        """
        try:
            start, end = window.bounds(date)
        except ValueError:
            raise ValidationException(f"Invalid report date: {date}", field="date")

        try:
            result = await self.db.execute(
                select(TripRecord)
                .where(TripRecord.vehicle_number == vehicle_number)
                .order_by(TripRecord.sequence_no)
            )
        except SQLAlchemyError as e:
            logger.error(
                "Failed to search trip records",
                extra_data={"date": date, "vehicle_number": vehicle_number, "error": str(e)},
            )
            raise PersistenceError("search_records", str(e)) from e

        matches = []
        for record in result.scalars().all():
            departed = parse_datetime(record.departure_time)
            if departed is not None and start <= departed < end:
                matches.append(record)
        return matches
