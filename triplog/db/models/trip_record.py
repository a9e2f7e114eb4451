"""
Trip Record Model - completed entries, append-only
"""
from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, DateTime, Text, Index

from triplog.db.database import Base


class TripRecord(Base):
    """
    A finalized trip.

    Times are stored as entered (``YYYY/MM/DD HH:MM`` local time, or a bare
    date for arrival) so the report shows exactly what the driver confirmed.
    """

    __tablename__ = "trip_records"

    sequence_no = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False, index=True)

    departure_time = Column(String(20), nullable=False)
    departure_point = Column(Text, nullable=True)
    store_name = Column(String(200), nullable=False)
    via_point = Column(Text, nullable=True)
    arrival_time = Column(String(20), nullable=False)
    destination = Column(Text, nullable=False)
    distance = Column(String(20), nullable=False)
    amount = Column(String(20), nullable=False)
    vehicle_number = Column(String(100), nullable=False)
    note = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        Index("ix_trip_records_vehicle_departure", "vehicle_number", "departure_time"),
    )
