"""
Reference Data Models - vehicles, stores and the daily report window
"""
from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, DateTime, Text

from triplog.db.database import Base


class Vehicle(Base):
    """Vehicle offered on the vehicle-number prompt"""

    __tablename__ = "vehicles"

    id = Column(Integer, primary_key=True, index=True)
    vehicle_number = Column(String(100), nullable=False, unique=True)
    description = Column(Text, nullable=True)
    sort_order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))


class Store(Base):
    """Store offered on the store-name prompt"""

    __tablename__ = "stores"

    id = Column(Integer, primary_key=True, index=True)
    store_name = Column(String(200), nullable=False, unique=True)
    address = Column(Text, nullable=True)
    sort_order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))


class ReportWindowSetting(Base):
    """Single-row table; end_hour above 23 means the window ends the next day"""

    __tablename__ = "report_window_settings"

    id = Column(Integer, primary_key=True)
    start_hour = Column(Integer, nullable=False)
    end_hour = Column(Integer, nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
