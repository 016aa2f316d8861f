from datetime import datetime
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import Column, DateTime, Integer, String
from sqlalchemy.orm import Mapped, relationship

from app.core.database import Base
from app.core.utils import current_time

if TYPE_CHECKING:
    from app.api.attendance.models import AttendanceRecord


class EventInstance(Base):
    """One scheduled occurrence of a recurring activity."""

    __tablename__ = 'event_instances'

    id = Column(
        Integer,
        primary_key=True,
        autoincrement=True,
        unique=True,
        index=True,
    )
    name = Column(String, nullable=False)
    start_time = Column(DateTime, nullable=False, index=True)
    end_time = Column(DateTime, nullable=False)

    attendance: Mapped[List['AttendanceRecord']] = relationship(
        'AttendanceRecord', back_populates='event_instance'
    )

    created_at = Column(DateTime, default=current_time)
    updated_at = Column(DateTime, default=current_time, onupdate=current_time)

    def is_live(self, now: Optional[datetime] = None) -> bool:
        now = now or current_time()
        return self.start_time <= now <= self.end_time
