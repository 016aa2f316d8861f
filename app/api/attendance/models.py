from typing import TYPE_CHECKING, Optional

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, relationship

from app.api.attendance.schemas import AttendanceCategory, AttendanceMethod, LinkStatus
from app.core.database import Base
from app.core.utils import current_time

if TYPE_CHECKING:
    from app.api.event_instances.models import EventInstance
    from app.api.members.models import Member


MEMBER_EVENT_CONSTRAINT = 'uq_attendance_member_event'


class AttendanceRecord(Base):
    __tablename__ = 'attendance_records'

    id = Column(
        Integer,
        primary_key=True,
        autoincrement=True,
        unique=True,
        index=True,
    )
    event_instance_id = Column(
        Integer,
        ForeignKey('event_instances.id'),
        nullable=False,
        index=True,
    )
    member_id = Column(Integer, ForeignKey('members.id'), nullable=True, index=True)
    check_in_time = Column(DateTime, nullable=False, default=current_time)
    method = Column(String, nullable=False, default=AttendanceMethod.MANUAL.value)
    category = Column(String, nullable=False, default=AttendanceCategory.MEMBER.value)
    link_status = Column(String, nullable=False, default=LinkStatus.LINKED.value)
    visitor_name = Column(String)
    visitor_phone = Column(String)
    notes = Column(String)

    event_instance: Mapped['EventInstance'] = relationship(
        'EventInstance', back_populates='attendance'
    )
    member: Mapped[Optional['Member']] = relationship(
        'Member', back_populates='attendance'
    )

    created_at = Column(DateTime, default=current_time)
    updated_at = Column(DateTime, default=current_time, onupdate=current_time)

    # NULL member_id rows (unlinked visitors) are not constrained
    __table_args__ = (
        UniqueConstraint(
            'member_id', 'event_instance_id', name=MEMBER_EVENT_CONSTRAINT
        ),
        Index('ix_attendance_event_link_status', 'event_instance_id', 'link_status'),
    )
