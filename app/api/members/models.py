from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, event
from sqlalchemy.orm import Mapped, relationship

from app.core.database import Base
from app.core.utils import current_time

if TYPE_CHECKING:
    from app.api.attendance.models import AttendanceRecord
    from app.api.users.models import User


class Member(Base):
    __tablename__ = 'members'

    id = Column(
        Integer,
        primary_key=True,
        autoincrement=True,
        unique=True,
        index=True,
    )
    first_name = Column(String, nullable=False)
    last_name = Column(String)
    phone = Column(String, index=True)
    email = Column(String, index=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=True, unique=True)

    user: Mapped[Optional['User']] = relationship('User', back_populates='member')
    attendance: Mapped[List['AttendanceRecord']] = relationship(
        'AttendanceRecord', back_populates='member'
    )

    created_at = Column(DateTime, default=current_time)
    updated_at = Column(DateTime, default=current_time, onupdate=current_time)


@event.listens_for(Member, 'before_insert')
def clean_contact(mapper, connection, target):
    if target.phone:
        target.phone = target.phone.strip()
    if target.email:
        target.email = target.email.lower().strip()
