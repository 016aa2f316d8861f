from typing import TYPE_CHECKING, Optional

from sqlalchemy import Column, DateTime, Integer, String
from sqlalchemy.orm import Mapped, relationship

from app.core.database import Base
from app.core.utils import current_time

if TYPE_CHECKING:
    from app.api.members.models import Member


class User(Base):
    """Login account. A session token carries this id, not a member id."""

    __tablename__ = 'users'

    id = Column(
        Integer,
        primary_key=True,
        autoincrement=True,
        unique=True,
        index=True,
    )
    email = Column(String, index=True, unique=True, nullable=False)

    member: Mapped[Optional['Member']] = relationship(
        'Member', back_populates='user', uselist=False
    )

    created_at = Column(DateTime, default=current_time)
    updated_at = Column(DateTime, default=current_time, onupdate=current_time)
