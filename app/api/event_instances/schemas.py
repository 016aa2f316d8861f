from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, model_validator


class EventInstanceCreate(BaseModel):
    name: str
    start_time: datetime
    end_time: datetime

    @model_validator(mode='after')
    def validate_window(self):
        if self.end_time <= self.start_time:
            raise ValueError('end_time must be after start_time')
        return self


class EventInstance(EventInstanceCreate):
    id: int
    is_live: bool = False

    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_model(cls, obj) -> 'EventInstance':
        return cls(
            id=obj.id,
            name=obj.name,
            start_time=obj.start_time,
            end_time=obj.end_time,
            is_live=obj.is_live(),
            created_at=obj.created_at,
        )
