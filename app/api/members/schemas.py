from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator


class MemberBase(BaseModel):
    first_name: str
    last_name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None

    model_config = ConfigDict(str_strip_whitespace=True)

    @field_validator('first_name')
    @classmethod
    def validate_first_name(cls, value: str) -> str:
        if not value:
            raise ValueError('First name cannot be empty')
        return value


class MemberCreate(MemberBase):
    user_id: Optional[int] = None


class Member(MemberBase):
    id: int
    user_id: Optional[int] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
