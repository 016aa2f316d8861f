from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.core.check_in_tokens import MAX_TOKEN_LENGTH


class AttendanceMethod(str, Enum):
    MANUAL = 'MANUAL'
    QR = 'QR'
    PUBLIC = 'PUBLIC'


class AttendanceCategory(str, Enum):
    MEMBER = 'MEMBER'
    VISITOR = 'VISITOR'


class LinkStatus(str, Enum):
    VISITOR = 'VISITOR'
    CLAIMED_UNVERIFIED = 'CLAIMED_UNVERIFIED'
    LINKED = 'LINKED'


class InternalAttendanceCreate(BaseModel):
    event_instance_id: int
    member_id: Optional[int] = None
    check_in_time: datetime
    method: AttendanceMethod
    category: AttendanceCategory
    link_status: LinkStatus
    visitor_name: Optional[str] = None
    visitor_phone: Optional[str] = None
    notes: Optional[str] = None

    model_config = ConfigDict(use_enum_values=True)


class CheckIn(BaseModel):
    member_id: int
    event_instance_id: int
    method: AttendanceMethod = AttendanceMethod.MANUAL

    @field_validator('method')
    @classmethod
    def validate_method(cls, value: AttendanceMethod) -> AttendanceMethod:
        if value == AttendanceMethod.PUBLIC:
            raise ValueError('Public check-ins go through the public form')
        return value


class TokenCheckIn(BaseModel):
    token: str = Field(max_length=MAX_TOKEN_LENGTH)

    @field_validator('token')
    @classmethod
    def validate_token(cls, v):
        if not v:
            raise ValueError('Token is required')
        return v.strip()


class PublicCheckIn(TokenCheckIn):
    name: str = Field(min_length=1, max_length=200)
    phone: Optional[str] = Field(default=None, max_length=50)
    category: AttendanceCategory = AttendanceCategory.VISITOR
    notes: Optional[str] = Field(default=None, max_length=2000)

    model_config = ConfigDict(str_strip_whitespace=True)

    @field_validator('phone', 'notes')
    @classmethod
    def empty_to_none(cls, value: Optional[str]) -> Optional[str]:
        return value or None


class LinkToMember(BaseModel):
    member_id: int


class NewMemberFields(BaseModel):
    """Overrides for the member created during reconciliation.

    Missing names and phone are taken from the attendance record.
    """

    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None

    model_config = ConfigDict(str_strip_whitespace=True)


class AttendanceRecord(BaseModel):
    id: int
    event_instance_id: int
    member_id: Optional[int] = None
    check_in_time: datetime
    method: AttendanceMethod
    category: AttendanceCategory
    link_status: LinkStatus
    visitor_name: Optional[str] = None
    visitor_phone: Optional[str] = None
    notes: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class AttendanceFilter(BaseModel):
    event_instance_id: Optional[int] = None
    link_status: Optional[LinkStatus] = None

    model_config = ConfigDict(use_enum_values=True)


class CheckInTokenResponse(BaseModel):
    payload: dict
    signature: str
    token: str
    expires_at: datetime
    url: Optional[str] = None
    qr_image: Optional[str] = None


class TokenValidation(BaseModel):
    valid: bool
    event_instance_id: Optional[int] = None
    expires_at: Optional[datetime] = None
    reason: Optional[str] = None


class Streak(BaseModel):
    member_id: int
    streak: int
