# Import all models here to ensure SQLAlchemy can set up relationships correctly
from app.api.attendance.models import AttendanceRecord
from app.api.event_instances.models import EventInstance
from app.api.members.models import Member
from app.api.users.models import User

# Re-export all models
__all__ = [
    'AttendanceRecord',
    'EventInstance',
    'Member',
    'User',
]
