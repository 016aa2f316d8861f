from typing import List

from sqlalchemy.orm import Session

from app.api.base_crud import CRUDBase
from app.api.event_instances import models, schemas
from app.core.exceptions.attendance_exceptions import EventInstanceNotFound
from app.core.utils import current_time


class CRUDEventInstance(CRUDBase[models.EventInstance, schemas.EventInstanceCreate]):
    not_found = EventInstanceNotFound

    def get_started(self, db: Session) -> List[models.EventInstance]:
        """Instances that have already begun, most recent first."""
        return (
            db.query(self.model)
            .filter(self.model.start_time <= current_time())
            .order_by(self.model.start_time.desc())
            .all()
        )


event_instance = CRUDEventInstance(models.EventInstance)
