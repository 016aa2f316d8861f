from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.api.base_crud import CRUDBase
from app.api.members import models, schemas
from app.api.users.models import User
from app.core.exceptions.attendance_exceptions import MemberNotFound


class CRUDMember(CRUDBase[models.Member, schemas.MemberCreate]):
    not_found = MemberNotFound

    def get_by_phone(self, db: Session, phone: str) -> Optional[models.Member]:
        return (
            db.query(self.model)
            .filter(self.model.phone == phone)
            .order_by(self.model.id)
            .first()
        )

    def get_by_account_email(self, db: Session, email: str) -> Optional[models.Member]:
        """Member whose linked login account uses this email."""
        return (
            db.query(self.model)
            .join(User, User.id == self.model.user_id)
            .filter(func.lower(User.email) == email.strip().lower())
            .order_by(self.model.id)
            .first()
        )

    def get_by_user_id(self, db: Session, user_id: int) -> Optional[models.Member]:
        return db.query(self.model).filter(self.model.user_id == user_id).first()


member = CRUDMember(models.Member)
