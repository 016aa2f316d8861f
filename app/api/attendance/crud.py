from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.api.attendance import models, schemas
from app.api.attendance.models import MEMBER_EVENT_CONSTRAINT
from app.api.attendance.schemas import AttendanceCategory, AttendanceMethod, LinkStatus
from app.api.base_crud import CRUDBase, is_unique_violation
from app.api.event_instances.crud import event_instance as event_instance_crud
from app.api.members.crud import member as member_crud
from app.api.members.models import Member
from app.api.members.schemas import MemberCreate
from app.core.check_in_tokens import CheckInTokenSigner
from app.core.database import atomic
from app.core.exceptions.attendance_exceptions import (
    ConflictingAttendance,
    DuplicateCheckIn,
    InvalidToken,
    NotLinkedToMember,
    RecordNotFound,
)
from app.core.logger import logger, mask_phone
from app.core.security import TokenData
from app.core.utils import current_time

UNVERIFIED_MARKER = '[claimed member not found]'
LINKED_MARKER = '[linked by operator]'


def append_marker(notes: Optional[str], marker: str) -> str:
    if not notes:
        return marker
    if marker in notes:
        return notes
    return f'{notes} {marker}'


def replace_marker(notes: Optional[str], old: str, new: str) -> str:
    if notes and old in notes:
        return notes.replace(old, new)
    return append_marker(notes, new)


class CRUDAttendance(CRUDBase[models.AttendanceRecord, schemas.InternalAttendanceCreate]):
    not_found = RecordNotFound

    def get_by_member_and_event(
        self, db: Session, member_id: int, event_instance_id: int
    ) -> Optional[models.AttendanceRecord]:
        return (
            db.query(self.model)
            .filter(
                self.model.member_id == member_id,
                self.model.event_instance_id == event_instance_id,
            )
            .first()
        )

    def _insert(
        self, db: Session, obj: schemas.InternalAttendanceCreate
    ) -> models.AttendanceRecord:
        """Insert a record; a unique violation propagates as IntegrityError."""
        db_obj = self.model(**obj.model_dump())
        db.add(db_obj)
        try:
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.refresh(db_obj)
        return db_obj

    # --- Check-in processor ---

    def check_in(
        self,
        db: Session,
        member_id: int,
        event_instance_id: int,
        method: AttendanceMethod = AttendanceMethod.MANUAL,
    ) -> models.AttendanceRecord:
        member_crud.get(db, member_id)
        event_instance_crud.get(db, event_instance_id)

        if self.get_by_member_and_event(db, member_id, event_instance_id):
            logger.info(
                'Member %s already checked in to event instance %s',
                member_id,
                event_instance_id,
            )
            raise DuplicateCheckIn()

        new_record = schemas.InternalAttendanceCreate(
            event_instance_id=event_instance_id,
            member_id=member_id,
            check_in_time=current_time(),
            method=method,
            category=AttendanceCategory.MEMBER,
            link_status=LinkStatus.LINKED,
        )
        try:
            record = self._insert(db, new_record)
        except IntegrityError as e:
            if not is_unique_violation(e, MEMBER_EVENT_CONSTRAINT):
                logger.error('Check-in insert failed: %s', str(e.orig))
                raise
            # Lost the race against a concurrent check-in for the same pair
            logger.info(
                'Concurrent check-in rejected for member %s, event instance %s: %s',
                member_id,
                event_instance_id,
                str(e.orig),
            )
            raise DuplicateCheckIn()

        logger.info(
            'Member %s checked in to event instance %s via %s',
            member_id,
            event_instance_id,
            method.value,
        )
        return record

    def check_in_via_token(
        self,
        db: Session,
        user: TokenData,
        token: str,
        signer: CheckInTokenSigner,
    ) -> models.AttendanceRecord:
        payload = signer.validate(token)

        member = member_crud.get_by_user_id(db, user.user_id)
        if not member:
            logger.error('User %s is not linked to a member profile', user.user_id)
            raise NotLinkedToMember()

        return self.check_in(
            db,
            member_id=member.id,
            event_instance_id=payload.event_instance_id,
            method=AttendanceMethod.QR,
        )

    # --- Public intake ---

    def _match_member(self, db: Session, phone: str) -> Optional[Member]:
        member = member_crud.get_by_phone(db, phone)
        if member:
            return member
        # Some people type their account email into the phone field
        return member_crud.get_by_account_email(db, phone)

    def public_check_in(
        self,
        db: Session,
        obj: schemas.PublicCheckIn,
        signer: CheckInTokenSigner,
    ) -> models.AttendanceRecord:
        try:
            payload = signer.validate(obj.token)
        except InvalidToken as e:
            logger.warning('Public check-in token rejected: %s', e.detail)
            raise InvalidToken()

        event_instance_id = payload.event_instance_id
        event_instance_crud.get(db, event_instance_id)

        member = None
        notes = obj.notes
        category = obj.category
        link_status = LinkStatus.VISITOR
        if obj.category == AttendanceCategory.MEMBER:
            if obj.phone:
                member = self._match_member(db, obj.phone)
            if member:
                link_status = LinkStatus.LINKED
                logger.info(
                    'Public check-in matched member %s by %s',
                    member.id,
                    mask_phone(obj.phone),
                )
            else:
                # Keep the claim recoverable for reconciliation
                category = AttendanceCategory.VISITOR
                link_status = LinkStatus.CLAIMED_UNVERIFIED
                notes = append_marker(notes, UNVERIFIED_MARKER)
                logger.info(
                    'Public member claim unverified for %s at event instance %s',
                    mask_phone(obj.phone),
                    event_instance_id,
                )

        if member:
            existing = self.get_by_member_and_event(db, member.id, event_instance_id)
            if existing:
                logger.info(
                    'Member %s already checked in to event instance %s, returning record %s',
                    member.id,
                    event_instance_id,
                    existing.id,
                )
                return existing

        new_record = schemas.InternalAttendanceCreate(
            event_instance_id=event_instance_id,
            member_id=member.id if member else None,
            check_in_time=current_time(),
            method=AttendanceMethod.PUBLIC,
            category=category,
            link_status=link_status,
            visitor_name=obj.name,
            visitor_phone=obj.phone,
            notes=notes,
        )
        try:
            record = self._insert(db, new_record)
        except IntegrityError as e:
            if not member or not is_unique_violation(e, MEMBER_EVENT_CONSTRAINT):
                raise
            existing = self.get_by_member_and_event(db, member.id, event_instance_id)
            if not existing:
                raise
            logger.info(
                'Concurrent public check-in for member %s, returning record %s',
                member.id,
                existing.id,
            )
            return existing

        logger.info(
            'Public check-in recorded %s for event instance %s as %s',
            record.id,
            event_instance_id,
            link_status.value,
        )
        return record

    # --- Reconciliation ---

    def _get_for_update(
        self, db: Session, attendance_id: int
    ) -> models.AttendanceRecord:
        record = (
            db.query(self.model)
            .filter(self.model.id == attendance_id)
            .with_for_update()
            .first()
        )
        if not record:
            logger.error('Attendance record %s not found', attendance_id)
            raise RecordNotFound()
        return record

    def _check_linkable(
        self, db: Session, record: models.AttendanceRecord, member_id: int
    ) -> None:
        if record.member_id is not None and record.member_id != member_id:
            raise ConflictingAttendance(
                'Attendance record is already linked to another member'
            )

        other = self.get_by_member_and_event(db, member_id, record.event_instance_id)
        if other and other.id != record.id:
            logger.info(
                'Member %s already has record %s for event instance %s',
                member_id,
                other.id,
                record.event_instance_id,
            )
            raise ConflictingAttendance()

    def _apply_link(self, record: models.AttendanceRecord, member_id: int) -> None:
        record.member_id = member_id
        record.category = AttendanceCategory.MEMBER.value
        record.link_status = LinkStatus.LINKED.value
        record.notes = replace_marker(record.notes, UNVERIFIED_MARKER, LINKED_MARKER)

    def _commit_link(
        self, db: Session, record: models.AttendanceRecord
    ) -> models.AttendanceRecord:
        try:
            db.commit()
        except IntegrityError as e:
            db.rollback()
            if not is_unique_violation(e, MEMBER_EVENT_CONSTRAINT):
                raise
            logger.error(
                'Link of record %s violated uniqueness: %s', record.id, str(e.orig)
            )
            raise ConflictingAttendance()
        except Exception:
            db.rollback()
            raise
        db.refresh(record)
        return record

    def link_to_member(
        self, db: Session, attendance_id: int, member_id: int
    ) -> models.AttendanceRecord:
        try:
            record = self._get_for_update(db, attendance_id)
            member_crud.get(db, member_id)

            if record.member_id == member_id:
                db.rollback()
                return record
            self._check_linkable(db, record, member_id)
            self._apply_link(record, member_id)
        except Exception:
            db.rollback()
            raise

        record = self._commit_link(db, record)
        logger.info(
            'Attendance record %s linked to member %s by operator',
            record.id,
            member_id,
        )
        return record

    def create_member_and_link(
        self,
        db: Session,
        attendance_id: int,
        fields: Optional[schemas.NewMemberFields] = None,
    ) -> models.AttendanceRecord:
        fields = fields or schemas.NewMemberFields()
        with atomic(db):
            record = self._get_for_update(db, attendance_id)
            if record.member_id is not None:
                raise ConflictingAttendance(
                    'Attendance record is already linked to a member'
                )

            first_name, _, last_name = (record.visitor_name or '').partition(' ')
            new_member = MemberCreate(
                first_name=fields.first_name or first_name or 'Visitor',
                last_name=fields.last_name or last_name or None,
                phone=fields.phone or record.visitor_phone,
                email=fields.email,
            )
            # Flushed only: the member exists only if the link commits too
            member = member_crud.create(db, new_member, commit=False)
            self._apply_link(record, member.id)
            db.flush()

        db.refresh(record)
        logger.info(
            'Created member %s from attendance record %s and linked it',
            record.member_id,
            record.id,
        )
        return record

    # --- Read side ---

    def get_by_event_instance(
        self, db: Session, event_instance_id: int
    ) -> List[models.AttendanceRecord]:
        return (
            db.query(self.model)
            .filter(self.model.event_instance_id == event_instance_id)
            .order_by(self.model.check_in_time.asc(), self.model.id.asc())
            .all()
        )

    def get_by_member(self, db: Session, member_id: int) -> List[models.AttendanceRecord]:
        return (
            db.query(self.model)
            .filter(self.model.member_id == member_id)
            .order_by(self.model.check_in_time.desc(), self.model.id.desc())
            .all()
        )

    def find_unreconciled(
        self,
        db: Session,
        filters: Optional[schemas.AttendanceFilter] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[models.AttendanceRecord]:
        if filters and filters.link_status == LinkStatus.LINKED:
            return []

        query = db.query(self.model).filter(
            self.model.link_status != LinkStatus.LINKED.value
        )
        if filters:
            query = self._apply_filters(query, filters)
        return (
            query.order_by(self.model.check_in_time.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )

    def calculate_streak(self, db: Session, member_id: int) -> int:
        """Consecutive most recent started event instances the member attended."""
        member_crud.get(db, member_id)
        attended = {
            row.event_instance_id
            for row in db.query(self.model.event_instance_id).filter(
                self.model.member_id == member_id
            )
        }

        streak = 0
        for instance in event_instance_crud.get_started(db):
            if instance.id not in attended:
                # An event still in progress can yet be attended
                if instance.is_live():
                    continue
                break
            streak += 1
        return streak


attendance = CRUDAttendance(models.AttendanceRecord)
