from typing import Generic, Optional, Type, TypeVar

import psycopg2
from fastapi import HTTPException, status
from pydantic import BaseModel
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.declarative import DeclarativeMeta
from sqlalchemy.orm import Query, Session

from app.core.logger import logger

ModelType = TypeVar('ModelType', bound=DeclarativeMeta)
CreateSchemaType = TypeVar('CreateSchemaType', bound=BaseModel)


def integrity_detail(model_name: str, error: IntegrityError) -> str:
    orig = str(error.orig)
    detail = 'Integrity error'
    if isinstance(error.orig, psycopg2.errors.UniqueViolation) and 'DETAIL' in orig:
        error_detail = orig.split('DETAIL: ')[1].split('\n')[0].strip()
        if '(' in error_detail and ')' in error_detail:
            keys = error_detail.split('(')[1].split(')')[0]
            detail = f'It already exists a {model_name} with this {keys}'
    return detail


def is_unique_violation(error: IntegrityError, constraint: str) -> bool:
    """True when ``error`` was raised by the named unique constraint."""
    orig = error.orig
    if isinstance(orig, psycopg2.errors.UniqueViolation):
        return orig.diag.constraint_name == constraint
    # SQLite does not report constraint names
    return 'UNIQUE constraint failed' in str(orig)


class CRUDBase(Generic[ModelType, CreateSchemaType]):
    # Raised by get() when the id is unknown; subclasses plug in their own
    not_found: Optional[Type[HTTPException]] = None

    def __init__(self, model: Type[ModelType]):
        self.model = model

    def _apply_filters(
        self, query: Query, filters: Optional[BaseModel] = None
    ) -> Query:
        """Override this method to implement filter logic"""
        if not filters:
            return query

        for field, value in filters.model_dump(exclude_none=True).items():
            op = 'eq'
            if field.endswith('_in') and isinstance(value, list):
                field = field[:-3]
                op = 'in_'
            if hasattr(self.model, field) and value is not None:
                if op == 'in_':
                    query = query.filter(getattr(self.model, field).in_(value))
                else:
                    query = query.filter(getattr(self.model, field) == value)
        return query

    def create(
        self,
        db: Session,
        obj: CreateSchemaType,
        commit: bool = True,
    ) -> ModelType:
        """Create a new record.

        With ``commit=False`` the row is only flushed, so the caller's
        transaction decides whether it survives.
        """
        try:
            obj_data = obj.model_dump()
            model_columns = self.model.__table__.columns.keys()
            filtered_data = {k: v for k, v in obj_data.items() if k in model_columns}

            db_obj = self.model(**filtered_data)
            db.add(db_obj)
            if not commit:
                db.flush()
                return db_obj
            db.commit()
            db.refresh(db_obj)
            return db_obj
        except IntegrityError as e:
            logger.error('Error creating %s: %s', self.model.__name__, str(e))
            db.rollback()
            detail = integrity_detail(self.model.__name__, e)
            logger.error('Integrity error: %s', detail)
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=detail,
            )
        except Exception as e:
            logger.error('SQL error creating %s: %s', self.model.__name__, str(e))
            db.rollback()
            raise e

    def get_optional(self, db: Session, id: int) -> Optional[ModelType]:
        return db.query(self.model).filter(self.model.id == id).first()

    def get(self, db: Session, id: int) -> ModelType:
        """Get a single record by id."""
        obj = self.get_optional(db, id)
        if not obj:
            logger.error('%s %s not found', self.model.__name__, id)
            if self.not_found:
                raise self.not_found()
            raise HTTPException(
                status_code=404, detail=f'{self.model.__name__} not found'
            )
        return obj

