from typing import Optional

from fastapi import APIRouter, Depends, Header
from sqlalchemy.orm import Session

from app.api.event_instances import schemas
from app.api.event_instances.crud import event_instance as event_instance_crud
from app.core.database import get_db
from app.core.security import verify_api_key

router = APIRouter()


@router.post('/', response_model=schemas.EventInstance)
def create_event_instance(
    event_instance: schemas.EventInstanceCreate,
    x_api_key: Optional[str] = Header(None),
    db: Session = Depends(get_db),
):
    verify_api_key(x_api_key)
    obj = event_instance_crud.create(db=db, obj=event_instance)
    return schemas.EventInstance.from_model(obj)


@router.get('/{event_instance_id}', response_model=schemas.EventInstance)
def get_event_instance(
    event_instance_id: int,
    x_api_key: Optional[str] = Header(None),
    db: Session = Depends(get_db),
):
    verify_api_key(x_api_key)
    obj = event_instance_crud.get(db=db, id=event_instance_id)
    return schemas.EventInstance.from_model(obj)
