from typing import Optional

from fastapi import APIRouter, Depends, Header
from sqlalchemy.orm import Session

from app.api.members import schemas
from app.api.members.crud import member as member_crud
from app.core.database import get_db
from app.core.security import verify_api_key

router = APIRouter()


@router.post('/', response_model=schemas.Member)
def create_member(
    member: schemas.MemberCreate,
    x_api_key: Optional[str] = Header(None),
    db: Session = Depends(get_db),
):
    verify_api_key(x_api_key)
    return member_crud.create(db=db, obj=member)


@router.get('/{member_id}', response_model=schemas.Member)
def get_member(
    member_id: int,
    x_api_key: Optional[str] = Header(None),
    db: Session = Depends(get_db),
):
    verify_api_key(x_api_key)
    return member_crud.get(db=db, id=member_id)
