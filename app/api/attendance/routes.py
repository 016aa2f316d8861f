from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, Header, Query, Response
from sqlalchemy.orm import Session

from app.api.attendance import schemas
from app.api.attendance.crud import attendance as attendance_crud
from app.api.event_instances.crud import event_instance as event_instance_crud
from app.core.check_in_tokens import CheckInToken, CheckInTokenSigner, get_token_signer
from app.core.config import settings
from app.core.database import get_db
from app.core.exceptions.attendance_exceptions import InvalidToken
from app.core.qr import generate_qr_base64, generate_qr_png
from app.core.security import TokenData, get_current_user, verify_api_key
from app.core.utils import from_epoch_ms

router = APIRouter()


def _public_url(event_instance_id: int, token: str) -> Optional[str]:
    if not settings.FRONTEND_URL:
        return None
    base = settings.FRONTEND_URL.rstrip('/')
    return f'{base}/public/check-in/{event_instance_id}?token={quote(token, safe="")}'


def _token_response(token: CheckInToken, with_image: bool) -> schemas.CheckInTokenResponse:
    url = _public_url(token.payload.event_instance_id, token.encoded)
    return schemas.CheckInTokenResponse(
        payload=token.payload.model_dump(by_alias=True),
        signature=token.signature,
        token=token.encoded,
        expires_at=from_epoch_ms(token.payload.expires_at_epoch_ms),
        url=url,
        qr_image=generate_qr_base64(url or token.encoded) if with_image else None,
    )


# --- Token issuance ---


@router.get('/qr-token/{event_instance_id}', response_model=schemas.CheckInTokenResponse)
def get_qr_token(
    event_instance_id: int,
    with_image: bool = Query(default=False),
    x_api_key: Optional[str] = Header(None),
    db: Session = Depends(get_db),
    signer: CheckInTokenSigner = Depends(get_token_signer),
):
    verify_api_key(x_api_key)
    event_instance_crud.get(db, event_instance_id)
    token = signer.issue_rotating_token(event_instance_id)
    return _token_response(token, with_image)


@router.get('/qr-token/{event_instance_id}/qr.png')
def get_qr_token_png(
    event_instance_id: int,
    x_api_key: Optional[str] = Header(None),
    db: Session = Depends(get_db),
    signer: CheckInTokenSigner = Depends(get_token_signer),
):
    verify_api_key(x_api_key)
    event_instance_crud.get(db, event_instance_id)
    token = signer.issue_rotating_token(event_instance_id)
    url = _public_url(event_instance_id, token.encoded)
    return Response(
        content=generate_qr_png(url or token.encoded),
        media_type='image/png',
        headers={'Cache-Control': 'no-store'},
    )


@router.get(
    '/static-qr-token/{event_instance_id}',
    response_model=schemas.CheckInTokenResponse,
)
def get_static_qr_token(
    event_instance_id: int,
    with_image: bool = Query(default=False),
    x_api_key: Optional[str] = Header(None),
    db: Session = Depends(get_db),
    signer: CheckInTokenSigner = Depends(get_token_signer),
):
    verify_api_key(x_api_key)
    event_instance_crud.get(db, event_instance_id)
    token = signer.issue_static_token(event_instance_id)
    return _token_response(token, with_image)


@router.post('/validate-token', response_model=schemas.TokenValidation)
def validate_token(
    data: schemas.TokenCheckIn,
    x_api_key: Optional[str] = Header(None),
    signer: CheckInTokenSigner = Depends(get_token_signer),
):
    """Staff-only diagnostics: reports which check failed."""
    verify_api_key(x_api_key)
    try:
        payload = signer.validate(data.token)
    except InvalidToken as e:
        return schemas.TokenValidation(valid=False, reason=e.detail)
    return schemas.TokenValidation(
        valid=True,
        event_instance_id=payload.event_instance_id,
        expires_at=from_epoch_ms(payload.expires_at_epoch_ms),
    )


# --- Check-in ---


@router.post('/check-in', response_model=schemas.AttendanceRecord)
def check_in(
    data: schemas.CheckIn,
    x_api_key: Optional[str] = Header(None),
    db: Session = Depends(get_db),
):
    verify_api_key(x_api_key)
    return attendance_crud.check_in(
        db=db,
        member_id=data.member_id,
        event_instance_id=data.event_instance_id,
        method=data.method,
    )


@router.post('/qr-check-in', response_model=schemas.AttendanceRecord)
def qr_check_in(
    data: schemas.TokenCheckIn,
    current_user: TokenData = Depends(get_current_user),
    db: Session = Depends(get_db),
    signer: CheckInTokenSigner = Depends(get_token_signer),
):
    return attendance_crud.check_in_via_token(
        db=db,
        user=current_user,
        token=data.token,
        signer=signer,
    )


@router.post('/public-check-in', response_model=schemas.AttendanceRecord)
def public_check_in(
    data: schemas.PublicCheckIn,
    db: Session = Depends(get_db),
    signer: CheckInTokenSigner = Depends(get_token_signer),
):
    return attendance_crud.public_check_in(db=db, obj=data, signer=signer)


# --- Reconciliation ---


@router.get('/unreconciled', response_model=list[schemas.AttendanceRecord])
def get_unreconciled(
    filters: schemas.AttendanceFilter = Depends(),
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=100),
    x_api_key: Optional[str] = Header(None),
    db: Session = Depends(get_db),
):
    verify_api_key(x_api_key)
    return attendance_crud.find_unreconciled(
        db=db, filters=filters, skip=skip, limit=limit
    )


@router.patch('/{attendance_id}/link', response_model=schemas.AttendanceRecord)
def link_to_member(
    attendance_id: int,
    data: schemas.LinkToMember,
    x_api_key: Optional[str] = Header(None),
    db: Session = Depends(get_db),
):
    verify_api_key(x_api_key)
    return attendance_crud.link_to_member(
        db=db, attendance_id=attendance_id, member_id=data.member_id
    )


@router.post('/{attendance_id}/create-member', response_model=schemas.AttendanceRecord)
def create_member_and_link(
    attendance_id: int,
    data: Optional[schemas.NewMemberFields] = None,
    x_api_key: Optional[str] = Header(None),
    db: Session = Depends(get_db),
):
    verify_api_key(x_api_key)
    return attendance_crud.create_member_and_link(
        db=db, attendance_id=attendance_id, fields=data
    )


# --- Read side ---


@router.get('/events/{event_instance_id}', response_model=list[schemas.AttendanceRecord])
def get_attendance_by_event_instance(
    event_instance_id: int,
    x_api_key: Optional[str] = Header(None),
    db: Session = Depends(get_db),
):
    verify_api_key(x_api_key)
    return attendance_crud.get_by_event_instance(db=db, event_instance_id=event_instance_id)


@router.get('/members/{member_id}', response_model=list[schemas.AttendanceRecord])
def get_attendance_by_member(
    member_id: int,
    x_api_key: Optional[str] = Header(None),
    db: Session = Depends(get_db),
):
    verify_api_key(x_api_key)
    return attendance_crud.get_by_member(db=db, member_id=member_id)


@router.get('/members/{member_id}/streak', response_model=schemas.Streak)
def get_streak(
    member_id: int,
    x_api_key: Optional[str] = Header(None),
    db: Session = Depends(get_db),
):
    verify_api_key(x_api_key)
    streak = attendance_crud.calculate_streak(db=db, member_id=member_id)
    return schemas.Streak(member_id=member_id, streak=streak)
