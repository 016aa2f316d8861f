import threading

import pytest
from fastapi import status
from sqlalchemy import create_engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from app.api.attendance.crud import attendance as attendance_crud
from app.api.attendance.models import MEMBER_EVENT_CONSTRAINT, AttendanceRecord
from app.api.attendance.schemas import AttendanceMethod
from app.api.base_crud import is_unique_violation
from app.api.event_instances.models import EventInstance
from app.api.members.models import Member
from app.core.database import Base
from app.core.exceptions.attendance_exceptions import DuplicateCheckIn
from app.core.utils import current_time
from tests.conftest import get_auth_headers_for_user


def test_manual_check_in_success(client, api_headers, test_member, test_event_instance, db_session):
    response = client.post(
        '/attendance/check-in',
        json={'member_id': test_member.id, 'event_instance_id': test_event_instance.id},
        headers=api_headers,
    )

    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data['member_id'] == test_member.id
    assert data['event_instance_id'] == test_event_instance.id
    assert data['method'] == 'MANUAL'
    assert data['category'] == 'MEMBER'
    assert data['link_status'] == 'LINKED'
    assert data['check_in_time'] is not None


def test_manual_check_in_twice_is_duplicate(client, api_headers, test_member, test_event_instance, db_session):
    body = {'member_id': test_member.id, 'event_instance_id': test_event_instance.id}
    response = client.post('/attendance/check-in', json=body, headers=api_headers)
    assert response.status_code == status.HTTP_200_OK

    response = client.post('/attendance/check-in', json=body, headers=api_headers)
    assert response.status_code == status.HTTP_409_CONFLICT
    assert response.json()['detail'] == 'Member already checked in'

    count = db_session.query(AttendanceRecord).filter_by(member_id=test_member.id).count()
    assert count == 1


def test_manual_check_in_invalid_api_key(client, test_member, test_event_instance):
    response = client.post(
        '/attendance/check-in',
        json={'member_id': test_member.id, 'event_instance_id': test_event_instance.id},
        headers={'x-api-key': 'invalid_api_key'},
    )
    assert response.status_code == status.HTTP_403_FORBIDDEN
    assert 'Invalid API key' in response.json()['detail']


def test_manual_check_in_unknown_member(client, api_headers, test_event_instance):
    response = client.post(
        '/attendance/check-in',
        json={'member_id': 999, 'event_instance_id': test_event_instance.id},
        headers=api_headers,
    )
    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert response.json()['detail'] == 'Member not found'


def test_manual_check_in_unknown_event_instance(client, api_headers, test_member):
    response = client.post(
        '/attendance/check-in',
        json={'member_id': test_member.id, 'event_instance_id': 999},
        headers=api_headers,
    )
    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert response.json()['detail'] == 'Event instance not found'


def test_unique_constraint_detects_duplicates_without_pre_check(
    db_session, test_member, test_event_instance, monkeypatch
):
    """The storage constraint alone rejects the second insert"""
    attendance_crud.check_in(db_session, test_member.id, test_event_instance.id)

    monkeypatch.setattr(attendance_crud, 'get_by_member_and_event', lambda *args: None)
    with pytest.raises(DuplicateCheckIn):
        attendance_crud.check_in(db_session, test_member.id, test_event_instance.id)

    assert db_session.query(AttendanceRecord).count() == 1


def test_concurrent_check_ins_persist_one_record(tmp_path):
    engine = create_engine(
        f'sqlite:///{tmp_path / "concurrent.db"}',
        connect_args={'check_same_thread': False, 'timeout': 30},
    )
    Base.metadata.create_all(bind=engine)
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    setup = SessionLocal()
    member = Member(first_name='Esi', phone='+233555000222')
    event_instance = EventInstance(
        name='Midweek', start_time=current_time(), end_time=current_time()
    )
    setup.add_all([member, event_instance])
    setup.commit()
    member_id, event_instance_id = member.id, event_instance.id
    setup.close()

    workers = 8
    barrier = threading.Barrier(workers)
    results = []
    lock = threading.Lock()

    def worker():
        db = SessionLocal()
        try:
            barrier.wait()
            attendance_crud.check_in(db, member_id, event_instance_id)
            outcome = 'created'
        except DuplicateCheckIn:
            outcome = 'duplicate'
        finally:
            db.close()
        with lock:
            results.append(outcome)

    threads = [threading.Thread(target=worker) for _ in range(workers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert results.count('created') == 1
    assert results.count('duplicate') == workers - 1

    check = SessionLocal()
    try:
        assert check.query(AttendanceRecord).count() == 1
    finally:
        check.close()
        engine.dispose()


def test_qr_check_in_success(client, linked_user, test_event_instance, signer, db_session):
    user, member = linked_user
    token = signer.issue_rotating_token(test_event_instance.id)

    response = client.post(
        '/attendance/qr-check-in',
        json={'token': token.encoded},
        headers=get_auth_headers_for_user(user),
    )

    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data['member_id'] == member.id
    assert data['method'] == AttendanceMethod.QR.value

    # Scanning the same displayed code again is a duplicate check-in, not a token error
    response = client.post(
        '/attendance/qr-check-in',
        json={'token': token.encoded},
        headers=get_auth_headers_for_user(user),
    )
    assert response.status_code == status.HTTP_409_CONFLICT


def test_qr_check_in_user_without_member(client, create_test_user, test_event_instance, signer):
    user = create_test_user('staff@example.com')
    token = signer.issue_rotating_token(test_event_instance.id)

    response = client.post(
        '/attendance/qr-check-in',
        json={'token': token.encoded},
        headers=get_auth_headers_for_user(user),
    )

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()['detail'] == 'User is not linked to a member profile'


def test_qr_check_in_requires_session(client, test_event_instance, signer):
    token = signer.issue_rotating_token(test_event_instance.id)
    response = client.post('/attendance/qr-check-in', json={'token': token.encoded})
    assert response.status_code == status.HTTP_401_UNAUTHORIZED


def test_qr_check_in_reports_expired_token(client, linked_user, test_event_instance, signer_at):
    user, _ = linked_user
    token = signer_at(1_000).issue_rotating_token(test_event_instance.id)

    response = client.post(
        '/attendance/qr-check-in',
        json={'token': token.encoded},
        headers=get_auth_headers_for_user(user),
    )

    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.json()['detail'] == 'Token expired'


def test_qr_check_in_reports_bad_signature(client, linked_user, test_event_instance):
    from app.core.check_in_tokens import CheckInTokenSigner

    user, _ = linked_user
    token = CheckInTokenSigner('someone-elses-secret').issue_rotating_token(
        test_event_instance.id
    )

    response = client.post(
        '/attendance/qr-check-in',
        json={'token': token.encoded},
        headers=get_auth_headers_for_user(user),
    )

    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.json()['detail'] == 'Invalid token signature'


def test_manual_check_in_rejects_public_method(client, api_headers, test_member, test_event_instance):
    response = client.post(
        '/attendance/check-in',
        json={
            'member_id': test_member.id,
            'event_instance_id': test_event_instance.id,
            'method': 'PUBLIC',
        },
        headers=api_headers,
    )
    assert response.status_code == 422


def test_other_integrity_errors_are_not_duplicates(
    db_session, test_member, test_event_instance, monkeypatch
):
    def fail_insert(db, obj):
        raise IntegrityError(
            'INSERT', {}, Exception('FOREIGN KEY constraint failed')
        )

    monkeypatch.setattr(attendance_crud, '_insert', fail_insert)
    with pytest.raises(IntegrityError):
        attendance_crud.check_in(db_session, test_member.id, test_event_instance.id)


def test_unique_violation_detection():
    unique = IntegrityError(
        'INSERT',
        {},
        Exception(
            'UNIQUE constraint failed: attendance_records.member_id, '
            'attendance_records.event_instance_id'
        ),
    )
    foreign_key = IntegrityError('INSERT', {}, Exception('FOREIGN KEY constraint failed'))

    assert is_unique_violation(unique, MEMBER_EVENT_CONSTRAINT)
    assert not is_unique_violation(foreign_key, MEMBER_EVENT_CONSTRAINT)
