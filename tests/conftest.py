from datetime import timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.api.event_instances.models import EventInstance
from app.api.members.models import Member
from app.api.users.models import User
from app.core import models  # noqa: F401
from app.core.check_in_tokens import (
    TEST_SIGNING_SECRET,
    CheckInTokenSigner,
    get_token_signer,
)
from app.core.config import Environment, settings
from app.core.database import Base, get_db
from app.core.security import create_access_token
from app.core.utils import current_time
from main import app

API_KEY = 'test_attendance_api_key'


@pytest.fixture(scope='session', autouse=True)
def check_test_environment():
    if settings.ENVIRONMENT != Environment.TEST:
        raise RuntimeError(
            f'Tests can only be executed in test environment. Current environment: {settings.ENVIRONMENT}'
        )


@pytest.fixture(scope='session', autouse=True)
def setup_test_secrets():
    """Set API key and session secret so headers and JWTs are well defined"""
    original_api_key = settings.ATTENDANCE_API_KEY
    original_secret_key = settings.SECRET_KEY

    settings.ATTENDANCE_API_KEY = API_KEY
    settings.SECRET_KEY = 'test_session_secret'
    get_token_signer.cache_clear()

    yield

    settings.ATTENDANCE_API_KEY = original_api_key
    settings.SECRET_KEY = original_secret_key
    get_token_signer.cache_clear()


@pytest.fixture(scope='session')
def test_db_engine():
    engine = create_engine(
        settings.SQLALCHEMY_TEST_DATABASE_URL,
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope='function')
def db_session(test_db_engine):
    """Create a fresh database session for each test"""
    TestingSessionLocal = sessionmaker(
        autocommit=False, autoflush=False, bind=test_db_engine
    )

    Base.metadata.drop_all(bind=test_db_engine)
    Base.metadata.create_all(bind=test_db_engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope='function')
def client(db_session):
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def api_headers():
    return {'x-api-key': API_KEY}


def get_auth_headers_for_user(user: User) -> dict:
    """Generate session headers for a login account"""
    access_token = create_access_token(data={'user_id': user.id, 'email': user.email})
    return {'Authorization': f'Bearer {access_token}'}


@pytest.fixture
def signer():
    return get_token_signer()


@pytest.fixture
def signer_at():
    """Factory for signers sharing the configured secret but with a fixed clock"""

    def _signer_at(now_ms: int) -> CheckInTokenSigner:
        secret = settings.CHECK_IN_TOKEN_SECRET or TEST_SIGNING_SECRET
        return CheckInTokenSigner(secret, clock=lambda: now_ms)

    return _signer_at


@pytest.fixture(scope='function')
def create_test_event_instance(db_session):
    def _create_event_instance(name='Sunday Service', starts_in=timedelta(0)):
        start = current_time() + starts_in
        event_instance = EventInstance(
            name=name,
            start_time=start - timedelta(minutes=30),
            end_time=start + timedelta(hours=2),
        )
        db_session.add(event_instance)
        db_session.commit()
        return event_instance

    return _create_event_instance


@pytest.fixture
def test_event_instance(create_test_event_instance):
    return create_test_event_instance()


@pytest.fixture(scope='function')
def create_test_member(db_session):
    def _create_member(first_name='Ama', last_name='Mensah', phone=None, email=None, user=None):
        member = Member(
            first_name=first_name,
            last_name=last_name,
            phone=phone,
            email=email,
            user_id=user.id if user else None,
        )
        db_session.add(member)
        db_session.commit()
        return member

    return _create_member


@pytest.fixture
def test_member(create_test_member):
    return create_test_member(phone='+233555000111')


@pytest.fixture(scope='function')
def create_test_user(db_session):
    def _create_user(email='member@example.com'):
        user = User(email=email)
        db_session.add(user)
        db_session.commit()
        return user

    return _create_user


@pytest.fixture
def linked_user(create_test_user, create_test_member):
    """A login account with a member profile"""
    user = create_test_user('kofi@example.com')
    member = create_test_member(first_name='Kofi', last_name='Boateng', user=user)
    return user, member
