import os
from urllib.parse import urlencode

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault('DATABASE_URL', 'sqlite://')
os.environ.setdefault('BCRYPT_ROUNDS', '4')
os.environ.setdefault('JWT_SECRET_KEY', 'test-secret')

from sessionhub.auth.oauth import OAuthProfile  # noqa: E402
from sessionhub.core.exceptions import OAuthError  # noqa: E402
from sessionhub.database import Base, get_db  # noqa: E402
from sessionhub.main import create_app  # noqa: E402
from sessionhub.models import session, user  # noqa: E402,F401


class RecordingNotifier:
    def __init__(self):
        self.sent = []

    def send(self, kind, recipient, token):
        self.sent.append((kind, recipient, token))

    def last_token(self, kind):
        for sent_kind, _recipient, token in reversed(self.sent):
            if sent_kind == kind:
                return token
        raise AssertionError(f'no {kind} notification was sent')


class FakeOAuthProvider:
    def __init__(self, profile: OAuthProfile):
        self.profile = profile
        self.codes = []

    def authorization_url(self, state: str) -> str:
        return f"https://accounts.example.com/o/oauth2/auth?{urlencode({'state': state})}"

    async def fetch_profile(self, code: str) -> OAuthProfile:
        self.codes.append(code)
        if code == 'bad-code':
            raise OAuthError()
        return self.profile


@pytest.fixture
def db_engine():
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture
def db_session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def oauth_profile():
    return OAuthProfile(
        provider_id='google-123',
        email='oauth.user@example.com',
        full_name='OAuth User',
        picture='https://example.com/avatar.png',
    )


@pytest.fixture
def oauth_provider(oauth_profile):
    return FakeOAuthProvider(oauth_profile)


@pytest.fixture
def app(session_factory, notifier, oauth_provider):
    application = create_app(oauth_provider=oauth_provider, notifier=notifier)

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    application.dependency_overrides[get_db] = override_get_db
    return application


@pytest.fixture
def client(app):
    return TestClient(app)
