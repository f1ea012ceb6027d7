from __future__ import annotations

from typing import Dict, Optional, Union

import pytest
from fastapi.testclient import TestClient

from auth_service.core.config import Settings, get_settings
from auth_service.core.errors import AppError
from auth_service.db.bootstrap import create_schema
from auth_service.db.session import make_engine, make_session_factory
from auth_service.main import create_app
from auth_service.models.account_provider import Provider
from auth_service.services.container import build_services
from auth_service.services.providers import ClientHints, Profile, ProviderRegistry, ProviderVerifier

TEST_SECRET = "test-secret-key-0123456789abcdef-xyz"
CRON_SECRET = "cron-secret-for-tests"


class FakeVerifier(ProviderVerifier):
    """Maps credential strings to canned profiles (or errors to raise)."""

    def __init__(self, settings: Settings, provider: Provider, answers: Dict[str, Union[Profile, AppError]]):
        super().__init__(settings, session=None)
        self.provider = provider
        self.answers = answers
        self.calls = []

    def verify(self, credential: str, hints: Optional[ClientHints] = None) -> Profile:
        self.calls.append((credential, hints))
        answer = self.answers.get(credential)
        if answer is None:
            raise self._invalid("unknown_fake_credential")
        if isinstance(answer, AppError):
            raise answer
        return answer


ALICE = Profile(
    provider_user_id="g-alice", email="Alice@Example.com", first_name="Alice", last_name="Smith", email_verified=True
)
ALICE_FACEBOOK = Profile(provider_user_id="fb-alice", email="alice@example.com", first_name="Alice")
BOB_APPLE = Profile(provider_user_id="apple-bob", email="bob@example.com")


@pytest.fixture(autouse=True)
def _test_env(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DATA_DIR", str(tmp_path / "data"))
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.setenv("SECRET_KEY", TEST_SECRET)
    monkeypatch.setenv("CRON_SECRET", CRON_SECRET)
    monkeypatch.setenv("LOG_JSON", "0")
    monkeypatch.setenv("COOKIE_SECURE", "0")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        APP_ENV="test",
        DATABASE_URL="sqlite://",
        SECRET_KEY=TEST_SECRET,
        GOOGLE_WEB_CLIENT_ID="google-web-client",
        GOOGLE_IOS_CLIENT_ID="google-ios-client",
        APPLE_BUNDLE_ID="com.example.budget",
        FACEBOOK_APP_ID="1234567890",
        FACEBOOK_APP_SECRET="facebook-app-secret",
        CRON_SECRET=CRON_SECRET,
        COOKIE_SECURE=False,
        DEFAULT_CLIENT_TRANSPORT="body",
        LOG_JSON=False,
    )


@pytest.fixture
def engine(settings):
    eng = make_engine(settings.DATABASE_URL)
    create_schema(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def db(engine):
    session = make_session_factory(engine)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def registry(settings) -> ProviderRegistry:
    return ProviderRegistry(
        {
            Provider.google: FakeVerifier(settings, Provider.google, {"google-alice": ALICE}),
            Provider.facebook: FakeVerifier(settings, Provider.facebook, {"fb-alice": ALICE_FACEBOOK}),
            Provider.apple: FakeVerifier(settings, Provider.apple, {"apple-bob": BOB_APPLE}),
        }
    )


@pytest.fixture
def services(settings, registry):
    return build_services(settings, providers=registry)


@pytest.fixture
def app(settings, services, engine):
    return create_app(settings=settings, services=services, engine=engine)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def make_user(db):
    from auth_service.models.user import User

    def _make(email: str = "carol@example.com", **fields) -> User:
        user = User(email=email, **fields)
        db.add(user)
        db.commit()
        return user

    return _make
