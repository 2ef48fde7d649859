"""Shared fixtures: in-memory database, controllable clock, recording notifier."""

from datetime import datetime, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.security import CredentialHasher, OTPGenerator, TokenIssuer
from app.db.base import Base
from app.models.user import User
from app.services.accounts import SQLAlchemyAccountStore
from app.services.auth import AuthService


class FakeClock:
    def __init__(self, now=None):
        self.now = now or datetime(2024, 1, 1, 12, 0, 0)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class RecordingNotifier:
    def __init__(self):
        self.sent = []

    async def send_code(self, email, code, purpose):
        self.sent.append((email, code, purpose))
        return True

    def last_code(self, email):
        for sent_email, code, _ in reversed(self.sent):
            if sent_email == email:
                return code
        raise AssertionError(f"no code sent to {email}")


class ScriptedOTPGenerator(OTPGenerator):
    """Hands out queued codes before falling back to random ones."""

    def __init__(self, codes, **kwargs):
        super().__init__(**kwargs)
        self.codes = codes

    def _draw(self):
        if self.codes:
            return self.codes.pop(0)
        return super()._draw()


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def store(db):
    return SQLAlchemyAccountStore(db)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def hasher():
    return CredentialHasher(rounds=4)


@pytest.fixture
def tokens():
    return TokenIssuer(secret_key="test-secret", algorithm="HS256", ttl=timedelta(hours=1))


@pytest.fixture
def otp_codes():
    """Codes the OTP generator hands out first; extend in a test to pin values."""
    return []


@pytest.fixture
def otp(otp_codes, clock):
    return ScriptedOTPGenerator(otp_codes, length=6, ttl=timedelta(minutes=10), clock=clock)


@pytest.fixture
def service(store, notifier, hasher, tokens, clock, otp):
    return AuthService(store, notifier, hasher=hasher, tokens=tokens, otp=otp, clock=clock)


@pytest.fixture
def load_user(db):
    def _load(email):
        db.expire_all()
        return db.query(User).filter(User.email == email).first()
    return _load
