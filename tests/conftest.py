import os

# Must be set before estatetrust.core.config builds Settings at import time.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("TELEMETRY_ENABLED", "false")
os.environ.setdefault("OTP_BACKEND", "memory")
os.environ.setdefault("INTERNAL_ADMIN_KEY", "test-internal-key")
os.environ.setdefault("ENV", "test")

import asyncio
from datetime import datetime, timedelta, timezone

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Import Base + all models so metadata is complete
import estatetrust.models  # noqa: F401
from estatetrust.models.base import Base

from estatetrust.api import deps
from estatetrust.core.db import get_db
from estatetrust.main import app
from estatetrust.services.code_delivery import DeliveryError
from estatetrust.services.notifications import NotificationEmitter
from estatetrust.services.otp_store import InMemoryOtpChallengeStore
from estatetrust.services.survey_check import SurveyCheckOutcome, SurveyCheckResult
from estatetrust.services.verification import VerificationStateMachine
from estatetrust.services.verification_policy import VerificationPolicy

from fixtures_seed import seed_users  # noqa: F401


def _test_db_url() -> str:
    return os.getenv("DATABASE_URL_TEST") or "sqlite+aiosqlite:///:memory:"


class FakeClock:
    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2025, 1, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


class RecordingDelivery:
    """Captures codes instead of mailing them; ``fail`` simulates a transport outage."""

    def __init__(self):
        self.sent: list[tuple[str, str]] = []
        self.fail = False

    async def deliver_code(self, address: str, code: str, *, ttl_seconds: int) -> None:
        if self.fail:
            raise DeliveryError("smtp down")
        self.sent.append((address, code))

    def last_code(self) -> str:
        return self.sent[-1][1]


class FakeSurveyVerifier:
    def __init__(self, outcome: SurveyCheckOutcome = SurveyCheckOutcome.PASSED):
        self.outcome = outcome
        self.calls: list[str] = []
        self.raises: Exception | None = None
        self.delay: float = 0.0

    async def check(self, survey_number: str, *, district: str | None, taluk: str | None) -> SurveyCheckResult:
        self.calls.append(survey_number)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.raises is not None:
            raise self.raises
        return SurveyCheckResult(outcome=self.outcome)


@pytest.fixture
async def async_engine():
    url = _test_db_url()
    kwargs = {"poolclass": StaticPool, "connect_args": {"check_same_thread": False}} if url.startswith("sqlite") else {}
    engine = create_async_engine(url, **kwargs)
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
            await conn.run_sync(Base.metadata.create_all)
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
async def db_session(async_engine):
    session_factory = async_sessionmaker(bind=async_engine, expire_on_commit=False, class_=AsyncSession)
    async with session_factory() as session:
        yield session


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def delivery():
    return RecordingDelivery()


@pytest.fixture
def survey():
    return FakeSurveyVerifier()


@pytest.fixture
def otp_store(clock):
    return InMemoryOtpChallengeStore(max_attempts=5, clock=clock)


@pytest.fixture
def notifications(db_session, clock):
    return NotificationEmitter(db_session, clock=clock)


@pytest.fixture
def policy(db_session, clock):
    return VerificationPolicy(db_session, clock=clock)


@pytest.fixture
def state_machine(db_session, policy, notifications, survey, clock):
    return VerificationStateMachine(
        db_session,
        policy=policy,
        notifications=notifications,
        survey_verifier=survey,
        survey_timeout_seconds=0.2,
        clock=clock,
    )


@pytest.fixture
async def client(db_session: AsyncSession, clock, otp_store, delivery, survey):
    """
    HTTP client that uses the test DB session and fake collaborators via dependency overrides.
    """
    async def _override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[deps.get_clock] = lambda: clock
    app.dependency_overrides[deps.get_otp_store] = lambda: otp_store
    app.dependency_overrides[deps.get_code_delivery] = lambda: delivery
    app.dependency_overrides[deps.get_survey_verifier] = lambda: survey
    app.dependency_overrides[deps.get_rate_limiter] = lambda: None

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
