from functools import lru_cache

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from estatetrust.core.clock import Clock, utcnow
from estatetrust.core.config import settings
from estatetrust.core.db import get_db
from estatetrust.services.code_delivery import CodeDelivery, build_code_delivery
from estatetrust.services.disclosure import ContactDisclosureService
from estatetrust.services.http_client import HttpClient
from estatetrust.services.notifications import NotificationEmitter
from estatetrust.services.otp_store import (
    InMemoryOtpChallengeStore,
    OtpChallengeStore,
    RedisOtpChallengeStore,
)
from estatetrust.services.rate_limit import TokenRateLimiter
from estatetrust.services.survey_check import HttpSurveyVerifier, SurveyVerifier
from estatetrust.services.verification import VerificationStateMachine
from estatetrust.services.verification_policy import VerificationPolicy


def get_clock() -> Clock:
    return utcnow


# Process-wide collaborators. Tests swap them through app.dependency_overrides.

@lru_cache
def get_otp_store() -> OtpChallengeStore:
    if settings.otp_backend == "memory":
        return InMemoryOtpChallengeStore(max_attempts=settings.otp_max_attempts)
    return RedisOtpChallengeStore.from_url(
        settings.redis_url,
        max_attempts=settings.otp_max_attempts,
        retention_seconds=settings.otp_retention_seconds,
    )


@lru_cache
def get_code_delivery() -> CodeDelivery:
    return build_code_delivery(settings)


@lru_cache
def get_survey_verifier() -> SurveyVerifier | None:
    if not settings.survey_api_url:
        return None
    client = HttpClient(base_url=settings.survey_api_url, timeout_seconds=settings.survey_check_timeout_seconds)
    return HttpSurveyVerifier(client)


@lru_cache
def get_rate_limiter() -> TokenRateLimiter | None:
    if settings.otp_backend == "memory":
        return None
    return TokenRateLimiter.from_url(settings.redis_url)


def get_notifications(
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> NotificationEmitter:
    return NotificationEmitter(db, clock=clock)


def get_policy(
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> VerificationPolicy:
    return VerificationPolicy(db, clock=clock)


def get_state_machine(
    db: AsyncSession = Depends(get_db),
    policy: VerificationPolicy = Depends(get_policy),
    notifications: NotificationEmitter = Depends(get_notifications),
    survey_verifier: SurveyVerifier | None = Depends(get_survey_verifier),
    clock: Clock = Depends(get_clock),
) -> VerificationStateMachine:
    return VerificationStateMachine(
        db,
        policy=policy,
        notifications=notifications,
        survey_verifier=survey_verifier,
        survey_timeout_seconds=settings.survey_check_timeout_seconds,
        clock=clock,
    )


def get_disclosure_service(
    db: AsyncSession = Depends(get_db),
    store: OtpChallengeStore = Depends(get_otp_store),
    delivery: CodeDelivery = Depends(get_code_delivery),
    notifications: NotificationEmitter = Depends(get_notifications),
    rate_limiter: TokenRateLimiter | None = Depends(get_rate_limiter),
) -> ContactDisclosureService:
    return ContactDisclosureService(
        db,
        store=store,
        delivery=delivery,
        notifications=notifications,
        ttl_seconds=settings.otp_ttl_seconds,
        rate_limiter=rate_limiter,
        send_limit=settings.otp_send_limit,
        send_window_seconds=settings.otp_send_window_seconds,
        echo_code=settings.env == "dev" and settings.otp_dev_echo,
    )
