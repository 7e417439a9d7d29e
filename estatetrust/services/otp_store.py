"""
One-time-code challenges for the owner contact disclosure flow.

A challenge is bound to an (address, listing) pair. Creating a challenge for
a key replaces whatever was there, so a resend always kills the older code.
Expiry is checked lazily on verify; nothing needs to sweep the store for the
rules to hold.

Both backends share ``judge`` so the order of checks is identical:

    absent -> invalid, past expires_at -> expired, consumed -> consumed,
    attempts >= max -> exhausted, wrong code -> invalid (+1 attempt), else ok.
"""
from __future__ import annotations

import asyncio
import hmac
import logging
import secrets
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Protocol

import redis.asyncio as redis
from redis.exceptions import WatchError

from estatetrust.core.clock import Clock, utcnow


log = logging.getLogger(__name__)

CODE_LENGTH = 6


class OtpVerdict(str, Enum):
    OK = "ok"
    INVALID = "invalid"
    EXPIRED = "expired"
    EXHAUSTED = "exhausted"
    CONSUMED = "consumed"


@dataclass(frozen=True)
class ChallengeKey:
    address: str
    listing_id: str

    @classmethod
    def of(cls, address: str, listing_id: str) -> "ChallengeKey":
        return cls(address=address.strip().lower(), listing_id=listing_id)


@dataclass(frozen=True)
class OtpChallenge:
    key: ChallengeKey
    code: str
    created_at: datetime
    expires_at: datetime
    attempts: int = 0
    consumed_at: datetime | None = None


def generate_code() -> str:
    # uniform over 000000-999999, leading zeros kept
    return f"{secrets.randbelow(10 ** CODE_LENGTH):0{CODE_LENGTH}d}"


def judge(
    challenge: OtpChallenge | None,
    supplied_code: str,
    *,
    now: datetime,
    max_attempts: int,
) -> tuple[OtpVerdict, OtpChallenge | None]:
    """Decide a verify attempt.

    Returns the verdict and the updated challenge when it must be written
    back (attempt counted or consumed), else ``None``.
    """
    if challenge is None:
        return OtpVerdict.INVALID, None
    if now > challenge.expires_at:
        return OtpVerdict.EXPIRED, None
    if challenge.consumed_at is not None:
        return OtpVerdict.CONSUMED, None
    if challenge.attempts >= max_attempts:
        return OtpVerdict.EXHAUSTED, None

    if not hmac.compare_digest(challenge.code.encode("utf-8"), supplied_code.encode("utf-8")):
        return OtpVerdict.INVALID, replace(challenge, attempts=challenge.attempts + 1)
    return OtpVerdict.OK, replace(challenge, consumed_at=now)


class OtpChallengeStore(Protocol):
    async def create(self, key: ChallengeKey, ttl_seconds: int) -> OtpChallenge:
        ...

    async def verify(self, key: ChallengeKey, supplied_code: str) -> OtpVerdict:
        ...

    async def discard(self, key: ChallengeKey, *, code: str | None = None) -> bool:
        ...


class InMemoryOtpChallengeStore:
    """Process-local store. Every operation runs under one asyncio lock."""

    def __init__(self, *, max_attempts: int = 5, clock: Clock = utcnow):
        self.max_attempts = max_attempts
        self._clock = clock
        self._challenges: dict[ChallengeKey, OtpChallenge] = {}
        self._lock = asyncio.Lock()

    async def create(self, key: ChallengeKey, ttl_seconds: int) -> OtpChallenge:
        now = self._clock()
        challenge = OtpChallenge(
            key=key,
            code=generate_code(),
            created_at=now,
            expires_at=now + timedelta(seconds=ttl_seconds),
        )
        async with self._lock:
            self._challenges[key] = challenge
        return challenge

    async def get(self, key: ChallengeKey) -> OtpChallenge | None:
        async with self._lock:
            return self._challenges.get(key)

    async def verify(self, key: ChallengeKey, supplied_code: str) -> OtpVerdict:
        async with self._lock:
            verdict, updated = judge(
                self._challenges.get(key),
                supplied_code,
                now=self._clock(),
                max_attempts=self.max_attempts,
            )
            if updated is not None:
                self._challenges[key] = updated
            return verdict

    async def discard(self, key: ChallengeKey, *, code: str | None = None) -> bool:
        async with self._lock:
            current = self._challenges.get(key)
            if current is None or (code is not None and current.code != code):
                return False
            del self._challenges[key]
            return True

    async def sweep_expired(self, *, retention_seconds: int = 0) -> int:
        """Drop challenges that expired more than ``retention_seconds`` ago."""
        cutoff = self._clock() - timedelta(seconds=retention_seconds)
        async with self._lock:
            dead = [k for k, c in self._challenges.items() if c.expires_at < cutoff]
            for k in dead:
                del self._challenges[k]
        return len(dead)


def _ts(dt: datetime | None) -> str:
    return "" if dt is None else repr(dt.timestamp())


def _from_ts(raw: str | None) -> datetime | None:
    if not raw:
        return None
    return datetime.fromtimestamp(float(raw), tz=timezone.utc)


class RedisOtpChallengeStore:
    """
    Redis hash per challenge.

    Keys live for ttl + retention so a lazily-expired challenge still answers
    "expired" (and a used one "consumed") for a while instead of "invalid".
    verify is WATCH/MULTI: if another verify touched the key in between, the
    transaction aborts and the attempt is re-judged against fresh state.
    """

    def __init__(
        self,
        client: redis.Redis,
        *,
        max_attempts: int = 5,
        retention_seconds: int = 3600,
        clock: Clock = utcnow,
        prefix: str = "otp",
    ):
        self.r = client
        self.max_attempts = max_attempts
        self.retention_seconds = retention_seconds
        self._clock = clock
        self._prefix = prefix

    @classmethod
    def from_url(cls, redis_url: str, **kwargs) -> "RedisOtpChallengeStore":
        return cls(redis.from_url(redis_url, decode_responses=True), **kwargs)

    def _rkey(self, key: ChallengeKey) -> str:
        return f"{self._prefix}:{key.listing_id}:{key.address}"

    def _decode(self, key: ChallengeKey, data: dict) -> OtpChallenge | None:
        if not data:
            return None
        return OtpChallenge(
            key=key,
            code=data["code"],
            created_at=_from_ts(data["created_at"]),
            expires_at=_from_ts(data["expires_at"]),
            attempts=int(data.get("attempts") or 0),
            consumed_at=_from_ts(data.get("consumed_at")),
        )

    async def create(self, key: ChallengeKey, ttl_seconds: int) -> OtpChallenge:
        now = self._clock()
        challenge = OtpChallenge(
            key=key,
            code=generate_code(),
            created_at=now,
            expires_at=now + timedelta(seconds=ttl_seconds),
        )
        rkey = self._rkey(key)
        async with self.r.pipeline(transaction=True) as pipe:
            pipe.delete(rkey)
            pipe.hset(rkey, mapping={
                "code": challenge.code,
                "created_at": _ts(challenge.created_at),
                "expires_at": _ts(challenge.expires_at),
                "attempts": "0",
                "consumed_at": "",
            })
            pipe.expire(rkey, ttl_seconds + self.retention_seconds)
            await pipe.execute()
        return challenge

    async def get(self, key: ChallengeKey) -> OtpChallenge | None:
        return self._decode(key, await self.r.hgetall(self._rkey(key)))

    async def verify(self, key: ChallengeKey, supplied_code: str) -> OtpVerdict:
        rkey = self._rkey(key)
        while True:
            async with self.r.pipeline(transaction=True) as pipe:
                try:
                    await pipe.watch(rkey)
                    challenge = self._decode(key, await pipe.hgetall(rkey))
                    verdict, updated = judge(
                        challenge,
                        supplied_code,
                        now=self._clock(),
                        max_attempts=self.max_attempts,
                    )
                    if updated is None:
                        await pipe.unwatch()
                        return verdict

                    pipe.multi()
                    pipe.hset(rkey, mapping={
                        "attempts": str(updated.attempts),
                        "consumed_at": _ts(updated.consumed_at),
                    })
                    await pipe.execute()
                    return verdict
                except WatchError:
                    log.debug("otp verify raced on %s, retrying", rkey)
                    continue

    async def discard(self, key: ChallengeKey, *, code: str | None = None) -> bool:
        rkey = self._rkey(key)
        if code is None:
            return bool(await self.r.delete(rkey))

        while True:
            async with self.r.pipeline(transaction=True) as pipe:
                try:
                    await pipe.watch(rkey)
                    current = await pipe.hget(rkey, "code")
                    if current != code:
                        await pipe.unwatch()
                        return False
                    pipe.multi()
                    pipe.delete(rkey)
                    await pipe.execute()
                    return True
                except WatchError:
                    continue
