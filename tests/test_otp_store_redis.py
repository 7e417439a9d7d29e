import asyncio

from fakeredis import FakeAsyncRedis
import pytest

from estatetrust.services.otp_store import ChallengeKey, OtpVerdict, RedisOtpChallengeStore


KEY = ChallengeKey.of("buyer@example.com", "lst_1")


@pytest.fixture
async def redis_store(clock):
    r = FakeAsyncRedis(decode_responses=True)
    yield RedisOtpChallengeStore(r, max_attempts=5, retention_seconds=3600, clock=clock)
    await r.aclose()


@pytest.mark.asyncio
async def test_redis_create_and_verify(redis_store):
    ch = await redis_store.create(KEY, 600)
    stored = await redis_store.get(KEY)
    assert stored.code == ch.code
    assert stored.expires_at == ch.expires_at
    assert stored.attempts == 0

    assert await redis_store.verify(KEY, ch.code) is OtpVerdict.OK
    assert await redis_store.verify(KEY, ch.code) is OtpVerdict.CONSUMED


@pytest.mark.asyncio
async def test_redis_key_expiry_covers_retention(redis_store):
    await redis_store.create(KEY, 600)
    ttl = await redis_store.r.ttl(redis_store._rkey(KEY))
    assert 600 < ttl <= 600 + 3600


@pytest.mark.asyncio
async def test_redis_expired_and_exhausted(redis_store, clock):
    ch = await redis_store.create(KEY, 600)
    wrong = "000000" if ch.code != "000000" else "111111"
    for _ in range(5):
        assert await redis_store.verify(KEY, wrong) is OtpVerdict.INVALID
    assert await redis_store.verify(KEY, ch.code) is OtpVerdict.EXHAUSTED

    ch = await redis_store.create(KEY, 600)
    clock.advance(601)
    assert await redis_store.verify(KEY, ch.code) is OtpVerdict.EXPIRED


@pytest.mark.asyncio
async def test_redis_concurrent_verify_single_success(redis_store):
    ch = await redis_store.create(KEY, 600)
    verdicts = await asyncio.gather(*[redis_store.verify(KEY, ch.code) for _ in range(5)])
    assert verdicts.count(OtpVerdict.OK) == 1


@pytest.mark.asyncio
async def test_redis_discard_checks_code(redis_store):
    ch = await redis_store.create(KEY, 600)
    wrong = "000000" if ch.code != "000000" else "111111"
    assert await redis_store.discard(KEY, code=wrong) is False
    assert await redis_store.discard(KEY, code=ch.code) is True
    assert await redis_store.get(KEY) is None
