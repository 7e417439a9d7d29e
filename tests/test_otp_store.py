import asyncio
import re

import pytest

from estatetrust.services.otp_store import (
    CODE_LENGTH,
    ChallengeKey,
    InMemoryOtpChallengeStore,
    OtpVerdict,
    generate_code,
)


KEY = ChallengeKey.of("Buyer@Example.com", "lst_1")


def _wrong(code: str) -> str:
    return "000000" if code != "000000" else "111111"


def test_generate_code_is_six_digits():
    for _ in range(200):
        code = generate_code()
        assert len(code) == CODE_LENGTH
        assert re.fullmatch(r"\d{6}", code)


def test_challenge_key_normalizes_address():
    assert ChallengeKey.of("  Buyer@Example.COM ", "lst_1") == ChallengeKey.of("buyer@example.com", "lst_1")


@pytest.mark.asyncio
async def test_correct_code_verifies_once(otp_store):
    ch = await otp_store.create(KEY, 600)
    assert await otp_store.verify(KEY, ch.code) is OtpVerdict.OK
    # single use
    assert await otp_store.verify(KEY, ch.code) is OtpVerdict.CONSUMED


@pytest.mark.asyncio
async def test_unknown_key_is_invalid(otp_store):
    assert await otp_store.verify(KEY, "123456") is OtpVerdict.INVALID


@pytest.mark.asyncio
async def test_expired_code_rejected_even_if_correct(otp_store, clock):
    ch = await otp_store.create(KEY, 600)
    clock.advance(601)
    assert await otp_store.verify(KEY, ch.code) is OtpVerdict.EXPIRED


@pytest.mark.asyncio
async def test_code_valid_at_exact_expiry(otp_store, clock):
    ch = await otp_store.create(KEY, 600)
    clock.advance(600)
    assert await otp_store.verify(KEY, ch.code) is OtpVerdict.OK


@pytest.mark.asyncio
async def test_attempts_exhausted_after_five_wrong_codes(otp_store):
    ch = await otp_store.create(KEY, 600)
    for _ in range(5):
        assert await otp_store.verify(KEY, _wrong(ch.code)) is OtpVerdict.INVALID

    # the right code no longer helps
    assert await otp_store.verify(KEY, ch.code) is OtpVerdict.EXHAUSTED
    stored = await otp_store.get(KEY)
    assert stored.attempts == 5


@pytest.mark.asyncio
async def test_fifth_attempt_can_still_succeed(otp_store):
    ch = await otp_store.create(KEY, 600)
    for _ in range(4):
        await otp_store.verify(KEY, _wrong(ch.code))
    assert await otp_store.verify(KEY, ch.code) is OtpVerdict.OK


@pytest.mark.asyncio
async def test_resend_replaces_previous_code(otp_store):
    first = await otp_store.create(KEY, 600)
    for _ in range(3):
        await otp_store.verify(KEY, _wrong(first.code))

    second = await otp_store.create(KEY, 600)
    stored = await otp_store.get(KEY)
    assert stored.code == second.code
    assert stored.attempts == 0

    if first.code != second.code:
        assert await otp_store.verify(KEY, first.code) is OtpVerdict.INVALID
    assert await otp_store.verify(KEY, second.code) is OtpVerdict.OK


@pytest.mark.asyncio
async def test_challenges_are_scoped_to_listing(otp_store):
    other = ChallengeKey.of("buyer@example.com", "lst_2")
    ch = await otp_store.create(KEY, 600)
    assert await otp_store.verify(other, ch.code) is OtpVerdict.INVALID
    assert await otp_store.verify(KEY, ch.code) is OtpVerdict.OK


@pytest.mark.asyncio
async def test_concurrent_verifies_succeed_exactly_once(otp_store):
    ch = await otp_store.create(KEY, 600)
    verdicts = await asyncio.gather(*[otp_store.verify(KEY, ch.code) for _ in range(10)])
    assert verdicts.count(OtpVerdict.OK) == 1
    assert set(verdicts) == {OtpVerdict.OK, OtpVerdict.CONSUMED}


@pytest.mark.asyncio
async def test_discard_only_matching_code(otp_store):
    ch = await otp_store.create(KEY, 600)
    assert await otp_store.discard(KEY, code=_wrong(ch.code)) is False
    assert await otp_store.get(KEY) is not None
    assert await otp_store.discard(KEY, code=ch.code) is True
    assert await otp_store.get(KEY) is None
    assert await otp_store.discard(KEY) is False


@pytest.mark.asyncio
async def test_sweep_expired_respects_retention(clock):
    store = InMemoryOtpChallengeStore(max_attempts=5, clock=clock)
    await store.create(KEY, 60)
    fresh = ChallengeKey.of("other@example.com", "lst_1")

    clock.advance(120)
    await store.create(fresh, 600)

    assert await store.sweep_expired(retention_seconds=300) == 0
    clock.advance(300)
    assert await store.sweep_expired(retention_seconds=300) == 1
    assert await store.get(KEY) is None
    assert await store.get(fresh) is not None
