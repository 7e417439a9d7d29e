import pytest
from fakeredis import FakeAsyncRedis
from sqlalchemy import select

from estatetrust.core.errors import DeliveryFailed, ListingNotFound, OtpRejected, RateLimited, ValidationFailed
from estatetrust.models.audit_log import AuditLog
from estatetrust.models.notification import Notification
from estatetrust.services.disclosure import ContactDisclosureService
from estatetrust.services.otp_store import ChallengeKey
from estatetrust.services.rate_limit import TokenRateLimiter

from fixtures_seed import make_listing


@pytest.fixture
def disclosure(db_session, otp_store, delivery, notifications):
    return ContactDisclosureService(
        db_session,
        store=otp_store,
        delivery=delivery,
        notifications=notifications,
        ttl_seconds=600,
    )


def _wrong(code: str) -> str:
    return "000000" if code != "000000" else "111111"


@pytest.mark.asyncio
async def test_request_code_mails_and_stores(db_session, seed_users, disclosure, delivery, otp_store, clock):
    listing = await make_listing(db_session, seed_users["agent_id"])

    issued = await disclosure.request_code(listing.id, "Buyer@Example.com", None)
    assert issued.address == "buyer@example.com"
    assert issued.code is None
    assert (issued.expires_at - clock()).total_seconds() == 600

    assert delivery.sent == [("buyer@example.com", delivery.last_code())]
    stored = await otp_store.get(ChallengeKey.of("buyer@example.com", listing.id))
    assert stored.code == delivery.last_code()


@pytest.mark.asyncio
async def test_request_code_echo_for_dev(db_session, seed_users, otp_store, delivery, notifications):
    service = ContactDisclosureService(
        db_session, store=otp_store, delivery=delivery, notifications=notifications, echo_code=True
    )
    listing = await make_listing(db_session, seed_users["agent_id"])
    issued = await service.request_code(listing.id, "buyer@example.com", None)
    assert issued.code == delivery.last_code()


@pytest.mark.asyncio
async def test_delivery_failure_leaves_no_challenge(db_session, seed_users, disclosure, delivery, otp_store):
    listing = await make_listing(db_session, seed_users["agent_id"])
    delivery.fail = True

    with pytest.raises(DeliveryFailed):
        await disclosure.request_code(listing.id, "buyer@example.com", None)
    assert await otp_store.get(ChallengeKey.of("buyer@example.com", listing.id)) is None


@pytest.mark.asyncio
async def test_request_code_validates_input(db_session, seed_users, disclosure, delivery):
    listing = await make_listing(db_session, seed_users["agent_id"])
    with pytest.raises(ValidationFailed) as ei:
        await disclosure.request_code(listing.id, "not-an-email", None)
    assert ei.value.field == "email"

    with pytest.raises(ListingNotFound):
        await disclosure.request_code("lst_missing", "buyer@example.com", None)
    assert delivery.sent == []


@pytest.mark.asyncio
async def test_request_code_rate_limited(db_session, seed_users, otp_store, delivery, notifications):
    r = FakeAsyncRedis(decode_responses=True)
    service = ContactDisclosureService(
        db_session,
        store=otp_store,
        delivery=delivery,
        notifications=notifications,
        rate_limiter=TokenRateLimiter(r),
        send_limit=2,
        send_window_seconds=3600,
    )
    listing = await make_listing(db_session, seed_users["agent_id"])

    await service.request_code(listing.id, "buyer@example.com", None)
    await service.request_code(listing.id, "buyer@example.com", None)
    with pytest.raises(RateLimited) as ei:
        await service.request_code(listing.id, "buyer@example.com", None)
    assert ei.value.retry_after > 0
    assert len(delivery.sent) == 2
    await r.aclose()


@pytest.mark.asyncio
async def test_verify_discloses_owner_contact(db_session, seed_users, disclosure, delivery):
    listing = await make_listing(db_session, seed_users["agent_id"])
    await disclosure.request_code(listing.id, "buyer@example.com", None)

    contact = await disclosure.verify_code(listing.id, "buyer@example.com", delivery.last_code(), seed_users["buyer"])
    assert contact.name == "Owner One"
    assert contact.phone == "+919000000001"
    assert contact.email == "owner@example.com"

    notes = (await db_session.execute(select(Notification).where(Notification.listing_id == listing.id))).scalars().all()
    by_type = {n.type: n for n in notes}
    assert set(by_type) == {"contact_disclosed", "contact_owner"}
    assert by_type["contact_disclosed"].audience == "admins"
    assert by_type["contact_owner"].audience == f"user:{seed_users['agent_id']}"
    assert by_type["contact_owner"].meta["viewer_id"] == seed_users["buyer_id"]
    assert by_type["contact_owner"].meta["viewer_email"] == "buyer@example.com"

    rows = (await db_session.execute(
        select(AuditLog).where(AuditLog.action == "contact_disclosed", AuditLog.actor_user_id == seed_users["buyer_id"])
    )).scalars().all()
    assert len(rows) == 1


@pytest.mark.asyncio
async def test_owner_contact_falls_back_to_agent(db_session, seed_users, disclosure, delivery):
    listing = await make_listing(
        db_session, seed_users["agent_id"], owner_name=None, owner_phone=None, owner_email=None
    )
    await disclosure.request_code(listing.id, "buyer@example.com", None)
    contact = await disclosure.verify_code(listing.id, "buyer@example.com", delivery.last_code(), None)
    assert contact.name == "Agent Test"
    assert contact.phone == "+919876543210"
    assert contact.email == "agent@test.com"


@pytest.mark.asyncio
async def test_anonymous_viewer_id_must_name_real_user(db_session, seed_users, disclosure, delivery):
    listing = await make_listing(db_session, seed_users["agent_id"])

    await disclosure.request_code(listing.id, "buyer@example.com", None)
    await disclosure.verify_code(listing.id, "buyer@example.com", delivery.last_code(), None, viewer_id="usr_ghost")

    await disclosure.request_code(listing.id, "buyer@example.com", None)
    await disclosure.verify_code(
        listing.id, "buyer@example.com", delivery.last_code(), None, viewer_id=seed_users["buyer_id"]
    )

    stmt = select(Notification).where(Notification.type == "contact_owner").order_by(Notification.id)
    viewers = {n.meta["viewer_id"] for n in (await db_session.execute(stmt)).scalars().all()}
    assert viewers == {None, seed_users["buyer_id"]}


@pytest.mark.asyncio
async def test_wrong_code_rejected_without_disclosure(db_session, seed_users, disclosure, delivery):
    listing = await make_listing(db_session, seed_users["agent_id"])
    await disclosure.request_code(listing.id, "buyer@example.com", None)

    with pytest.raises(OtpRejected) as ei:
        await disclosure.verify_code(listing.id, "buyer@example.com", _wrong(delivery.last_code()), None)
    assert ei.value.reason == "invalid"
    assert ei.value.resend_suggested is False

    notes = (await db_session.execute(select(Notification))).scalars().all()
    assert notes == []


@pytest.mark.asyncio
async def test_expired_code_suggests_resend(db_session, seed_users, disclosure, delivery, clock):
    listing = await make_listing(db_session, seed_users["agent_id"])
    await disclosure.request_code(listing.id, "buyer@example.com", None)
    clock.advance(601)

    with pytest.raises(OtpRejected) as ei:
        await disclosure.verify_code(listing.id, "buyer@example.com", delivery.last_code(), None)
    assert ei.value.reason == "expired"
    assert ei.value.resend_suggested is True


@pytest.mark.asyncio
async def test_code_is_bound_to_address(db_session, seed_users, disclosure, delivery):
    listing = await make_listing(db_session, seed_users["agent_id"])
    await disclosure.request_code(listing.id, "buyer@example.com", None)

    with pytest.raises(OtpRejected):
        await disclosure.verify_code(listing.id, "someone@example.com", delivery.last_code(), None)


@pytest.mark.asyncio
@pytest.mark.parametrize("otp", ["12345", "1234567", "12a456", ""])
async def test_malformed_code_is_validation_error(db_session, seed_users, disclosure, otp):
    listing = await make_listing(db_session, seed_users["agent_id"])
    with pytest.raises(ValidationFailed) as ei:
        await disclosure.verify_code(listing.id, "buyer@example.com", otp, None)
    assert ei.value.field == "otp"


@pytest.mark.asyncio
async def test_pending_listing_contact_can_be_disclosed(db_session, seed_users, disclosure, delivery, state_machine):
    listing = await state_machine.submit(await make_listing(db_session, seed_users["agent_id"]))
    assert listing.verification_status == "pending_verification"

    await disclosure.request_code(listing.id, "buyer@example.com", None)
    contact = await disclosure.verify_code(listing.id, "buyer@example.com", delivery.last_code(), None)
    assert contact.name == "Owner One"
