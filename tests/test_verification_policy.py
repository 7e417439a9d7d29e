import pytest

from estatetrust.core.errors import ValidationFailed


@pytest.mark.asyncio
async def test_unset_policy_is_manual(policy):
    assert await policy.get_mode() == "manual"
    state = await policy.get_state()
    assert state.mode == "manual"
    assert state.updated_by is None


@pytest.mark.asyncio
async def test_set_mode_records_who_and_when(policy, seed_users, clock):
    state = await policy.set_mode("auto", seed_users["admin"])
    assert state.changed is True
    assert state.mode == "auto"
    assert state.updated_by == seed_users["admin_id"]
    assert state.updated_at == clock()
    assert await policy.get_mode() == "auto"


@pytest.mark.asyncio
async def test_setting_same_mode_is_noop(policy, seed_users, clock):
    await policy.set_mode("auto", seed_users["admin"])
    clock.advance(60)
    state = await policy.set_mode("auto", seed_users["admin"])
    assert state.changed is False
    assert state.updated_at != clock()


@pytest.mark.asyncio
async def test_explicit_manual_creates_row(policy, seed_users):
    state = await policy.set_mode("manual", seed_users["admin"])
    assert state.changed is True
    assert (await policy.get_state()).updated_by == seed_users["admin_id"]


@pytest.mark.asyncio
async def test_invalid_mode_rejected(policy, seed_users):
    with pytest.raises(ValidationFailed) as ei:
        await policy.set_mode("semi", seed_users["admin"])
    assert ei.value.field == "mode"
    assert await policy.get_mode() == "manual"
