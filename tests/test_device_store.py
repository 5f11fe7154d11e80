import asyncio
from datetime import datetime, timedelta

import pytest

from app.database import make_engine, make_session_factory
from app.enums import DeviceRole, DeviceStatus
from app.exceptions.errors import AlreadyPaired, InvalidCode, StoreUnavailable, UnregisteredSession
from app.services.device_store import DeviceStore, PairingResult


async def test_upsert_inserts_online_device(store):
    await store.upsert_online("AG1", DeviceRole.AGENT)

    device = await store.get_device("AG1")
    assert device.role == "AGENT"
    assert device.status == DeviceStatus.ONLINE.value
    assert device.peer_id is None
    assert device.pairing_code is None
    assert device.created_at is not None


async def test_upsert_existing_keeps_role_peer_and_code(store):
    for device_id in ("AG1", "CL1", "CL2"):
        await store.upsert_online(device_id, DeviceRole.AGENT)
    await store.set_pairing_code("CL1", "ABC123")
    await store.pair_with_code("AG1", "ABC123")
    await store.set_pairing_code("CL2", "ZZZ999")
    await store.mark_offline("AG1")
    await store.mark_offline("CL2")
    before = await store.get_device("AG1")

    await store.upsert_online("AG1", DeviceRole.CLIENT)
    await store.upsert_online("CL2", DeviceRole.CLIENT)

    after = await store.get_device("AG1")
    assert after.status == DeviceStatus.ONLINE.value
    assert after.role == "AGENT"
    assert after.peer_id == "CL1"
    assert after.created_at == before.created_at
    assert after.last_heartbeat >= before.last_heartbeat
    assert (await store.get_device("CL2")).pairing_code == "ZZZ999"


async def test_mark_offline_keeps_peer_and_code(store):
    await store.upsert_online("AG1", DeviceRole.AGENT)
    await store.set_pairing_code("AG1", "K7J2QX")

    await store.mark_offline("AG1")

    device = await store.get_device("AG1")
    assert device.status == DeviceStatus.OFFLINE.value
    assert device.pairing_code == "K7J2QX"


async def test_pairing_code_is_unique(store):
    await store.upsert_online("AG1", DeviceRole.AGENT)
    await store.upsert_online("CL1", DeviceRole.CLIENT)

    assert await store.set_pairing_code("AG1", "K7J2QX") is True
    assert await store.set_pairing_code("CL1", "K7J2QX") is False
    assert (await store.get_device("CL1")).pairing_code is None


async def test_new_code_replaces_previous_one(store):
    await store.upsert_online("CL1", DeviceRole.CLIENT)
    await store.set_pairing_code("CL1", "AAAAAA")
    await store.set_pairing_code("CL1", "BBBBBB")

    assert (await store.get_device("CL1")).pairing_code == "BBBBBB"
    with pytest.raises(InvalidCode):
        await store.pair_with_code("AG1", "AAAAAA")


async def test_pairing_code_for_unknown_device(store):
    with pytest.raises(UnregisteredSession):
        await store.set_pairing_code("ghost", "K7J2QX")


async def test_paired_device_cannot_hold_a_code(store):
    await store.upsert_online("AG1", DeviceRole.AGENT)
    await store.upsert_online("CL1", DeviceRole.CLIENT)
    await store.set_pairing_code("CL1", "K7J2QX")
    await store.pair_with_code("AG1", "K7J2QX")

    for device_id in ("AG1", "CL1"):
        with pytest.raises(AlreadyPaired):
            await store.set_pairing_code(device_id, "NEXT01")

        device = await store.get_device(device_id)
        assert device.pairing_code is None
        assert device.peer_id is not None


async def test_pair_links_both_sides(store):
    await store.upsert_online("AG1", DeviceRole.AGENT)
    await store.upsert_online("CL1", DeviceRole.CLIENT)
    await store.set_pairing_code("CL1", "K7J2QX")
    await store.set_pairing_code("AG1", "OWN123")

    result = await store.pair_with_code("AG1", "K7J2QX")

    assert result == PairingResult(holder_id="CL1", requester_id="AG1", unpaired_ids=[])
    holder = await store.get_device("CL1")
    requester = await store.get_device("AG1")
    assert holder.peer_id == "AG1" and requester.peer_id == "CL1"
    assert holder.status == requester.status == DeviceStatus.PAIRED.value
    assert holder.pairing_code is None
    assert requester.pairing_code is None


async def test_unknown_code_is_invalid(store):
    await store.upsert_online("AG1", DeviceRole.AGENT)

    with pytest.raises(InvalidCode):
        await store.pair_with_code("AG1", "NOPE00")

    device = await store.get_device("AG1")
    assert device.peer_id is None
    assert device.status == DeviceStatus.ONLINE.value


async def test_self_pairing_is_invalid(store):
    await store.upsert_online("CL1", DeviceRole.CLIENT)
    await store.set_pairing_code("CL1", "K7J2QX")

    with pytest.raises(InvalidCode):
        await store.pair_with_code("CL1", "K7J2QX")

    device = await store.get_device("CL1")
    assert device.peer_id is None
    assert device.pairing_code == "K7J2QX"
    assert device.status == DeviceStatus.ONLINE.value


async def test_unregistered_requester_cannot_pair(store):
    await store.upsert_online("CL1", DeviceRole.CLIENT)
    await store.set_pairing_code("CL1", "K7J2QX")

    with pytest.raises(UnregisteredSession):
        await store.pair_with_code("ghost", "K7J2QX")

    assert (await store.get_device("CL1")).pairing_code == "K7J2QX"


async def test_expired_code_is_invalid(store, age_pairing_code):
    await store.upsert_online("AG1", DeviceRole.AGENT)
    await store.upsert_online("CL1", DeviceRole.CLIENT)
    await store.set_pairing_code("CL1", "K7J2QX")
    await age_pairing_code("CL1", datetime.utcnow() - timedelta(hours=1))

    with pytest.raises(InvalidCode):
        await store.pair_with_code("AG1", "K7J2QX", ttl_seconds=600)

    # without a ttl the same code is still redeemable
    result = await store.pair_with_code("AG1", "K7J2QX", ttl_seconds=0)
    assert result.holder_id == "CL1"


async def test_concurrent_redemption_succeeds_once(store):
    for device_id in ("CL1", "AG1", "AG2"):
        await store.upsert_online(device_id, DeviceRole.CLIENT)
    await store.set_pairing_code("CL1", "K7J2QX")

    outcomes = await asyncio.gather(
        store.pair_with_code("AG1", "K7J2QX"),
        store.pair_with_code("AG2", "K7J2QX"),
        return_exceptions=True
    )

    successes = [o for o in outcomes if isinstance(o, PairingResult)]
    failures = [o for o in outcomes if isinstance(o, InvalidCode)]
    assert len(successes) == 1 and len(failures) == 1

    winner = successes[0].requester_id
    loser = "AG2" if winner == "AG1" else "AG1"
    assert (await store.get_device("CL1")).peer_id == winner
    assert (await store.get_device(winner)).peer_id == "CL1"
    assert (await store.get_device(loser)).peer_id is None


async def _pair(store, requester, holder, code, **kwargs):
    await store.set_pairing_code(holder, code)
    return await store.pair_with_code(requester, code, **kwargs)


async def test_repairing_clears_abandoned_peer(store):
    for device_id in ("AG1", "CL1", "CL2"):
        await store.upsert_online(device_id, DeviceRole.CLIENT)
    await _pair(store, "AG1", "CL1", "FIRST1")

    result = await _pair(store, "AG1", "CL2", "SECOND")

    assert result.unpaired_ids == ["CL1"]
    assert (await store.get_device("AG1")).peer_id == "CL2"
    assert (await store.get_device("CL2")).peer_id == "AG1"
    abandoned = await store.get_device("CL1")
    assert abandoned.peer_id is None
    assert abandoned.status == DeviceStatus.ONLINE.value


async def test_repairing_keeps_offline_status_of_abandoned_peer(store):
    for device_id in ("AG1", "CL1", "CL2"):
        await store.upsert_online(device_id, DeviceRole.CLIENT)
    await _pair(store, "AG1", "CL1", "FIRST1")
    await store.mark_offline("CL1")

    await _pair(store, "AG1", "CL2", "SECOND")

    abandoned = await store.get_device("CL1")
    assert abandoned.peer_id is None
    assert abandoned.status == DeviceStatus.OFFLINE.value


async def test_repairing_can_preserve_stale_link(store):
    for device_id in ("AG1", "CL1", "CL2"):
        await store.upsert_online(device_id, DeviceRole.CLIENT)
    await _pair(store, "AG1", "CL1", "FIRST1")

    result = await _pair(store, "AG1", "CL2", "SECOND", clear_stale_peers=False)

    assert result.unpaired_ids == []
    stale = await store.get_device("CL1")
    assert stale.peer_id == "AG1"
    assert stale.status == DeviceStatus.PAIRED.value


async def test_messages_are_persisted(store):
    await store.upsert_online("AG1", DeviceRole.AGENT)
    before = datetime.utcnow()

    first = await store.add_message("AG1", "+5511999", "hello")
    second = await store.add_message("AG1", "+5511888", "again")

    assert second.id > first.id
    assert first.timestamp >= before
    stored = await store.list_messages("AG1")
    assert [(m.sender_from, m.content) for m in stored] == [("+5511888", "again"), ("+5511999", "hello")]


async def test_store_failures_surface_as_store_unavailable(tmp_path):
    # tables were never created on this database
    engine = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'empty.db'}")
    broken = DeviceStore(make_session_factory(engine))
    try:
        with pytest.raises(StoreUnavailable):
            await broken.upsert_online("AG1", DeviceRole.AGENT)
        with pytest.raises(StoreUnavailable):
            await broken.get_peer_id("AG1")
        with pytest.raises(StoreUnavailable):
            await broken.pair_with_code("AG1", "K7J2QX")
    finally:
        await engine.dispose()
