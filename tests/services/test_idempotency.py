"""웹훅 중복 처리 방지 테스트"""
from datetime import timedelta

import pytest

from margin_billing.services.idempotency import IdempotencyGuard

from mocks import InMemoryProcessedEventStore


@pytest.mark.asyncio
async def test_first_claim_wins_then_duplicates(clock):
    guard = IdempotencyGuard(InMemoryProcessedEventStore(clock), clock)

    assert await guard.mark_processed("evt_1", "subscription.created") is True
    for _ in range(100):
        assert await guard.mark_processed("evt_1", "subscription.created") is False


@pytest.mark.asyncio
async def test_missing_event_id_always_processed(clock):
    store = InMemoryProcessedEventStore(clock)
    guard = IdempotencyGuard(store, clock)

    assert await guard.mark_processed(None) is True
    assert await guard.mark_processed("") is True
    assert store.calls == []


@pytest.mark.asyncio
async def test_release_allows_redelivery(clock):
    guard = IdempotencyGuard(InMemoryProcessedEventStore(clock), clock)

    assert await guard.mark_processed("evt_2") is True
    await guard.release("evt_2")
    assert await guard.mark_processed("evt_2") is True


@pytest.mark.asyncio
async def test_mark_rejected_keeps_claim(clock):
    store = InMemoryProcessedEventStore(clock)
    guard = IdempotencyGuard(store, clock)

    await guard.mark_processed("evt_3")
    await guard.mark_rejected("evt_3", "Missing required field: customData.userId")

    assert store.rows["evt_3"]["status"] == "rejected"
    assert await guard.mark_processed("evt_3") is False


@pytest.mark.asyncio
async def test_purge_expired_removes_only_old_records(clock):
    store = InMemoryProcessedEventStore(clock)
    guard = IdempotencyGuard(store, clock)

    await guard.mark_processed("evt_old")
    clock.advance(days=8)
    await guard.mark_processed("evt_new")

    deleted = await guard.purge_expired(timedelta(days=7))

    assert deleted == 1
    assert set(store.rows) == {"evt_new"}
