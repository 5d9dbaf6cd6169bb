"""구독 상태 머신 테스트"""
import asyncio
from datetime import timedelta

import pytest

from margin_billing.core.billing_config import CreditReason, SubscriptionTier
from margin_billing.core.responses import MissingRequiredField
from margin_billing.schemas.events import (
    BillingCycle,
    CustomData,
    EventType,
    PaymentEvent,
    SubscriptionStatus,
)
from margin_billing.services.credit_ledger import CreditLedger
from margin_billing.services.subscription_state import HANDLER_MAP, SubscriptionStateMachine

from mocks import InterleavingSubscriptionStore


def _event(clock, event_type=EventType.SUBSCRIPTION_CREATED, **overrides):
    fields = dict(
        type=event_type,
        provider_subscription_id="sub_01",
        provider_customer_id="ctm_01",
        status=SubscriptionStatus.ACTIVE,
        billing_cycle=BillingCycle.MONTHLY,
        current_period_start=clock.now,
        current_period_end=clock.now + timedelta(days=30),
        cancel_at_period_end=False,
        custom_data=CustomData(user_id="user-1"),
    )
    fields.update(overrides)
    return PaymentEvent(**fields)


@pytest.fixture
def machine(stores, ledger, clock):
    return SubscriptionStateMachine(stores.subscriptions, stores.user_settings, ledger, clock=clock)


def test_handler_map_covers_subscription_events():
    assert set(HANDLER_MAP) == {
        EventType.SUBSCRIPTION_CREATED,
        EventType.SUBSCRIPTION_UPDATED,
        EventType.SUBSCRIPTION_CANCELLED,
        EventType.PAYMENT_SUCCEEDED,
        EventType.PAYMENT_FAILED,
    }


def test_payment_event_rejects_one_time_type(clock):
    with pytest.raises(ValueError):
        _event(clock, EventType.ONE_TIME_COMPLETED)


@pytest.mark.asyncio
async def test_created_upserts_and_sets_pro(machine, stores, clock):
    outcome = await machine.apply(_event(clock))

    assert outcome.applied is True
    assert outcome.tier is SubscriptionTier.PRO
    record = stores.subscriptions.records["sub_01"]
    assert record.user_id == "user-1"
    assert record.provider == "paddle"
    assert record.status is SubscriptionStatus.ACTIVE
    assert stores.user_settings.tiers["user-1"] is SubscriptionTier.PRO
    assert stores.ledger.subscription_credits == {"user-1": 0}
    assert stores.ledger.entries == []


@pytest.mark.asyncio
async def test_created_grants_monthly_credits_once(stores, clock):
    ledger = CreditLedger(stores.ledger)
    machine = SubscriptionStateMachine(
        stores.subscriptions,
        stores.user_settings,
        ledger,
        pro_credits_per_month=40,
        clock=clock,
    )

    await machine.apply(_event(clock))
    await machine.apply(_event(clock))

    grants = [e for e in stores.ledger.entries if e.reason is CreditReason.SUBSCRIPTION_GRANT]
    assert len(grants) == 1
    assert grants[0].delta == 40
    assert grants[0].external_ref == "sub_01"
    assert stores.ledger.subscription_credits == {"user-1": 40}


@pytest.mark.asyncio
async def test_created_requires_user_id(machine, stores, clock):
    with pytest.raises(MissingRequiredField) as excinfo:
        await machine.apply(_event(clock, custom_data=CustomData()))

    assert excinfo.value.field == "customData.userId"
    assert stores.subscriptions.records == {}


@pytest.mark.asyncio
async def test_created_requires_period(machine, stores, clock):
    with pytest.raises(MissingRequiredField):
        await machine.apply(_event(clock, current_period_start=None, current_period_end=None))
    assert stores.subscriptions.records == {}


@pytest.mark.asyncio
async def test_updated_keeps_existing_period_when_absent(machine, stores, clock):
    await machine.apply(_event(clock, billing_cycle=BillingCycle.YEARLY))
    original = stores.subscriptions.records["sub_01"]

    outcome = await machine.apply(
        _event(
            clock,
            EventType.SUBSCRIPTION_UPDATED,
            status=SubscriptionStatus.PAUSED,
            billing_cycle=None,
            current_period_start=None,
            current_period_end=None,
            custom_data=CustomData(),
        )
    )

    record = stores.subscriptions.records["sub_01"]
    assert outcome.applied is True
    assert record.status is SubscriptionStatus.PAUSED
    assert record.billing_cycle is BillingCycle.YEARLY
    assert record.current_period_end == original.current_period_end
    assert record.user_id == "user-1"
    assert outcome.tier is SubscriptionTier.PRO


@pytest.mark.asyncio
async def test_cancelled_keeps_access_until_period_end(machine, stores, clock):
    await machine.apply(_event(clock))

    outcome = await machine.apply(_event(clock, EventType.SUBSCRIPTION_CANCELLED, status=SubscriptionStatus.CANCELLED))

    record = stores.subscriptions.records["sub_01"]
    assert record.status is SubscriptionStatus.CANCELLED
    assert record.cancel_at_period_end is True
    assert outcome.tier is SubscriptionTier.PRO

    clock.advance(days=31)
    outcome = await machine.apply(_event(clock, EventType.SUBSCRIPTION_CANCELLED, status=SubscriptionStatus.CANCELLED))
    assert outcome.tier is SubscriptionTier.FREE
    assert stores.user_settings.tiers["user-1"] is SubscriptionTier.FREE


@pytest.mark.asyncio
async def test_payment_succeeded_extends_period(machine, stores, clock):
    await machine.apply(_event(clock))
    new_start = clock.now + timedelta(days=30)
    new_end = clock.now + timedelta(days=60)

    await machine.apply(
        _event(
            clock,
            EventType.PAYMENT_SUCCEEDED,
            billing_cycle=None,
            current_period_start=new_start,
            current_period_end=new_end,
        )
    )

    record = stores.subscriptions.records["sub_01"]
    assert record.current_period_end == new_end
    assert record.status is SubscriptionStatus.ACTIVE


@pytest.mark.asyncio
async def test_payment_succeeded_requires_period(machine, clock):
    await machine.apply(_event(clock))

    with pytest.raises(MissingRequiredField):
        await machine.apply(
            _event(clock, EventType.PAYMENT_SUCCEEDED, current_period_start=None, current_period_end=None)
        )


@pytest.mark.asyncio
async def test_payment_failed_marks_past_due(machine, stores, clock):
    await machine.apply(_event(clock))

    outcome = await machine.apply(_event(clock, EventType.PAYMENT_FAILED, status=SubscriptionStatus.PAST_DUE))

    assert stores.subscriptions.records["sub_01"].status is SubscriptionStatus.PAST_DUE
    assert outcome.tier is SubscriptionTier.PRO


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "event_type",
    [
        EventType.SUBSCRIPTION_UPDATED,
        EventType.SUBSCRIPTION_CANCELLED,
        EventType.PAYMENT_SUCCEEDED,
        EventType.PAYMENT_FAILED,
    ],
)
async def test_unknown_subscription_dropped(machine, stores, clock, event_type):
    outcome = await machine.apply(_event(clock, event_type, provider_subscription_id="sub_missing"))

    assert outcome.applied is False
    assert outcome.detail == "subscription_not_found"
    assert stores.subscriptions.records == {}
    assert stores.user_settings.tiers == {}


@pytest.mark.asyncio
async def test_concurrent_renewal_and_cancel_keep_both_changes(stores, ledger, clock):
    subscriptions = InterleavingSubscriptionStore()
    machine = SubscriptionStateMachine(subscriptions, stores.user_settings, ledger, clock=clock)
    await machine.apply(_event(clock))
    renewed_end = clock.now + timedelta(days=31)

    await asyncio.gather(
        machine.apply(
            _event(
                clock,
                EventType.PAYMENT_SUCCEEDED,
                billing_cycle=None,
                current_period_start=clock.now + timedelta(days=1),
                current_period_end=renewed_end,
            )
        ),
        machine.apply(_event(clock, EventType.SUBSCRIPTION_CANCELLED, status=SubscriptionStatus.CANCELLED)),
    )

    record = subscriptions.records["sub_01"]
    assert record.current_period_end == renewed_end
    assert record.cancel_at_period_end is True


@pytest.mark.asyncio
async def test_payment_failed_writes_only_status(machine, stores, clock):
    await machine.apply(_event(clock))
    before = stores.subscriptions.records["sub_01"]

    await machine.apply(
        _event(
            clock,
            EventType.PAYMENT_FAILED,
            status=SubscriptionStatus.PAST_DUE,
            current_period_end=clock.now + timedelta(days=90),
        )
    )

    record = stores.subscriptions.records["sub_01"]
    assert record.status is SubscriptionStatus.PAST_DUE
    assert record.current_period_end == before.current_period_end
    assert stores.subscriptions.calls[-1] == "update_fields"
