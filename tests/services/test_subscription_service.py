"""사용자 요청 기반 구독 서비스 테스트"""
from datetime import timedelta

import pytest

from margin_billing.core.billing_config import SubscriptionTier
from margin_billing.core.responses import (
    ExternalServiceException,
    SubscriptionConflict,
    SubscriptionNotFound,
    UnknownCreditPack,
)
from margin_billing.schemas.billing import SubscriptionRecord
from margin_billing.schemas.events import BillingCycle, SubscriptionStatus
from margin_billing.services.paddle_billing_client import PaddleAPIError
from margin_billing.services.subscription_service import SubscriptionService


class StubProvider:
    """공급자 호출을 기록하는 스텁"""

    name = "paddle"

    def __init__(self, error: Exception = None):
        self.error = error
        self.calls = []

    async def _record(self, *call):
        self.calls.append(call)
        if self.error:
            raise self.error
        return {"data": {}}

    async def cancel_subscription(self, provider_subscription_id):
        return await self._record("cancel", provider_subscription_id)

    async def resume_subscription(self, provider_subscription_id):
        return await self._record("resume", provider_subscription_id)

    async def get_portal_url(self, provider_customer_id, provider_subscription_id=None):
        await self._record("portal", provider_customer_id, provider_subscription_id)
        return "https://portal.example.com"

    async def create_checkout(self, user_id, billing_cycle, email=None):
        await self._record("checkout", user_id, billing_cycle, email)
        return {"checkout_url": "https://pay.example.com", "session_id": "txn_1"}

    async def create_credit_pack_checkout(self, user_id, pack_id, email=None):
        await self._record("pack_checkout", user_id, pack_id, email)
        return {"checkout_url": "https://pay.example.com", "session_id": "txn_2"}


async def _seed(stores, clock, **overrides):
    fields = dict(
        user_id="user-1",
        provider="paddle",
        provider_subscription_id="sub_01",
        provider_customer_id="ctm_01",
        status=SubscriptionStatus.ACTIVE,
        billing_cycle=BillingCycle.MONTHLY,
        current_period_start=clock.now - timedelta(days=10),
        current_period_end=clock.now + timedelta(days=20),
    )
    fields.update(overrides)
    await stores.subscriptions.upsert(SubscriptionRecord(**fields))


@pytest.fixture
def stub_provider():
    return StubProvider()


@pytest.fixture
def service(stores, stub_provider, ledger, clock):
    return SubscriptionService(stores.subscriptions, stub_provider, ledger, clock)


@pytest.mark.asyncio
async def test_info_without_subscription_is_free(service):
    info = await service.get_subscription_info("nobody")

    assert info.tier is SubscriptionTier.FREE
    assert info.status is None


@pytest.mark.asyncio
async def test_info_recomputes_tier_at_read_time(service, stores, clock):
    await _seed(stores, clock, status=SubscriptionStatus.CANCELLED, cancel_at_period_end=True)

    assert (await service.get_subscription_info("user-1")).tier is SubscriptionTier.PRO
    clock.advance(days=21)
    assert (await service.get_subscription_info("user-1")).tier is SubscriptionTier.FREE


@pytest.mark.asyncio
async def test_cancel_calls_provider(service, stores, stub_provider, clock):
    await _seed(stores, clock)

    result = await service.cancel_subscription("user-1")

    assert stub_provider.calls == [("cancel", "sub_01")]
    assert result["period_end"] == (clock.now + timedelta(days=20)).isoformat()


@pytest.mark.asyncio
async def test_cancel_already_cancelled_conflict(service, stores, stub_provider, clock):
    await _seed(stores, clock, status=SubscriptionStatus.CANCELLED)

    with pytest.raises(SubscriptionConflict):
        await service.cancel_subscription("user-1")
    assert stub_provider.calls == []


@pytest.mark.asyncio
async def test_cancel_without_subscription(service):
    with pytest.raises(SubscriptionNotFound):
        await service.cancel_subscription("nobody")


@pytest.mark.asyncio
async def test_resume_requires_scheduled_cancel(service, stores, clock):
    await _seed(stores, clock)
    with pytest.raises(SubscriptionConflict):
        await service.resume_subscription("user-1")


@pytest.mark.asyncio
async def test_resume_after_period_end_conflict(service, stores, clock):
    await _seed(stores, clock, cancel_at_period_end=True, current_period_end=clock.now - timedelta(seconds=1))
    with pytest.raises(SubscriptionConflict):
        await service.resume_subscription("user-1")


@pytest.mark.asyncio
async def test_resume_calls_provider(service, stores, stub_provider, clock):
    await _seed(stores, clock, cancel_at_period_end=True)

    result = await service.resume_subscription("user-1")

    assert stub_provider.calls == [("resume", "sub_01")]
    assert result == {"resumed_at": clock.now.isoformat()}


@pytest.mark.asyncio
async def test_provider_error_wrapped(stores, ledger, clock):
    provider = StubProvider(error=PaddleAPIError("Paddle 구독 정보를 찾을 수 없습니다.", 404))
    service = SubscriptionService(stores.subscriptions, provider, ledger, clock)
    await _seed(stores, clock)

    with pytest.raises(ExternalServiceException) as excinfo:
        await service.cancel_subscription("user-1")

    assert excinfo.value.status_code == 502
    assert excinfo.value.message == "Paddle 구독 정보를 찾을 수 없습니다."


@pytest.mark.asyncio
async def test_portal_url(service, stores, stub_provider, clock):
    await _seed(stores, clock)

    assert await service.get_portal_url("user-1") == {"portal_url": "https://portal.example.com"}
    assert stub_provider.calls == [("portal", "ctm_01", "sub_01")]


@pytest.mark.asyncio
async def test_checkout_blocked_for_active_pro(service, stores, clock):
    await _seed(stores, clock)
    with pytest.raises(SubscriptionConflict):
        await service.create_checkout("user-1", BillingCycle.MONTHLY)


@pytest.mark.asyncio
async def test_checkout_for_free_user(service, stub_provider):
    result = await service.create_checkout("user-2", BillingCycle.YEARLY, "u2@example.com")

    assert result["session_id"] == "txn_1"
    assert stub_provider.calls == [("checkout", "user-2", BillingCycle.YEARLY, "u2@example.com")]


@pytest.mark.asyncio
async def test_credit_pack_checkout_validates_pack(service, stub_provider):
    with pytest.raises(UnknownCreditPack):
        await service.create_credit_pack_checkout("user-1", "pack_999")
    assert stub_provider.calls == []


@pytest.mark.asyncio
async def test_credits_overview(service, ledger):
    await ledger.purchase_pack("user-1", "pack_25", external_ref="txn_1")
    await ledger.consume_credits("user-1", "insights")

    overview = await service.get_credits_overview("user-1")

    assert overview["balance"] == 24
    assert [e["delta"] for e in overview["entries"]] == [-1, 25]
