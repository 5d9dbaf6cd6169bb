"""
구독 상태 머신

정규화된 PaymentEvent를 구독 레코드에 반영하고, 그 결과로 계산된 등급을
사용자 설정(user_settings.subscription_tier)에 저장한다.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional

from margin_billing.core.billing_config import CreditReason, SubscriptionTier
from margin_billing.core.interfaces import ISubscriptionStore, IUserSettingsStore
from margin_billing.core.responses import MissingRequiredField, SubscriptionNotFound
from margin_billing.schemas.billing import SubscriptionRecord
from margin_billing.schemas.events import (
    SUBSCRIPTION_EVENT_TYPES,
    BillingCycle,
    EventType,
    PaymentEvent,
    SubscriptionStatus,
)
from margin_billing.services.credit_ledger import CreditLedger
from margin_billing.services.tier_resolver import resolve_tier

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SubscriptionOutcome:
    """이벤트 적용 결과"""
    event_type: EventType
    provider_subscription_id: str
    applied: bool
    user_id: Optional[str] = None
    status: Optional[SubscriptionStatus] = None
    tier: Optional[SubscriptionTier] = None
    detail: Optional[str] = None


@dataclass(slots=True)
class SubscriptionContext:
    event: PaymentEvent
    subscriptions: ISubscriptionStore
    user_settings: IUserSettingsStore
    ledger: CreditLedger
    provider_name: str
    pro_credits_per_month: int
    now: datetime


HandlerFunc = Callable[[SubscriptionContext], Awaitable[SubscriptionOutcome]]


async def _update(ctx: SubscriptionContext, fields: Dict[str, Any]) -> SubscriptionOutcome:
    """이벤트가 바꾸는 컬럼만 갱신한 뒤 등급 재계산"""
    record = await ctx.subscriptions.update_fields(ctx.event.provider_subscription_id, fields)
    if record is None:
        # 알 수 없는 구독: 기록만 남기고 버림
        error = SubscriptionNotFound(ctx.event.provider_subscription_id)
        logger.warning("[SUBSCRIPTION] %s dropped: %s", ctx.event.type.value, error.message)
        return _dropped(ctx)

    tier = resolve_tier(record.status, record.current_period_end, ctx.now)
    await ctx.user_settings.upsert_tier(record.user_id, tier)
    logger.info(
        "[SUBSCRIPTION] %s applied to %s (user=%s status=%s tier=%s)",
        ctx.event.type.value,
        record.provider_subscription_id,
        record.user_id,
        record.status.value,
        tier.value,
    )
    return SubscriptionOutcome(
        event_type=ctx.event.type,
        provider_subscription_id=record.provider_subscription_id,
        applied=True,
        user_id=record.user_id,
        status=record.status,
        tier=tier,
    )


def _dropped(ctx: SubscriptionContext) -> SubscriptionOutcome:
    return SubscriptionOutcome(
        event_type=ctx.event.type,
        provider_subscription_id=ctx.event.provider_subscription_id,
        applied=False,
        detail="subscription_not_found",
    )


async def _handle_created(ctx: SubscriptionContext) -> SubscriptionOutcome:
    event = ctx.event
    user_id = event.custom_data.require_user_id()
    if not event.has_period:
        raise MissingRequiredField("current_billing_period")

    existing = await ctx.subscriptions.find_by_provider_id(event.provider_subscription_id)
    record = SubscriptionRecord(
        user_id=user_id,
        provider=ctx.provider_name,
        provider_subscription_id=event.provider_subscription_id,
        provider_customer_id=event.provider_customer_id or (existing.provider_customer_id if existing else ""),
        status=event.status,
        billing_cycle=event.billing_cycle or BillingCycle.MONTHLY,
        current_period_start=event.current_period_start,
        current_period_end=event.current_period_end,
        cancel_at_period_end=event.cancel_at_period_end,
        created_at=existing.created_at if existing else None,
    )
    await ctx.subscriptions.upsert(record)

    credits = ctx.pro_credits_per_month
    await ctx.ledger.set_subscription_credits(user_id, credits)
    if credits > 0:
        # external_ref = 구독 ID (created/activated 중복 수신 시 1회만 지급)
        await ctx.ledger.add_credits(
            user_id,
            credits,
            CreditReason.SUBSCRIPTION_GRANT,
            f"Pro subscription monthly credits ({credits})",
            external_ref=event.provider_subscription_id,
        )

    tier = resolve_tier(record.status, record.current_period_end, ctx.now)
    await ctx.user_settings.upsert_tier(user_id, tier)
    logger.info(
        "[SUBSCRIPTION] created %s for user %s (status=%s tier=%s credits=%s)",
        record.provider_subscription_id,
        user_id,
        record.status.value,
        tier.value,
        credits,
    )
    return SubscriptionOutcome(
        event_type=event.type,
        provider_subscription_id=record.provider_subscription_id,
        applied=True,
        user_id=user_id,
        status=record.status,
        tier=tier,
    )


async def _handle_updated(ctx: SubscriptionContext) -> SubscriptionOutcome:
    event = ctx.event
    fields: Dict[str, Any] = {
        "status": event.status,
        "cancel_at_period_end": event.cancel_at_period_end,
    }
    # 페이로드에 없는 값은 저장된 값 유지
    if event.billing_cycle is not None:
        fields["billing_cycle"] = event.billing_cycle
    if event.has_period:
        fields["current_period_start"] = event.current_period_start
        fields["current_period_end"] = event.current_period_end
    if event.provider_customer_id:
        fields["provider_customer_id"] = event.provider_customer_id
    return await _update(ctx, fields)


async def _handle_cancelled(ctx: SubscriptionContext) -> SubscriptionOutcome:
    # 기간 종료 전까지는 접근 유지 (등급은 resolve_tier가 결정)
    return await _update(
        ctx,
        {"status": SubscriptionStatus.CANCELLED, "cancel_at_period_end": True},
    )


async def _handle_payment_succeeded(ctx: SubscriptionContext) -> SubscriptionOutcome:
    event = ctx.event
    if not event.has_period:
        raise MissingRequiredField("billing_period")

    return await _update(
        ctx,
        {
            "status": SubscriptionStatus.ACTIVE,
            "current_period_start": event.current_period_start,
            "current_period_end": event.current_period_end,
        },
    )


async def _handle_payment_failed(ctx: SubscriptionContext) -> SubscriptionOutcome:
    return await _update(ctx, {"status": SubscriptionStatus.PAST_DUE})


HANDLER_MAP: Dict[EventType, HandlerFunc] = {
    EventType.SUBSCRIPTION_CREATED: _handle_created,
    EventType.SUBSCRIPTION_UPDATED: _handle_updated,
    EventType.SUBSCRIPTION_CANCELLED: _handle_cancelled,
    EventType.PAYMENT_SUCCEEDED: _handle_payment_succeeded,
    EventType.PAYMENT_FAILED: _handle_payment_failed,
}

_missing_handlers = SUBSCRIPTION_EVENT_TYPES.difference(HANDLER_MAP)
if _missing_handlers:
    raise RuntimeError(f"subscription handlers missing for: {sorted(t.value for t in _missing_handlers)}")


class SubscriptionStateMachine:
    """구독 이벤트 적용기"""

    def __init__(
        self,
        subscriptions: ISubscriptionStore,
        user_settings: IUserSettingsStore,
        ledger: CreditLedger,
        *,
        provider_name: str = "paddle",
        pro_credits_per_month: int = 0,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.subscriptions = subscriptions
        self.user_settings = user_settings
        self.ledger = ledger
        self.provider_name = provider_name
        self.pro_credits_per_month = pro_credits_per_month
        self._clock = clock

    async def apply(self, event: PaymentEvent) -> SubscriptionOutcome:
        handler = HANDLER_MAP[event.type]
        ctx = SubscriptionContext(
            event=event,
            subscriptions=self.subscriptions,
            user_settings=self.user_settings,
            ledger=self.ledger,
            provider_name=self.provider_name,
            pro_credits_per_month=self.pro_credits_per_month,
            now=self._clock(),
        )
        return await handler(ctx)
