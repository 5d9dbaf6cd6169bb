"""
구독 상태로부터 접근 등급을 계산하는 순수 함수
"""
from datetime import datetime, timezone
from typing import Optional, Union

from margin_billing.core.billing_config import SubscriptionTier
from margin_billing.schemas.events import SubscriptionStatus

_ALWAYS_PRO = frozenset({SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIALING})
_PRO_UNTIL_PERIOD_END = frozenset(
    {SubscriptionStatus.CANCELLED, SubscriptionStatus.PAST_DUE, SubscriptionStatus.PAUSED}
)


def _coerce_status(status: Union[SubscriptionStatus, str, None]) -> Optional[SubscriptionStatus]:
    if isinstance(status, SubscriptionStatus):
        return status
    try:
        return SubscriptionStatus(status)
    except ValueError:
        return None


def resolve_tier(
    status: Union[SubscriptionStatus, str, None],
    period_end: Optional[datetime],
    now: Optional[datetime] = None,
) -> SubscriptionTier:
    """구독 상태와 기간 종료 시각으로 등급 결정

    - active / trialing: 항상 pro
    - cancelled / past_due / paused: ``period_end > now`` 일 때만 pro (경계는 free)
    - expired 및 알 수 없는 상태: free
    """
    resolved = _coerce_status(status)
    if resolved in _ALWAYS_PRO:
        return SubscriptionTier.PRO

    if resolved in _PRO_UNTIL_PERIOD_END:
        if period_end is None:
            return SubscriptionTier.FREE
        current = now or datetime.now(timezone.utc)
        if period_end.tzinfo is None:
            period_end = period_end.replace(tzinfo=timezone.utc)
        if current.tzinfo is None:
            current = current.replace(tzinfo=timezone.utc)
        return SubscriptionTier.PRO if period_end > current else SubscriptionTier.FREE

    return SubscriptionTier.FREE
