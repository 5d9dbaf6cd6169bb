"""구독 상태 → 접근 등급 계산 테스트"""
from datetime import datetime, timedelta, timezone

import pytest

from margin_billing.core.billing_config import SubscriptionTier
from margin_billing.schemas.events import SubscriptionStatus
from margin_billing.services.tier_resolver import resolve_tier

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "status, period_end, expected",
    [
        ("active", NOW + timedelta(days=30), SubscriptionTier.PRO),
        ("active", NOW - timedelta(days=30), SubscriptionTier.PRO),
        ("trialing", None, SubscriptionTier.PRO),
        ("cancelled", NOW + timedelta(days=1), SubscriptionTier.PRO),
        ("cancelled", NOW - timedelta(days=1), SubscriptionTier.FREE),
        ("cancelled", NOW, SubscriptionTier.FREE),
        ("past_due", NOW + timedelta(days=3), SubscriptionTier.PRO),
        ("paused", NOW - timedelta(seconds=1), SubscriptionTier.FREE),
        ("cancelled", None, SubscriptionTier.FREE),
        ("expired", NOW + timedelta(days=365), SubscriptionTier.FREE),
        ("mystery", NOW + timedelta(days=365), SubscriptionTier.FREE),
        (None, None, SubscriptionTier.FREE),
    ],
)
def test_resolve_tier(status, period_end, expected):
    assert resolve_tier(status, period_end, NOW) is expected


def test_accepts_enum_status():
    assert resolve_tier(SubscriptionStatus.PAST_DUE, NOW + timedelta(hours=1), NOW) is SubscriptionTier.PRO
