"""
공급자 독립적인 정규화 결제 이벤트 정의

공급자 어댑터는 원본 JSON을 아래 타입 중 하나로만 변환한다.
부분적으로 채워진 객체나 기본값으로 메운 필드는 만들지 않는다.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Union

from margin_billing.core.responses import MissingRequiredField


class EventType(str, Enum):
    """처리 대상 이벤트 종류 (닫힌 집합)"""
    SUBSCRIPTION_CREATED = "subscription.created"
    SUBSCRIPTION_UPDATED = "subscription.updated"
    SUBSCRIPTION_CANCELLED = "subscription.cancelled"
    PAYMENT_SUCCEEDED = "subscription.payment_succeeded"
    PAYMENT_FAILED = "subscription.payment_failed"
    ONE_TIME_COMPLETED = "one_time.completed"


SUBSCRIPTION_EVENT_TYPES = frozenset(
    {
        EventType.SUBSCRIPTION_CREATED,
        EventType.SUBSCRIPTION_UPDATED,
        EventType.SUBSCRIPTION_CANCELLED,
        EventType.PAYMENT_SUCCEEDED,
        EventType.PAYMENT_FAILED,
    }
)


class SubscriptionStatus(str, Enum):
    """구독 상태"""
    ACTIVE = "active"
    TRIALING = "trialing"
    PAST_DUE = "past_due"
    PAUSED = "paused"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class BillingCycle(str, Enum):
    MONTHLY = "monthly"
    YEARLY = "yearly"


@dataclass(slots=True, frozen=True)
class CustomData:
    """체크아웃 시 전달한 custom_data"""
    user_id: Optional[str] = None
    pack_id: Optional[str] = None
    kind: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def require_user_id(self) -> str:
        if not self.user_id:
            raise MissingRequiredField("customData.userId")
        return self.user_id

    def require_pack_id(self) -> str:
        if not self.pack_id:
            raise MissingRequiredField("customData.packId")
        return self.pack_id


@dataclass(slots=True, frozen=True)
class PaymentEvent:
    """구독 관련 정규화 이벤트"""
    type: EventType
    provider_subscription_id: str
    provider_customer_id: Optional[str]
    status: SubscriptionStatus
    billing_cycle: Optional[BillingCycle]
    current_period_start: Optional[datetime]
    current_period_end: Optional[datetime]
    cancel_at_period_end: bool
    custom_data: CustomData
    event_id: Optional[str] = None
    occurred_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if self.type not in SUBSCRIPTION_EVENT_TYPES:
            raise ValueError(f"PaymentEvent cannot carry {self.type}")

    @property
    def has_period(self) -> bool:
        return self.current_period_start is not None and self.current_period_end is not None


@dataclass(slots=True, frozen=True)
class OneTimePaymentEvent:
    """1회성 결제(크레딧 팩) 정규화 이벤트"""
    provider_transaction_id: str
    provider_customer_id: Optional[str]
    custom_data: CustomData
    event_id: Optional[str] = None
    occurred_at: Optional[datetime] = None
    type: EventType = EventType.ONE_TIME_COMPLETED

    @property
    def pack_id(self) -> Optional[str]:
        return self.custom_data.pack_id


@dataclass(slots=True, frozen=True)
class UnhandledEvent:
    """인증은 되었지만 이 엔진이 다루지 않는 이벤트"""
    provider_event_type: str
    event_id: Optional[str] = None
    occurred_at: Optional[datetime] = None


ParsedWebhook = Union[PaymentEvent, OneTimePaymentEvent, UnhandledEvent]
