"""
Paddle Billing 웹훅 페이로드 스키마

Paddle 알림 봉투와 data 객체 중 이 엔진이 읽는 필드만 정의한다.
"""
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger(__name__)


def _normalize_datetime(value: Any) -> Any:
    """'Z' 접미사와 naive 시각을 UTC aware datetime으로 보정"""
    if isinstance(value, str):
        raw = value.strip()
        if not raw:
            return None
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        value = datetime.fromisoformat(raw)
    if isinstance(value, datetime) and value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


class _PaddleModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class PaddleBillingPeriod(_PaddleModel):
    starts_at: datetime
    ends_at: datetime

    _normalize = field_validator("starts_at", "ends_at", mode="before")(_normalize_datetime)


class PaddleBillingCycle(_PaddleModel):
    interval: Optional[str] = None
    frequency: Optional[int] = None


class PaddleScheduledChange(_PaddleModel):
    action: Optional[str] = None
    effective_at: Optional[datetime] = None
    resume_at: Optional[datetime] = None

    _normalize = field_validator("effective_at", "resume_at", mode="before")(_normalize_datetime)


class _CustomDataMixin(_PaddleModel):
    custom_data: Optional[Dict[str, Any]] = None

    @field_validator("custom_data", mode="before")
    @classmethod
    def decode_custom_data(cls, value: Any) -> Any:
        # 일부 체크아웃 경로는 custom_data를 JSON 문자열로 전달함
        if isinstance(value, str):
            try:
                parsed = json.loads(value)
            except json.JSONDecodeError:
                logger.warning("[PADDLE] failed to decode custom_data string payload")
                return None
            return parsed if isinstance(parsed, dict) else None
        return value


class PaddleSubscriptionData(_CustomDataMixin):
    """subscription.* 이벤트의 data 객체"""
    id: str = Field(min_length=1)
    status: str
    customer_id: str = Field(min_length=1)
    billing_cycle: Optional[PaddleBillingCycle] = None
    current_billing_period: Optional[PaddleBillingPeriod] = None
    scheduled_change: Optional[PaddleScheduledChange] = None


class PaddleTransactionData(_CustomDataMixin):
    """transaction.* 이벤트의 data 객체"""
    id: str = Field(min_length=1)
    status: Optional[str] = None
    customer_id: Optional[str] = None
    subscription_id: Optional[str] = None
    billing_period: Optional[PaddleBillingPeriod] = None


class PaddleNotification(_PaddleModel):
    """Paddle 알림 봉투"""
    event_id: Optional[str] = None
    notification_id: Optional[str] = None
    event_type: str = Field(min_length=1)
    occurred_at: Optional[datetime] = None
    data: Dict[str, Any]

    _normalize = field_validator("occurred_at", mode="before")(_normalize_datetime)
