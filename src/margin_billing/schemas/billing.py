"""
영속 레코드 및 결제 API 요청/응답 스키마
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, Field

from margin_billing.core.billing_config import CreditReason, SubscriptionTier
from margin_billing.schemas.events import BillingCycle, SubscriptionStatus


def _to_iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _from_iso(value: Any) -> Optional[datetime]:
    """ISO 포맷 문자열을 datetime 객체로 변환 (Z 접미 처리 포함)"""
    if not value:
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _coerce_status(value: Any) -> SubscriptionStatus:
    try:
        return SubscriptionStatus(value)
    except ValueError:
        return SubscriptionStatus.EXPIRED


@dataclass(slots=True)
class SubscriptionRecord:
    """subscriptions 테이블 한 행"""
    user_id: str
    provider: str
    provider_subscription_id: str
    provider_customer_id: str
    status: SubscriptionStatus
    billing_cycle: BillingCycle
    current_period_start: Optional[datetime]
    current_period_end: Optional[datetime]
    cancel_at_period_end: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_row(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "provider": self.provider,
            "provider_subscription_id": self.provider_subscription_id,
            "provider_customer_id": self.provider_customer_id,
            "status": self.status.value,
            "billing_cycle": self.billing_cycle.value,
            "current_period_start": _to_iso(self.current_period_start),
            "current_period_end": _to_iso(self.current_period_end),
            "cancel_at_period_end": self.cancel_at_period_end,
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "SubscriptionRecord":
        cycle = row.get("billing_cycle")
        return cls(
            user_id=row["user_id"],
            provider=row.get("provider") or "paddle",
            provider_subscription_id=row["provider_subscription_id"],
            provider_customer_id=row.get("provider_customer_id") or "",
            status=_coerce_status(row.get("status")),
            billing_cycle=BillingCycle.YEARLY if cycle == BillingCycle.YEARLY.value else BillingCycle.MONTHLY,
            current_period_start=_from_iso(row.get("current_period_start")),
            current_period_end=_from_iso(row.get("current_period_end")),
            cancel_at_period_end=bool(row.get("cancel_at_period_end")),
            created_at=_from_iso(row.get("created_at")),
            updated_at=_from_iso(row.get("updated_at")),
        )

    @staticmethod
    def fields_to_row(fields: Dict[str, Any]) -> Dict[str, Any]:
        """부분 갱신용 컬럼 값 변환 (enum, datetime 직렬화)"""
        row: Dict[str, Any] = {}
        for name, value in fields.items():
            if isinstance(value, Enum):
                value = value.value
            elif isinstance(value, datetime):
                value = _to_iso(value)
            row[name] = value
        return row


@dataclass(slots=True)
class CreditLedgerEntry:
    """credit_ledger 테이블 한 행 (추가 전용)"""
    user_id: str
    delta: int
    reason: CreditReason
    memo: str = ""
    external_ref: Optional[str] = None
    feature_id: Optional[str] = None
    id: Optional[str] = None
    created_at: Optional[datetime] = None

    def to_row(self) -> Dict[str, Any]:
        row: Dict[str, Any] = {
            "user_id": self.user_id,
            "delta": self.delta,
            "reason": self.reason.value,
            "memo": self.memo,
            "external_ref": self.external_ref,
            "feature_id": self.feature_id,
        }
        return row

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "CreditLedgerEntry":
        return cls(
            user_id=row["user_id"],
            delta=int(row["delta"]),
            reason=CreditReason(row["reason"]),
            memo=row.get("memo") or "",
            external_ref=row.get("external_ref"),
            feature_id=row.get("feature_id"),
            id=row.get("id"),
            created_at=_from_iso(row.get("created_at")),
        )

    def to_public_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "delta": self.delta,
            "reason": self.reason.value,
            "memo": self.memo,
            "external_ref": self.external_ref,
            "feature_id": self.feature_id,
            "created_at": _to_iso(self.created_at),
        }


# --- API 요청 / 응답 모델 ---

class CheckoutRequest(BaseModel):
    """구독 체크아웃 요청"""
    billing_cycle: Literal["monthly", "yearly"] = "monthly"


class CreditPackCheckoutRequest(BaseModel):
    """크레딧 팩 체크아웃 요청"""
    pack_id: str = Field(min_length=1)


class ConsumeCreditsRequest(BaseModel):
    """AI 기능 사용에 따른 크레딧 차감 요청"""
    feature_id: str = Field(min_length=1)


class SubscriptionInfo(BaseModel):
    """사용자에게 노출되는 구독 상태"""
    tier: SubscriptionTier
    status: Optional[SubscriptionStatus] = None
    billing_cycle: Optional[BillingCycle] = None
    current_period_end: Optional[datetime] = None
    cancel_at_period_end: bool = False
    provider_subscription_id: Optional[str] = None
