"""
Paddle Billing 공급자 어댑터

- 웹훅: 서명 검증 후 Paddle 알림을 정규화 이벤트로 변환
- API: 체크아웃 / 포털 / 해지 / 복구 호출 래핑
"""
import json
import logging
from typing import Any, Callable, Dict, Optional

from pydantic import BaseModel, ValidationError

from margin_billing.core.billing_config import BillingConfig
from margin_billing.core.interfaces import IPaymentProvider
from margin_billing.core.responses import (
    ExternalServiceException,
    InvalidPayload,
    UnknownCreditPack,
)
from margin_billing.schemas.events import (
    BillingCycle,
    CustomData,
    EventType,
    OneTimePaymentEvent,
    ParsedWebhook,
    PaymentEvent,
    SubscriptionStatus,
    UnhandledEvent,
)
from margin_billing.schemas.paddle import (
    PaddleBillingPeriod,
    PaddleNotification,
    PaddleSubscriptionData,
    PaddleTransactionData,
)
from margin_billing.services.paddle_billing_client import PaddleBillingClient
from margin_billing.services.signature import verify_signature

logger = logging.getLogger(__name__)


SUBSCRIPTION_EVENT_TYPES: Dict[str, EventType] = {
    "subscription.created": EventType.SUBSCRIPTION_CREATED,
    "subscription.activated": EventType.SUBSCRIPTION_CREATED,
    "subscription.updated": EventType.SUBSCRIPTION_UPDATED,
    "subscription.paused": EventType.SUBSCRIPTION_UPDATED,
    "subscription.resumed": EventType.SUBSCRIPTION_UPDATED,
    "subscription.trialing": EventType.SUBSCRIPTION_UPDATED,
    "subscription.imported": EventType.SUBSCRIPTION_UPDATED,
    "subscription.canceled": EventType.SUBSCRIPTION_CANCELLED,
    "subscription.cancelled": EventType.SUBSCRIPTION_CANCELLED,
    "subscription.past_due": EventType.PAYMENT_FAILED,
}

TRANSACTION_EVENT_TYPES: Dict[str, EventType] = {
    "transaction.completed": EventType.PAYMENT_SUCCEEDED,
    "transaction.payment_failed": EventType.PAYMENT_FAILED,
}

STATUS_MAP: Dict[str, SubscriptionStatus] = {
    "active": SubscriptionStatus.ACTIVE,
    "trialing": SubscriptionStatus.TRIALING,
    "past_due": SubscriptionStatus.PAST_DUE,
    "paused": SubscriptionStatus.PAUSED,
    "canceled": SubscriptionStatus.CANCELLED,
    "cancelled": SubscriptionStatus.CANCELLED,
}

CREDIT_PACK_KIND = "credit_pack"


def map_status(status: Optional[str]) -> SubscriptionStatus:
    """Paddle 상태를 내부 상태로 변환 (알 수 없는 값은 expired)"""
    return STATUS_MAP.get((status or "").lower(), SubscriptionStatus.EXPIRED)


def map_billing_cycle(interval: Optional[str]) -> BillingCycle:
    return BillingCycle.YEARLY if interval == "year" else BillingCycle.MONTHLY


def _build_custom_data(raw: Optional[Dict[str, Any]]) -> CustomData:
    raw = dict(raw or {})
    user_id = raw.pop("userId", None) or raw.pop("user_id", None)
    pack_id = raw.pop("packId", None) or raw.pop("pack_id", None)
    kind = raw.pop("type", None)
    return CustomData(
        user_id=str(user_id) if user_id else None,
        pack_id=pack_id if isinstance(pack_id, str) else (str(pack_id) if pack_id is not None else None),
        kind=kind if isinstance(kind, str) else None,
        extra=raw,
    )


def _validate(model: type[BaseModel], data: Dict[str, Any], event_type: str) -> Any:
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in exc.errors())
        raise InvalidPayload(f"{event_type} payload invalid ({fields})") from exc


def _period_bounds(period: Optional[PaddleBillingPeriod], event_type: str):
    if period is None:
        return None, None
    if period.ends_at < period.starts_at:
        raise InvalidPayload(f"{event_type} billing period ends before it starts")
    return period.starts_at, period.ends_at


class PaddleProvider(IPaymentProvider):
    """Paddle Billing 어댑터"""

    name = "paddle"

    def __init__(
        self,
        webhook_secret: str,
        billing_client: Optional[PaddleBillingClient] = None,
        *,
        monthly_price_id: Optional[str] = None,
        yearly_price_id: Optional[str] = None,
        credit_pack_price_ids: Optional[Dict[str, Optional[str]]] = None,
        signature_verifier: Callable[[bytes, Optional[str], str], bool] = verify_signature,
    ) -> None:
        self.webhook_secret = webhook_secret
        self.billing_client = billing_client
        self.monthly_price_id = monthly_price_id
        self.yearly_price_id = yearly_price_id
        self.credit_pack_price_ids = dict(credit_pack_price_ids or {})
        self._verify = signature_verifier

    # ------------------------------------------------------------------
    # 웹훅
    # ------------------------------------------------------------------

    def parse_webhook(self, raw_body: bytes, signature: Optional[str]) -> Optional[ParsedWebhook]:
        if not self._verify(raw_body, signature, self.webhook_secret):
            return None

        try:
            payload = json.loads(raw_body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            logger.warning("[PADDLE] signed body is not valid JSON: %s", exc)
            return None
        if not isinstance(payload, dict):
            logger.warning("[PADDLE] signed body is not a JSON object")
            return None

        notification: PaddleNotification = _validate(PaddleNotification, payload, "notification")
        event_type = notification.event_type.strip().lower()

        if event_type in SUBSCRIPTION_EVENT_TYPES:
            return self._normalize_subscription(notification, event_type)
        if event_type in TRANSACTION_EVENT_TYPES:
            return self._normalize_transaction(notification, event_type)

        logger.info("[PADDLE] unhandled event type: %s (event %s)", event_type, notification.event_id)
        return UnhandledEvent(
            provider_event_type=event_type,
            event_id=notification.event_id,
            occurred_at=notification.occurred_at,
        )

    def _normalize_subscription(self, notification: PaddleNotification, event_type: str) -> PaymentEvent:
        data: PaddleSubscriptionData = _validate(PaddleSubscriptionData, notification.data, event_type)
        start, end = _period_bounds(data.current_billing_period, event_type)
        custom_data = _build_custom_data(data.custom_data)
        if not custom_data.user_id:
            logger.warning(
                "[PADDLE] customData.userId missing on %s (subscription %s)",
                event_type,
                data.id,
            )

        scheduled = data.scheduled_change
        return PaymentEvent(
            type=SUBSCRIPTION_EVENT_TYPES[event_type],
            provider_subscription_id=data.id,
            provider_customer_id=data.customer_id,
            status=map_status(data.status),
            billing_cycle=map_billing_cycle(data.billing_cycle.interval if data.billing_cycle else None),
            current_period_start=start,
            current_period_end=end,
            cancel_at_period_end=bool(scheduled and scheduled.action == "cancel"),
            custom_data=custom_data,
            event_id=notification.event_id,
            occurred_at=notification.occurred_at,
        )

    def _normalize_transaction(self, notification: PaddleNotification, event_type: str) -> ParsedWebhook:
        data: PaddleTransactionData = _validate(PaddleTransactionData, notification.data, event_type)
        custom_data = _build_custom_data(data.custom_data)

        if event_type == "transaction.completed" and custom_data.kind == CREDIT_PACK_KIND:
            return OneTimePaymentEvent(
                provider_transaction_id=data.id,
                provider_customer_id=data.customer_id,
                custom_data=custom_data,
                event_id=notification.event_id,
                occurred_at=notification.occurred_at,
            )

        if not data.subscription_id:
            # 구독과 무관한 일반 결제
            logger.info("[PADDLE] %s without subscription id ignored (txn %s)", event_type, data.id)
            return UnhandledEvent(
                provider_event_type=event_type,
                event_id=notification.event_id,
                occurred_at=notification.occurred_at,
            )

        start, end = _period_bounds(data.billing_period, event_type)
        canonical_type = TRANSACTION_EVENT_TYPES[event_type]
        status = (
            SubscriptionStatus.ACTIVE
            if canonical_type is EventType.PAYMENT_SUCCEEDED
            else SubscriptionStatus.PAST_DUE
        )
        return PaymentEvent(
            type=canonical_type,
            provider_subscription_id=data.subscription_id,
            provider_customer_id=data.customer_id,
            status=status,
            billing_cycle=None,
            current_period_start=start,
            current_period_end=end,
            cancel_at_period_end=False,
            custom_data=custom_data,
            event_id=notification.event_id,
            occurred_at=notification.occurred_at,
        )

    # ------------------------------------------------------------------
    # Paddle API
    # ------------------------------------------------------------------

    def _require_client(self) -> PaddleBillingClient:
        if self.billing_client is None:
            raise ExternalServiceException("Paddle", "PADDLE_API_KEY가 설정되지 않았습니다")
        return self.billing_client

    @staticmethod
    def _checkout_result(response: Dict[str, Any]) -> Dict[str, Any]:
        data = response.get("data") or {}
        checkout = data.get("checkout") or {}
        return {"checkout_url": checkout.get("url") or "", "session_id": data.get("id")}

    async def create_checkout(
        self,
        user_id: str,
        billing_cycle: BillingCycle,
        email: Optional[str] = None,
    ) -> Dict[str, Any]:
        price_id = self.yearly_price_id if billing_cycle is BillingCycle.YEARLY else self.monthly_price_id
        if not price_id:
            raise ExternalServiceException("Paddle", f"{billing_cycle.value} 요금제 가격 ID가 설정되지 않았습니다")

        response = await self._require_client().create_transaction(
            items=[{"price_id": price_id, "quantity": 1}],
            custom_data={"userId": user_id},
            customer_email=email,
        )
        return self._checkout_result(response)

    async def create_credit_pack_checkout(
        self,
        user_id: str,
        pack_id: str,
        email: Optional[str] = None,
    ) -> Dict[str, Any]:
        pack = BillingConfig.get_credit_pack(pack_id)
        if pack is None:
            raise UnknownCreditPack(pack_id)
        price_id = self.credit_pack_price_ids.get(pack.id)
        if not price_id:
            raise ExternalServiceException("Paddle", f"{pack.id} 가격 ID가 설정되지 않았습니다")

        response = await self._require_client().create_transaction(
            items=[{"price_id": price_id, "quantity": 1}],
            custom_data={"userId": user_id, "packId": pack.id, "type": CREDIT_PACK_KIND},
            customer_email=email,
        )
        return self._checkout_result(response)

    async def get_portal_url(self, provider_customer_id: str, provider_subscription_id: Optional[str] = None) -> str:
        response = await self._require_client().create_portal_session(
            provider_customer_id,
            [provider_subscription_id] if provider_subscription_id else None,
        )
        urls = (response.get("data") or {}).get("urls") or {}
        general = urls.get("general") or {}
        url = general.get("overview") if isinstance(general, dict) else general
        if not url:
            raise ExternalServiceException("Paddle", "포털 URL을 받지 못했습니다")
        return url

    async def cancel_subscription(self, provider_subscription_id: str) -> Dict[str, Any]:
        return await self._require_client().cancel_subscription(provider_subscription_id)

    async def resume_subscription(self, provider_subscription_id: str) -> Dict[str, Any]:
        return await self._require_client().resume_subscription(provider_subscription_id)

    async def get_subscription(self, provider_subscription_id: str) -> Dict[str, Any]:
        response = await self._require_client().get_subscription(provider_subscription_id)
        data = response.get("data") or {}
        period = data.get("current_billing_period") or {}
        scheduled = data.get("scheduled_change") or {}
        return {
            "provider_subscription_id": data.get("id"),
            "provider_customer_id": data.get("customer_id"),
            "status": map_status(data.get("status")).value,
            "billing_cycle": map_billing_cycle((data.get("billing_cycle") or {}).get("interval")).value,
            "current_period_start": period.get("starts_at"),
            "current_period_end": period.get("ends_at"),
            "cancel_at_period_end": scheduled.get("action") == "cancel",
        }
