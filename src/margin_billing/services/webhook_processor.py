"""
결제 웹훅 처리 파이프라인

서명 검증 → 정규화 → 리플레이 구간 확인 → 중복 확인 → 이벤트 종류별 처리
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, Optional

from margin_billing.core.interfaces import IPaymentProvider
from margin_billing.core.responses import WebhookPayloadError
from margin_billing.schemas.events import (
    EventType,
    OneTimePaymentEvent,
    ParsedWebhook,
    PaymentEvent,
    UnhandledEvent,
)
from margin_billing.services.credit_ledger import CreditLedger
from margin_billing.services.idempotency import IdempotencyGuard
from margin_billing.services.replay_window import DEFAULT_TOLERANCE, is_timestamp_valid
from margin_billing.services.subscription_state import SubscriptionStateMachine

logger = logging.getLogger(__name__)


REASON_PROCESSED = "processed"
REASON_INVALID_SIGNATURE = "invalid_signature"
REASON_TOO_OLD = "too_old"
REASON_DUPLICATE = "duplicate"
REASON_UNHANDLED = "unhandled_event"
REASON_INVALID_PAYLOAD = "invalid_payload"
REASON_PROCESSING_FAILED = "processing_failed"


@dataclass(slots=True)
class ProcessingResult:
    """웹훅 한 건의 처리 결과"""
    success: bool
    reason: str
    deduplicated: bool = False
    ignored: bool = False
    rejected: bool = False
    event_id: Optional[str] = None
    event_type: Optional[str] = None
    detail: Optional[Dict[str, Any]] = None


class WebhookProcessor:
    """공급자 독립적인 웹훅 처리기"""

    def __init__(
        self,
        provider: IPaymentProvider,
        idempotency: IdempotencyGuard,
        state_machine: SubscriptionStateMachine,
        ledger: CreditLedger,
        *,
        tolerance: timedelta = DEFAULT_TOLERANCE,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.provider = provider
        self.idempotency = idempotency
        self.state_machine = state_machine
        self.ledger = ledger
        self.tolerance = tolerance
        self._clock = clock
        self._dispatch: Dict[EventType, Callable[[Any], Awaitable[Dict[str, Any]]]] = {
            EventType.ONE_TIME_COMPLETED: self._process_one_time,
            EventType.SUBSCRIPTION_CREATED: self._process_subscription,
            EventType.SUBSCRIPTION_UPDATED: self._process_subscription,
            EventType.SUBSCRIPTION_CANCELLED: self._process_subscription,
            EventType.PAYMENT_SUCCEEDED: self._process_subscription,
            EventType.PAYMENT_FAILED: self._process_subscription,
        }
        missing = set(EventType).difference(self._dispatch)
        if missing:
            raise RuntimeError(f"webhook dispatch missing for: {sorted(t.value for t in missing)}")

    async def handle(self, raw_body: bytes, signature: Optional[str]) -> ProcessingResult:
        """원본 본문과 서명 헤더로 웹훅 처리"""
        logger.info(
            "[PADDLE] webhook received: len=%s, has_signature=%s",
            len(raw_body),
            bool(signature),
        )

        try:
            parsed = self.provider.parse_webhook(raw_body, signature)
        except WebhookPayloadError as exc:
            # 인증은 통과했지만 정규화 불가: 재전송돼도 유효해질 수 없음
            logger.error("[PADDLE][ALERT] authentic webhook rejected at normalization: %s", exc.message)
            return ProcessingResult(
                success=True,
                reason=REASON_INVALID_PAYLOAD,
                rejected=True,
                detail={"error": exc.message, "error_code": exc.error_code},
            )

        if parsed is None:
            logger.warning("[PADDLE] webhook verification failed")
            return ProcessingResult(success=False, reason=REASON_INVALID_SIGNATURE)

        return await self.process(parsed)

    async def process(self, event: ParsedWebhook) -> ProcessingResult:
        """인증된 정규화 이벤트 처리"""
        event_id = event.event_id
        event_type = (
            event.provider_event_type if isinstance(event, UnhandledEvent) else event.type.value
        )

        if not is_timestamp_valid(event.occurred_at, now=self._clock(), tolerance=self.tolerance):
            logger.warning("[PADDLE] webhook too old: %s, occurred at %s", event_id, event.occurred_at)
            return ProcessingResult(
                success=False,
                reason=REASON_TOO_OLD,
                event_id=event_id,
                event_type=event_type,
            )

        if isinstance(event, UnhandledEvent):
            return ProcessingResult(
                success=True,
                reason=REASON_UNHANDLED,
                ignored=True,
                event_id=event_id,
                event_type=event_type,
            )

        if not await self.idempotency.mark_processed(event_id, event_type):
            return ProcessingResult(
                success=True,
                reason=REASON_DUPLICATE,
                deduplicated=True,
                event_id=event_id,
                event_type=event_type,
            )

        try:
            detail = await self._dispatch[event.type](event)
        except WebhookPayloadError as exc:
            logger.error(
                "[PADDLE][ALERT] webhook %s (%s) acknowledged without changes: %s",
                event_id,
                event_type,
                exc.message,
            )
            await self._record_rejection(event_id, exc.message)
            return ProcessingResult(
                success=True,
                reason=REASON_INVALID_PAYLOAD,
                rejected=True,
                event_id=event_id,
                event_type=event_type,
                detail={"error": exc.message, "error_code": exc.error_code},
            )
        except Exception:
            logger.exception("[PADDLE] webhook processing failed: %s (%s)", event_id, event_type)
            await self._release_claim(event_id)
            return ProcessingResult(
                success=False,
                reason=REASON_PROCESSING_FAILED,
                event_id=event_id,
                event_type=event_type,
            )

        return ProcessingResult(
            success=True,
            reason=REASON_PROCESSED,
            event_id=event_id,
            event_type=event_type,
            detail=detail,
        )

    async def _release_claim(self, event_id: Optional[str]) -> None:
        try:
            await self.idempotency.release(event_id)
        except Exception:
            # 해제 실패 시 재전송은 중복으로 처리됨
            logger.exception("[PADDLE][ALERT] failed to release idempotency claim: %s", event_id)

    async def _record_rejection(self, event_id: Optional[str], detail: str) -> None:
        try:
            await self.idempotency.mark_rejected(event_id, detail)
        except Exception:
            # 클레임은 processed 상태로 남아 재전송은 중복으로 처리됨
            logger.exception("[PADDLE][ALERT] failed to mark webhook as rejected: %s", event_id)

    async def _process_one_time(self, event: OneTimePaymentEvent) -> Dict[str, Any]:
        entry = await self.ledger.purchase_pack(
            event.custom_data.user_id,
            event.pack_id,
            external_ref=event.provider_transaction_id,
        )
        logger.info(
            "[PADDLE] credit pack %s purchased by user %s (txn %s, recorded=%s)",
            event.pack_id,
            event.custom_data.user_id,
            event.provider_transaction_id,
            entry is not None,
        )
        return {
            "user_id": event.custom_data.user_id,
            "pack_id": event.pack_id,
            "credits": entry.delta if entry else 0,
        }

    async def _process_subscription(self, event: PaymentEvent) -> Dict[str, Any]:
        outcome = await self.state_machine.apply(event)
        return {
            "provider_subscription_id": outcome.provider_subscription_id,
            "applied": outcome.applied,
            "user_id": outcome.user_id,
            "tier": outcome.tier.value if outcome.tier else None,
        }
