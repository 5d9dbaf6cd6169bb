"""
결제 웹훅 라우터

공급자 재전송 정책에 맞춘 응답 규칙:
- 처리 / 중복 / 무시 / 처리 불가 페이로드: 200 (재전송 중단)
- 서명 실패: 401, 오래된 이벤트: 400
- 내부 처리 오류: 500 (공급자가 재전송)

오류 본문은 core.middleware의 웹훅 예외 처리기가 만든다.
"""
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Request

from margin_billing.core.dependencies import get_billing_services
from margin_billing.core.factory import BillingServices
from margin_billing.core.responses import (
    InvalidSignature,
    StaleEvent,
    WebhookProcessingFailed,
    webhook_ack,
)
from margin_billing.services.webhook_processor import (
    REASON_INVALID_SIGNATURE,
    REASON_TOO_OLD,
    ProcessingResult,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

SIGNATURE_HEADERS = ("paddle-signature", "x-signature", "x-webhook-signature")


def _extract_signature(request: Request) -> Optional[str]:
    """서명 헤더 중 처음 존재하는 값"""
    for name in SIGNATURE_HEADERS:
        value = request.headers.get(name)
        if value is not None:
            return value
    return None


def _to_body(result: ProcessingResult) -> Dict[str, Any]:
    if result.success:
        return webhook_ack(
            deduplicated=result.deduplicated,
            ignored=result.ignored,
            rejected=result.rejected,
        )
    if result.reason == REASON_INVALID_SIGNATURE:
        raise InvalidSignature()
    if result.reason == REASON_TOO_OLD:
        raise StaleEvent(result.event_id)
    raise WebhookProcessingFailed(result.event_id)


@router.post("/payments")
async def payments_webhook(
    request: Request,
    services: BillingServices = Depends(get_billing_services),
):
    raw = await request.body()
    signature = _extract_signature(request)

    try:
        result = await services.webhook_processor.handle(raw, signature)
    except Exception as exc:
        logger.exception("[PADDLE] webhook pipeline failed before dispatch")
        raise WebhookProcessingFailed() from exc

    logger.info(
        "[PADDLE] webhook result: event=%s type=%s reason=%s",
        result.event_id,
        result.event_type,
        result.reason,
    )
    return _to_body(result)
