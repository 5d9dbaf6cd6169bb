"""
공통 응답 모델 및 예외 클래스
"""
from typing import Any, Dict, Generic, Optional, TypeVar
import logging

from pydantic import BaseModel, ConfigDict

logger = logging.getLogger(__name__)

T = TypeVar('T')


class APIResponse(BaseModel, Generic[T]):
    """표준 API 응답 모델"""
    status: str  # "success" or "error"
    data: Optional[T] = None
    message: Optional[str] = None
    error_code: Optional[str] = None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "status": "success",
                "data": {"tier": "pro"},
                "message": "구독 정보 조회 성공"
            }
        }
    )


# 커스텀 예외 클래스들
class BillingException(Exception):
    """결제 도메인 예외의 기본 클래스"""
    def __init__(self, message: str, error_code: str = None, status_code: int = 400):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        super().__init__(message)


class AuthenticationException(BillingException):
    """인증 관련 예외"""
    def __init__(self, message: str = "인증에 실패했습니다"):
        super().__init__(message, "AUTH_FAILED", 401)


class WebhookDeliveryError(BillingException):
    """웹훅 공급자에게 {"error": ...} 본문으로 돌려주는 예외"""


class InvalidSignature(WebhookDeliveryError):
    """웹훅 서명 검증 실패 (재시도해도 의미 없음)"""
    def __init__(self, message: str = "Invalid signature"):
        super().__init__(message, "INVALID_SIGNATURE", 401)


class StaleEvent(WebhookDeliveryError):
    """허용 구간을 벗어난 오래된 웹훅"""
    def __init__(self, event_id: Optional[str] = None, occurred_at: Optional[str] = None):
        self.event_id = event_id
        self.occurred_at = occurred_at
        super().__init__("Webhook timestamp too old", "STALE_EVENT", 400)


class WebhookProcessingFailed(WebhookDeliveryError):
    """내부 처리 실패 (공급자가 재전송하도록 500 반환)"""
    def __init__(self, event_id: Optional[str] = None):
        self.event_id = event_id
        super().__init__("Processing failed", "PROCESSING_FAILED", 500)


class WebhookPayloadError(BillingException):
    """인증은 통과했지만 구조적으로 처리할 수 없는 페이로드

    재전송되어도 유효해질 수 없으므로 재시도 대상이 아니다.
    """
    def __init__(self, message: str, error_code: str = "INVALID_PAYLOAD"):
        super().__init__(message, error_code, 422)


class InvalidPayload(WebhookPayloadError):
    """페이로드 형식 오류"""
    def __init__(self, message: str):
        super().__init__(message, "INVALID_PAYLOAD")


class MissingRequiredField(WebhookPayloadError):
    """필수 필드(userId, packId 등) 누락"""
    def __init__(self, field: str):
        self.field = field
        super().__init__(f"Missing required field: {field}", "MISSING_REQUIRED_FIELD")


class UnknownCreditPack(WebhookPayloadError):
    """카탈로그에 없는 크레딧 팩"""
    def __init__(self, pack_id: Any):
        self.pack_id = pack_id
        super().__init__(f"Unknown credit pack: {pack_id!r}", "UNKNOWN_CREDIT_PACK")


class SubscriptionNotFound(BillingException):
    """공급자 구독 ID에 해당하는 구독 없음"""
    def __init__(self, provider_subscription_id: Optional[str] = None):
        self.provider_subscription_id = provider_subscription_id
        message = "구독 정보를 찾을 수 없습니다"
        if provider_subscription_id:
            message = f"{message}: {provider_subscription_id}"
        super().__init__(message, "SUBSCRIPTION_NOT_FOUND", 404)


class InsufficientCredits(BillingException):
    """크레딧 잔액 부족"""
    def __init__(self, required: int, balance: int):
        self.required = required
        self.balance = balance
        super().__init__(
            f"크레딧이 부족합니다 (필요: {required}, 잔액: {balance})",
            "INSUFFICIENT_CREDITS",
            402,
        )


class UnknownFeature(BillingException):
    """크레딧 차감 대상이 아닌 기능 ID"""
    def __init__(self, feature_id: Any):
        self.feature_id = feature_id
        super().__init__(f"알 수 없는 기능입니다: {feature_id!r}", "UNKNOWN_FEATURE", 422)


class SubscriptionConflict(BillingException):
    """현재 구독 상태에서 허용되지 않는 요청"""
    def __init__(self, message: str):
        super().__init__(message, "CONFLICT", 409)


class ExternalServiceException(BillingException):
    """외부 서비스 호출 예외"""
    def __init__(self, service_name: str, message: str = None):
        msg = message or f"{service_name} 서비스 호출에 실패했습니다"
        super().__init__(msg, "EXTERNAL_SERVICE_ERROR", 502)


# 응답 헬퍼 함수들
def success_response(data: Any = None, message: str = "성공") -> APIResponse:
    """성공 응답 생성"""
    return APIResponse(status="success", data=data, message=message)


def error_response(
    message: str = "오류가 발생했습니다",
    error_code: str = None,
    data: Any = None
) -> APIResponse:
    """오류 응답 생성"""
    return APIResponse(
        status="error",
        message=message,
        error_code=error_code,
        data=data
    )


def webhook_ack(**flags: bool) -> Dict[str, Any]:
    """웹훅 수신 확인 본문 (공급자의 재전송 루프를 멈춤)"""
    body: Dict[str, Any] = {"received": True}
    body.update({key: value for key, value in flags.items() if value})
    return body


def webhook_error(message: str) -> Dict[str, str]:
    """웹훅 오류 본문"""
    return {"error": message}
