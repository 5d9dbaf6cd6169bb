"""
전역 예외 처리기

- 웹훅 전달 오류: 공급자용 {"error": ...} 본문
- 그 외 결제 도메인 / HTTP 오류: APIResponse 오류 envelope
"""
import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from margin_billing.core.responses import (
    BillingException,
    WebhookDeliveryError,
    error_response,
    webhook_error,
)

logger = logging.getLogger(__name__)


def _envelope(status_code: int, message: str, error_code: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=error_response(message=message, error_code=error_code).model_dump(),
    )


async def webhook_exception_handler(request: Request, exc: WebhookDeliveryError):
    """웹훅 응답 (401 서명 실패, 400 오래된 이벤트, 500 처리 실패)"""
    event_id = getattr(exc, "event_id", None)
    if exc.status_code >= 500:
        logger.error("[PADDLE] webhook answered %s: %s (event=%s)", exc.status_code, exc.message, event_id)
    else:
        logger.warning("[PADDLE] webhook answered %s: %s (event=%s)", exc.status_code, exc.message, event_id)
    return JSONResponse(status_code=exc.status_code, content=webhook_error(exc.message))


async def billing_exception_handler(request: Request, exc: BillingException):
    logger.warning("Billing exception on %s: %s (%s)", request.url.path, exc.message, exc.error_code)
    return _envelope(exc.status_code, exc.message, exc.error_code)


async def http_exception_handler_custom(request: Request, exc: HTTPException):
    logger.warning("HTTP exception on %s: %s", request.url.path, exc.detail)
    return _envelope(exc.status_code, exc.detail, "HTTP_ERROR")


async def general_exception_handler(request: Request, exc: Exception):
    """처리되지 않은 예외 (500)"""
    logger.error("Unhandled exception on %s: %s", request.url.path, exc, exc_info=True)
    return _envelope(500, "내부 서버 오류가 발생했습니다", "INTERNAL_SERVER_ERROR")


def setup_exception_handlers(app: FastAPI):
    """예외 처리기 등록 (가장 구체적인 예외 클래스의 처리기가 선택됨)"""
    app.add_exception_handler(WebhookDeliveryError, webhook_exception_handler)
    app.add_exception_handler(BillingException, billing_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler_custom)
    app.add_exception_handler(Exception, general_exception_handler)
