"""Paddle Billing API 클라이언트"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx


logger = logging.getLogger(__name__)


class PaddleAPIError(RuntimeError):
    """Paddle Billing API 오류"""

    def __init__(
        self,
        message: str,
        status_code: int,
        payload: Optional[Dict[str, Any]] = None,
        *,
        code: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload or {}
        self.code = code or self._extract_error_code()

    def _extract_error_code(self) -> Optional[str]:
        """응답 페이로드에서 오류 코드를 추출"""

        error = self.payload.get("error") if isinstance(self.payload, dict) else None
        if isinstance(error, dict):
            return error.get("code") or error.get("type")
        return None


class PaddleBillingClient:
    """Paddle Billing REST API 비동기 클라이언트

    요청 단위 타임아웃만 적용하며 내부 재시도는 하지 않는다.
    실패는 PaddleAPIError로 호출자에게 그대로 전달된다.
    """

    ERROR_CODE_MESSAGES: Dict[str, str] = {
        "subscription_not_found": "Paddle 구독 정보를 찾을 수 없습니다.",
        "subscription_cancel_invalid_status": "현재 상태에서는 구독을 해지할 수 없습니다.",
        "subscription_not_active": "활성 상태가 아닌 구독입니다.",
        "subscription_locked_pending_changes": "처리 중인 변경이 있어 구독을 수정할 수 없습니다.",
        "customer_not_found": "Paddle 고객 정보를 찾을 수 없습니다.",
        "resource_not_found": "요청한 Paddle 리소스를 찾을 수 없습니다.",
        "forbidden": "Paddle API 권한이 거부되었습니다.",
        "invalid_api_key": "Paddle API 키가 올바르지 않습니다.",
        "validation_error": "Paddle API 요청 파라미터를 검증하지 못했습니다.",
        "rate_limited": "Paddle API 호출이 너무 많습니다. 잠시 후 다시 시도하세요.",
    }

    STATUS_MESSAGES: Dict[int, str] = {
        400: "Paddle API 요청 파라미터가 올바르지 않습니다.",
        401: "Paddle API 인증에 실패했습니다.",
        403: "Paddle API 접근 권한이 없습니다.",
        404: "요청한 Paddle 리소스를 찾지 못했습니다.",
        409: "Paddle 리소스 상태 충돌이 발생했습니다.",
        429: "Paddle API 호출이 제한되었습니다. 잠시 후 다시 시도하세요.",
        500: "Paddle API 서버 오류가 발생했습니다.",
        503: "Paddle API 서비스가 일시적으로 불가합니다.",
    }

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.paddle.com",
        timeout: float = 15.0,
    ) -> None:
        if not api_key or not api_key.strip():
            raise ValueError("Paddle 관리자 API 키가 설정되지 않았습니다.")

        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.request(method, url, headers=headers, json=json)
        except httpx.RequestError as exc:
            logger.warning("[PADDLE] API request network error: %s %s error=%s", method, path, exc)
            raise PaddleAPIError(
                "Paddle API 네트워크 오류가 발생했습니다.",
                status_code=0,
                payload={"error": {"message": str(exc)}},
                code="network_error",
            ) from exc

        if response.status_code >= 400:
            payload = self._safe_json(response)
            message, code = self._resolve_error_message(payload, response.status_code)
            error = PaddleAPIError(message, response.status_code, payload, code=code)
            logger.error(
                "[PADDLE] API request failed: %s %s status=%s code=%s",
                method,
                path,
                response.status_code,
                error.code,
            )
            raise error

        try:
            return response.json()
        except ValueError as exc:
            logger.error("[PADDLE] API 응답 파싱 실패: %s", exc)
            raise PaddleAPIError(
                "Paddle API 응답을 파싱하지 못했습니다",
                response.status_code,
                payload={"error": {"message": str(exc)}},
                code="parse_error",
            ) from exc

    async def create_transaction(
        self,
        items: List[Dict[str, Any]],
        custom_data: Optional[Dict[str, Any]] = None,
        customer_email: Optional[str] = None,
    ) -> Dict[str, Any]:
        """체크아웃용 트랜잭션 생성"""

        payload: Dict[str, Any] = {"items": items}
        if custom_data:
            payload["custom_data"] = custom_data
        if customer_email:
            payload["customer"] = {"email": customer_email}
        return await self._request("POST", "/transactions", json=payload)

    async def create_portal_session(
        self,
        customer_id: str,
        subscription_ids: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        """고객 포털 세션 생성"""

        payload: Dict[str, Any] = {}
        if subscription_ids:
            payload["subscription_ids"] = subscription_ids
        return await self._request(
            "POST",
            f"/customers/{customer_id}/portal-sessions",
            json=payload,
        )

    async def cancel_subscription(
        self,
        subscription_id: str,
        effective_from: str = "next_billing_period",
    ) -> Dict[str, Any]:
        """구독 해지 요청"""

        payload = {"effective_from": effective_from}
        return await self._request(
            "POST",
            f"/subscriptions/{subscription_id}/cancel",
            json=payload,
        )

    async def resume_subscription(self, subscription_id: str) -> Dict[str, Any]:
        """해지 예약된 구독을 복구 (scheduled_change 제거)"""

        return await self._request(
            "PATCH",
            f"/subscriptions/{subscription_id}",
            json={"scheduled_change": None},
        )

    async def get_subscription(self, subscription_id: str) -> Dict[str, Any]:
        """구독 세부 정보를 조회"""

        return await self._request("GET", f"/subscriptions/{subscription_id}")

    def _resolve_error_message(self, payload: Dict[str, Any], status_code: int) -> tuple[str, Optional[str]]:
        """Paddle 오류 응답을 기반으로 메시지와 코드 결정"""

        error = payload.get("error") if isinstance(payload, dict) else None
        if isinstance(error, dict):
            code = error.get("code") or error.get("type")
            if code and code in self.ERROR_CODE_MESSAGES:
                return self.ERROR_CODE_MESSAGES[code], code

            message = error.get("detail") or error.get("message")
            if isinstance(message, str) and message.strip():
                return message, code

        status_message = self.STATUS_MESSAGES.get(status_code)
        if status_message:
            return status_message, None

        return "Paddle API 요청에 실패했습니다", None

    @staticmethod
    def _safe_json(response: httpx.Response) -> Dict[str, Any]:
        """JSON 파싱 실패 시 안전하게 fallback"""

        try:
            payload = response.json()
            return payload if isinstance(payload, dict) else {"data": payload}
        except ValueError:
            return {"error": {"message": response.text}}
