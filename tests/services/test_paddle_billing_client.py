"""PaddleBillingClient 단위 테스트"""
import asyncio
from typing import List

import httpx
import pytest

from margin_billing.services.paddle_billing_client import PaddleAPIError, PaddleBillingClient


class _DummyAsyncClient:
    """httpx.AsyncClient 대체용 간단한 더블"""

    def __init__(self, responses: List[httpx.Response], requests: list) -> None:
        self._responses = responses
        self._requests = requests

    async def __aenter__(self) -> "_DummyAsyncClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        return False

    async def request(self, method: str, url: str, headers=None, json=None) -> httpx.Response:  # noqa: D401 - 테스트 더블
        self._requests.append({"method": method, "url": url, "headers": headers, "json": json})
        try:
            response = self._responses.pop(0)
        except IndexError as exc:  # pragma: no cover - 테스트 보조 코드
            raise AssertionError("예상보다 많은 요청이 발생했습니다") from exc
        if isinstance(response, Exception):
            raise response
        return response


def _patch_async_client(monkeypatch, responses) -> list:
    """httpx.AsyncClient를 더블로 교체하고 요청 기록을 반환"""

    response_queue = list(responses)
    requests: list = []

    def _factory(*args, **kwargs):  # noqa: D401 - 테스트 헬퍼
        return _DummyAsyncClient(response_queue, requests)

    monkeypatch.setattr("margin_billing.services.paddle_billing_client.httpx.AsyncClient", _factory)
    return requests


def test_cancel_subscription_success(monkeypatch):
    """성공 응답을 반환하면 JSON을 그대로 전달한다"""

    response = httpx.Response(status_code=200, json={"status": "ok"})
    requests = _patch_async_client(monkeypatch, [response])

    async def _run():
        client = PaddleBillingClient(api_key="test-key", base_url="https://example.com/")
        return await client.cancel_subscription("sub_123")

    result = asyncio.run(_run())
    assert result == {"status": "ok"}
    assert requests[0]["method"] == "POST"
    assert requests[0]["url"] == "https://example.com/subscriptions/sub_123/cancel"
    assert requests[0]["json"] == {"effective_from": "next_billing_period"}
    assert requests[0]["headers"]["Authorization"] == "Bearer test-key"


def test_server_error_is_not_retried(monkeypatch):
    """5xx 응답도 재시도 없이 바로 오류로 전달한다"""

    first = httpx.Response(status_code=500, json={"error": {"code": "server_error", "message": "boom"}})
    second = httpx.Response(status_code=200, json={"status": "ok"})
    requests = _patch_async_client(monkeypatch, [first, second])

    async def _run():
        client = PaddleBillingClient(api_key="test-key", base_url="https://example.com")
        await client.cancel_subscription("sub_123")

    with pytest.raises(PaddleAPIError) as excinfo:
        asyncio.run(_run())

    assert excinfo.value.status_code == 500
    assert len(requests) == 1


def test_error_mapping_subscription_not_found(monkeypatch):
    """구독을 찾지 못한 경우 매핑된 오류 메시지를 반환한다"""

    response = httpx.Response(
        status_code=404,
        json={"error": {"code": "subscription_not_found", "message": "not found"}},
    )
    _patch_async_client(monkeypatch, [response])

    async def _run():
        client = PaddleBillingClient(api_key="test-key", base_url="https://example.com")
        await client.cancel_subscription("sub_404")

    with pytest.raises(PaddleAPIError) as excinfo:
        asyncio.run(_run())

    error = excinfo.value
    assert error.status_code == 404
    assert error.code == "subscription_not_found"
    assert str(error) == "Paddle 구독 정보를 찾을 수 없습니다."


def test_status_message_fallback(monkeypatch):
    """본문이 비어 있으면 상태 코드 기본 메시지를 사용한다"""

    response = httpx.Response(status_code=429)
    _patch_async_client(monkeypatch, [response])

    async def _run():
        client = PaddleBillingClient(api_key="test-key", base_url="https://example.com")
        await client.get_subscription("sub_1")

    with pytest.raises(PaddleAPIError) as excinfo:
        asyncio.run(_run())

    assert str(excinfo.value) == PaddleBillingClient.STATUS_MESSAGES[429]


def test_network_error_mapped(monkeypatch):
    """네트워크 오류는 status_code 0, network_error 코드로 변환된다"""

    request = httpx.Request("GET", "https://example.com/subscriptions/sub_1")
    _patch_async_client(monkeypatch, [httpx.ConnectTimeout("timed out", request=request)])

    async def _run():
        client = PaddleBillingClient(api_key="test-key", base_url="https://example.com")
        await client.get_subscription("sub_1")

    with pytest.raises(PaddleAPIError) as excinfo:
        asyncio.run(_run())

    assert excinfo.value.status_code == 0
    assert excinfo.value.code == "network_error"


def test_resume_subscription_clears_scheduled_change(monkeypatch):
    requests = _patch_async_client(monkeypatch, [httpx.Response(status_code=200, json={"data": {}})])

    async def _run():
        client = PaddleBillingClient(api_key="test-key", base_url="https://example.com")
        return await client.resume_subscription("sub_9")

    asyncio.run(_run())
    assert requests[0]["method"] == "PATCH"
    assert requests[0]["json"] == {"scheduled_change": None}


def test_create_transaction_payload(monkeypatch):
    requests = _patch_async_client(monkeypatch, [httpx.Response(status_code=201, json={"data": {"id": "txn_1"}})])

    async def _run():
        client = PaddleBillingClient(api_key="test-key", base_url="https://example.com")
        return await client.create_transaction(
            [{"price_id": "pri_1", "quantity": 1}],
            custom_data={"userId": "u1"},
            customer_email="u1@example.com",
        )

    result = asyncio.run(_run())
    assert result == {"data": {"id": "txn_1"}}
    assert requests[0]["json"] == {
        "items": [{"price_id": "pri_1", "quantity": 1}],
        "custom_data": {"userId": "u1"},
        "customer": {"email": "u1@example.com"},
    }


def test_missing_api_key_error():
    """API 키가 없으면 명확한 ValueError를 발생시킨다"""

    with pytest.raises(ValueError) as excinfo:
        PaddleBillingClient(api_key=" ")

    assert "Paddle 관리자 API 키" in str(excinfo.value)
