"""서비스 구성 / 설정 테스트"""
from datetime import timedelta

import pytest
from pydantic import ValidationError

from margin_billing.core.config import Settings
from margin_billing.core.factory import ServiceFactory
from margin_billing.services.paddle_billing_client import PaddleBillingClient
from margin_billing.services.providers.paddle import PaddleProvider


def _settings(**overrides):
    return Settings(_env_file=None, **overrides)


def test_create_provider_without_api_key():
    provider = ServiceFactory.create_provider(_settings(PADDLE_WEBHOOK_SECRET="secret", PADDLE_API_KEY=None))

    assert isinstance(provider, PaddleProvider)
    assert provider.billing_client is None


def test_create_provider_with_api_key_uses_environment_url():
    provider = ServiceFactory.create_provider(
        _settings(PADDLE_API_KEY="pdl_key", PADDLE_ENVIRONMENT="production", PADDLE_CREDIT_PACK_75_PRICE_ID="pri_75")
    )

    assert isinstance(provider.billing_client, PaddleBillingClient)
    assert provider.billing_client.base_url == "https://api.paddle.com"
    assert provider.credit_pack_price_ids["pack_75"] == "pri_75"


def test_unsupported_provider_rejected():
    with pytest.raises(RuntimeError):
        ServiceFactory.create_provider(_settings(PAYMENT_PROVIDER="lemonsqueezy"))


def test_build_requires_supabase_credentials():
    with pytest.raises(RuntimeError):
        ServiceFactory.build(_settings(SUPABASE_URL=None, SUPABASE_SERVICE_ROLE_KEY=None))


def test_assembled_services_share_ledger(billing_services):
    assert billing_services.webhook_processor.ledger is billing_services.ledger
    assert billing_services.subscription_service.ledger is billing_services.ledger
    assert billing_services.retention == timedelta(days=7)


@pytest.mark.parametrize(
    "field, value",
    [
        ("PRO_CREDITS_PER_MONTH", -1),
        ("WEBHOOK_TIMESTAMP_TOLERANCE_SECONDS", 0),
        ("PROCESSED_WEBHOOK_RETENTION_DAYS", 0),
    ],
)
def test_settings_validation(field, value):
    with pytest.raises(ValidationError):
        _settings(**{field: value})
