"""공통 테스트 픽스처"""
from types import SimpleNamespace

import pytest

from margin_billing.core.config import Settings
from margin_billing.core.factory import ServiceFactory
from margin_billing.services.credit_ledger import CreditLedger
from margin_billing.services.idempotency import IdempotencyGuard
from margin_billing.services.providers.paddle import PaddleProvider
from margin_billing.services.subscription_state import SubscriptionStateMachine
from margin_billing.services.webhook_processor import WebhookProcessor

from mocks import (
    WEBHOOK_SECRET,
    FixedClock,
    InMemoryCreditLedgerStore,
    InMemoryProcessedEventStore,
    InMemorySubscriptionStore,
    InMemoryUserSettingsStore,
    MockAuthService,
)


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def stores(clock):
    return SimpleNamespace(
        subscriptions=InMemorySubscriptionStore(),
        ledger=InMemoryCreditLedgerStore(),
        user_settings=InMemoryUserSettingsStore(),
        processed=InMemoryProcessedEventStore(clock),
    )


@pytest.fixture
def provider():
    return PaddleProvider(
        webhook_secret=WEBHOOK_SECRET,
        monthly_price_id="pri_monthly",
        yearly_price_id="pri_yearly",
        credit_pack_price_ids={"pack_25": "pri_25", "pack_75": "pri_75", "pack_200": "pri_200"},
    )


@pytest.fixture
def ledger(stores):
    return CreditLedger(stores.ledger)


@pytest.fixture
def state_machine(stores, ledger):
    return SubscriptionStateMachine(stores.subscriptions, stores.user_settings, ledger)


@pytest.fixture
def processor(provider, stores, ledger, state_machine):
    return WebhookProcessor(provider, IdempotencyGuard(stores.processed), state_machine, ledger)


@pytest.fixture
def test_settings():
    return Settings(
        PADDLE_WEBHOOK_SECRET=WEBHOOK_SECRET,
        PRO_CREDITS_PER_MONTH=0,
        _env_file=None,
    )


@pytest.fixture
def billing_services(test_settings, provider, stores):
    return ServiceFactory.assemble(
        test_settings,
        provider=provider,
        subscriptions=stores.subscriptions,
        ledger_store=stores.ledger,
        user_settings=stores.user_settings,
        processed_events=stores.processed,
        auth_service=MockAuthService(),
    )
