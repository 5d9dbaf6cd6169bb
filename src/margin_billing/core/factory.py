"""
서비스 팩토리 - 의존성 구성

프로세스 시작 시 설정으로부터 한 번만 구성하고 app.state에 보관한다.
전역 싱글톤 컨테이너는 사용하지 않는다.
"""
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional
import logging

from supabase import create_client

from margin_billing.core.config import Settings
from margin_billing.core.interfaces import (
    IAuthService,
    ICreditLedgerStore,
    IPaymentProvider,
    IProcessedEventStore,
    ISubscriptionStore,
    IUserSettingsStore,
)
from margin_billing.database_helper import (
    SupabaseCreditLedgerStore,
    SupabaseProcessedEventStore,
    SupabaseSubscriptionStore,
    SupabaseUserSettingsStore,
)
from margin_billing.services.auth_service import AuthService
from margin_billing.services.credit_ledger import CreditLedger
from margin_billing.services.idempotency import IdempotencyGuard
from margin_billing.services.paddle_billing_client import PaddleBillingClient
from margin_billing.services.providers.paddle import PaddleProvider
from margin_billing.services.subscription_service import SubscriptionService
from margin_billing.services.subscription_state import SubscriptionStateMachine
from margin_billing.services.webhook_processor import WebhookProcessor

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class BillingServices:
    """요청 처리에 필요한 서비스 묶음"""
    settings: Settings
    provider: IPaymentProvider
    idempotency: IdempotencyGuard
    ledger: CreditLedger
    state_machine: SubscriptionStateMachine
    webhook_processor: WebhookProcessor
    subscription_service: SubscriptionService
    auth_service: Optional[IAuthService]

    @property
    def retention(self) -> timedelta:
        return timedelta(days=self.settings.PROCESSED_WEBHOOK_RETENTION_DAYS)


class ServiceFactory:
    """서비스 의존성 생성"""

    @staticmethod
    def create_provider(settings: Settings) -> IPaymentProvider:
        """PAYMENT_PROVIDER 설정에 맞는 공급자 어댑터 생성"""
        if settings.PAYMENT_PROVIDER != "paddle":
            raise RuntimeError(f"지원하지 않는 결제 공급자입니다: {settings.PAYMENT_PROVIDER}")

        if not settings.PADDLE_WEBHOOK_SECRET:
            logger.warning("[PADDLE] PADDLE_WEBHOOK_SECRET가 설정되지 않아 모든 웹훅이 거부됩니다.")

        billing_client = None
        if settings.PADDLE_API_KEY:
            billing_client = PaddleBillingClient(
                api_key=settings.PADDLE_API_KEY,
                base_url=settings.paddle_api_base_url,
                timeout=settings.PADDLE_API_TIMEOUT_SECONDS,
            )
        else:
            logger.warning("[PADDLE] PADDLE_API_KEY가 설정되지 않아 PaddleBillingClient를 초기화하지 않습니다.")

        return PaddleProvider(
            webhook_secret=settings.PADDLE_WEBHOOK_SECRET,
            billing_client=billing_client,
            monthly_price_id=settings.PADDLE_MONTHLY_PRICE_ID,
            yearly_price_id=settings.PADDLE_YEARLY_PRICE_ID,
            credit_pack_price_ids={
                "pack_25": settings.PADDLE_CREDIT_PACK_25_PRICE_ID,
                "pack_75": settings.PADDLE_CREDIT_PACK_75_PRICE_ID,
                "pack_200": settings.PADDLE_CREDIT_PACK_200_PRICE_ID,
            },
        )

    @staticmethod
    def assemble(
        settings: Settings,
        *,
        provider: IPaymentProvider,
        subscriptions: ISubscriptionStore,
        ledger_store: ICreditLedgerStore,
        user_settings: IUserSettingsStore,
        processed_events: IProcessedEventStore,
        auth_service: Optional[IAuthService] = None,
    ) -> BillingServices:
        """저장소와 공급자를 받아 서비스 묶음 구성"""
        idempotency = IdempotencyGuard(processed_events)
        ledger = CreditLedger(ledger_store)
        state_machine = SubscriptionStateMachine(
            subscriptions,
            user_settings,
            ledger,
            provider_name=provider.name,
            pro_credits_per_month=settings.PRO_CREDITS_PER_MONTH,
        )
        processor = WebhookProcessor(
            provider,
            idempotency,
            state_machine,
            ledger,
            tolerance=timedelta(seconds=settings.WEBHOOK_TIMESTAMP_TOLERANCE_SECONDS),
        )
        return BillingServices(
            settings=settings,
            provider=provider,
            idempotency=idempotency,
            ledger=ledger,
            state_machine=state_machine,
            webhook_processor=processor,
            subscription_service=SubscriptionService(subscriptions, provider, ledger),
            auth_service=auth_service,
        )

    @classmethod
    def build(cls, settings: Settings) -> BillingServices:
        """Supabase 저장소 기반 서비스 구성"""
        if not settings.SUPABASE_URL or not settings.SUPABASE_SERVICE_ROLE_KEY:
            raise RuntimeError("SUPABASE_URL / SUPABASE_SERVICE_ROLE_KEY가 설정되지 않았습니다")

        provider = cls.create_provider(settings)

        supabase_admin = create_client(settings.SUPABASE_URL, settings.SUPABASE_SERVICE_ROLE_KEY)
        supabase_client = supabase_admin
        if settings.SUPABASE_ANON_KEY:
            supabase_client = create_client(settings.SUPABASE_URL, settings.SUPABASE_ANON_KEY)

        return cls.assemble(
            settings,
            provider=provider,
            subscriptions=SupabaseSubscriptionStore(supabase_client, supabase_admin),
            ledger_store=SupabaseCreditLedgerStore(supabase_client, supabase_admin),
            user_settings=SupabaseUserSettingsStore(supabase_client, supabase_admin),
            processed_events=SupabaseProcessedEventStore(supabase_client, supabase_admin),
            auth_service=AuthService(supabase_client),
        )
