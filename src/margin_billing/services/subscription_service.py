"""
사용자 요청 기반 구독 / 크레딧 서비스

웹훅 경로 밖에서 사용자가 직접 호출하는 작업 (조회, 해지, 복구, 포털, 체크아웃).
공급자 API 실패는 재시도하지 않고 호출자에게 그대로 전달한다.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from margin_billing.core.billing_config import BillingConfig, SubscriptionTier
from margin_billing.core.interfaces import IPaymentProvider, ISubscriptionStore
from margin_billing.core.responses import (
    ExternalServiceException,
    SubscriptionConflict,
    SubscriptionNotFound,
    UnknownCreditPack,
)
from margin_billing.schemas.billing import SubscriptionInfo, SubscriptionRecord
from margin_billing.schemas.events import BillingCycle, SubscriptionStatus
from margin_billing.services.credit_ledger import CreditLedger
from margin_billing.services.paddle_billing_client import PaddleAPIError
from margin_billing.services.tier_resolver import resolve_tier

logger = logging.getLogger(__name__)


class SubscriptionService:
    """구독 관리 서비스"""

    def __init__(
        self,
        subscriptions: ISubscriptionStore,
        provider: IPaymentProvider,
        ledger: CreditLedger,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.subscriptions = subscriptions
        self.provider = provider
        self.ledger = ledger
        self._clock = clock

    async def _require_subscription(self, user_id: str) -> SubscriptionRecord:
        subscription = await self.subscriptions.find_latest_for_user(user_id)
        if subscription is None:
            raise SubscriptionNotFound()
        return subscription

    async def _call_provider(self, action: str, user_id: str, coro) -> Any:
        try:
            return await coro
        except PaddleAPIError as e:
            logger.error(
                "구독 작업 실패: action=%s user_id=%s status=%s code=%s",
                action,
                user_id,
                e.status_code,
                e.code,
            )
            raise ExternalServiceException(self.provider.name, str(e)) from e

    async def get_subscription_info(self, user_id: str) -> SubscriptionInfo:
        """현재 구독 상태 (등급은 조회 시점에 다시 계산)"""
        subscription = await self.subscriptions.find_latest_for_user(user_id)
        if subscription is None:
            return SubscriptionInfo(tier=SubscriptionTier.FREE)

        return SubscriptionInfo(
            tier=resolve_tier(subscription.status, subscription.current_period_end, self._clock()),
            status=subscription.status,
            billing_cycle=subscription.billing_cycle,
            current_period_end=subscription.current_period_end,
            cancel_at_period_end=subscription.cancel_at_period_end,
            provider_subscription_id=subscription.provider_subscription_id,
        )

    async def cancel_subscription(self, user_id: str) -> Dict[str, Any]:
        """다음 결제 주기에 해지 예약 (DB 반영은 웹훅으로)"""
        subscription = await self._require_subscription(user_id)
        if subscription.status in (SubscriptionStatus.CANCELLED, SubscriptionStatus.EXPIRED):
            raise SubscriptionConflict("이미 해지된 구독입니다")

        await self._call_provider(
            "subscription_cancel",
            user_id,
            self.provider.cancel_subscription(subscription.provider_subscription_id),
        )
        logger.info("구독 해지 예약: user_id=%s sub=%s", user_id, subscription.provider_subscription_id)
        return {
            "cancelled_at": self._clock().isoformat(),
            "period_end": subscription.current_period_end.isoformat() if subscription.current_period_end else None,
        }

    async def resume_subscription(self, user_id: str) -> Dict[str, Any]:
        """예약된 해지 취소 (기간이 남아있는 경우만)"""
        subscription = await self._require_subscription(user_id)
        if not subscription.cancel_at_period_end:
            raise SubscriptionConflict("해지 예약된 구독이 아닙니다")

        now = self._clock()
        if subscription.current_period_end is None or subscription.current_period_end <= now:
            raise SubscriptionConflict("구독 기간이 이미 종료되었습니다")

        await self._call_provider(
            "subscription_resume",
            user_id,
            self.provider.resume_subscription(subscription.provider_subscription_id),
        )
        logger.info("구독 해지 예약 취소: user_id=%s sub=%s", user_id, subscription.provider_subscription_id)
        return {"resumed_at": now.isoformat()}

    async def get_portal_url(self, user_id: str) -> Dict[str, str]:
        subscription = await self._require_subscription(user_id)
        url = await self._call_provider(
            "portal_session",
            user_id,
            self.provider.get_portal_url(
                subscription.provider_customer_id,
                subscription.provider_subscription_id,
            ),
        )
        return {"portal_url": url}

    async def create_checkout(
        self,
        user_id: str,
        billing_cycle: BillingCycle,
        email: Optional[str] = None,
    ) -> Dict[str, Any]:
        info = await self.get_subscription_info(user_id)
        if info.tier is SubscriptionTier.PRO and not info.cancel_at_period_end:
            raise SubscriptionConflict("이미 Pro 구독 중입니다")

        return await self._call_provider(
            "checkout",
            user_id,
            self.provider.create_checkout(user_id, billing_cycle, email),
        )

    async def create_credit_pack_checkout(
        self,
        user_id: str,
        pack_id: str,
        email: Optional[str] = None,
    ) -> Dict[str, Any]:
        if BillingConfig.get_credit_pack(pack_id) is None:
            raise UnknownCreditPack(pack_id)

        return await self._call_provider(
            "credit_pack_checkout",
            user_id,
            self.provider.create_credit_pack_checkout(user_id, pack_id, email),
        )

    async def get_credits_overview(self, user_id: str, limit: int = 20) -> Dict[str, Any]:
        balance = await self.ledger.get_balance(user_id)
        entries = await self.ledger.list_entries(user_id, limit)
        return {
            "balance": balance,
            "entries": [entry.to_public_dict() for entry in entries],
        }

    @staticmethod
    def list_credit_packs() -> List[Dict[str, Any]]:
        return BillingConfig.list_credit_packs()
