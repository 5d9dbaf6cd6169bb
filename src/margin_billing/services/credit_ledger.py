"""
크레딧 원장 서비스

잔액은 항상 원장 항목 delta의 합계이며 별도의 가변 잔액 컬럼은 두지 않는다.
"""
import logging
from typing import Any, Dict, List, Optional

from margin_billing.core.billing_config import BillingConfig, CreditReason
from margin_billing.core.interfaces import ICreditLedgerStore
from margin_billing.core.responses import (
    InsufficientCredits,
    MissingRequiredField,
    UnknownCreditPack,
    UnknownFeature,
)
from margin_billing.schemas.billing import CreditLedgerEntry

logger = logging.getLogger(__name__)


class CreditLedger:
    """추가 전용 크레딧 원장"""

    def __init__(self, store: ICreditLedgerStore):
        self.store = store

    async def add_credits(
        self,
        user_id: str,
        amount: int,
        reason: CreditReason,
        memo: str,
        external_ref: Optional[str] = None,
    ) -> Optional[CreditLedgerEntry]:
        """크레딧 지급 항목 추가

        같은 (user, reason, external_ref) 항목이 이미 있으면 아무것도 추가하지 않고 None 반환.
        """
        if amount <= 0:
            raise ValueError("지급 크레딧은 양수여야 합니다")
        if reason is CreditReason.DEBIT:
            raise ValueError("차감은 consume_credits를 사용해야 합니다")

        entry = CreditLedgerEntry(
            user_id=user_id,
            delta=amount,
            reason=reason,
            memo=memo,
            external_ref=external_ref,
        )
        stored = await self.store.append(entry)
        if stored is None:
            logger.info(
                "[CREDITS] duplicate %s ignored for user %s (ref=%s)",
                reason.value,
                user_id,
                external_ref,
            )
            return None

        logger.info("[CREDITS] +%s (%s) for user %s", amount, reason.value, user_id)
        return stored

    async def set_subscription_credits(self, user_id: str, amount_per_month: int) -> None:
        """월간 갱신 작업이 참조하는 구독 크레딧 지급량 기록"""
        if amount_per_month < 0:
            raise ValueError("월간 지급량은 0 이상이어야 합니다")
        await self.store.set_subscription_credits(user_id, amount_per_month)

    @staticmethod
    def get_pack_credits(pack_id: Any) -> Optional[int]:
        """팩 ID에 해당하는 크레딧 수 (정확히 일치하지 않으면 None)"""
        return BillingConfig.get_pack_credits(pack_id)

    async def purchase_pack(
        self,
        user_id: Optional[str],
        pack_id: Optional[str],
        external_ref: Optional[str] = None,
    ) -> Optional[CreditLedgerEntry]:
        """크레딧 팩 구매 반영"""
        if not user_id:
            raise MissingRequiredField("customData.userId")
        if not pack_id:
            raise MissingRequiredField("customData.packId")

        pack = BillingConfig.get_credit_pack(pack_id)
        if pack is None:
            raise UnknownCreditPack(pack_id)

        return await self.add_credits(
            user_id,
            pack.credits,
            CreditReason.PURCHASE,
            f"Purchased {pack.name} ({pack.credits} credits)",
            external_ref=external_ref,
        )

    async def get_balance(self, user_id: str) -> int:
        return await self.store.sum_balance(user_id)

    async def consume_credits(
        self,
        user_id: str,
        feature_id: Any,
        memo: Optional[str] = None,
    ) -> Dict[str, Any]:
        """AI 기능 사용 비용만큼 크레딧 차감"""
        feature = BillingConfig.get_feature(feature_id)
        if feature is None:
            raise UnknownFeature(feature_id)

        balance = await self.store.sum_balance(user_id)
        if balance < feature.credit_cost:
            raise InsufficientCredits(feature.credit_cost, balance)

        await self.store.append(
            CreditLedgerEntry(
                user_id=user_id,
                delta=-feature.credit_cost,
                reason=CreditReason.DEBIT,
                memo=memo or f"Used {feature.name}",
                feature_id=feature.id,
            )
        )
        logger.info("[CREDITS] -%s (%s) for user %s", feature.credit_cost, feature.id, user_id)
        return {
            "consumed": feature.credit_cost,
            "balance_after": balance - feature.credit_cost,
            "feature_id": feature.id,
        }

    async def list_entries(self, user_id: str, limit: int = 20) -> List[CreditLedgerEntry]:
        return await self.store.list_entries(user_id, limit)
