"""
구독 등급 / 크레딧 팩 / AI 기능 비용 카탈로그
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional


class SubscriptionTier(str, Enum):
    """접근 등급"""
    FREE = "free"
    PRO = "pro"


class CreditReason(str, Enum):
    """크레딧 원장 항목 사유"""
    SUBSCRIPTION_GRANT = "subscription_grant"
    PURCHASE = "purchase"
    DEBIT = "debit"


@dataclass(frozen=True)
class CreditPack:
    """1회성 크레딧 팩"""
    id: str
    name: str
    credits: int
    price_in_cents: int
    popular: bool = False


@dataclass(frozen=True)
class AIFeature:
    """크레딧을 소모하는 AI 기능"""
    id: str
    name: str
    description: str
    credit_cost: int


class BillingConfig:
    """결제 카탈로그 관리자"""

    CREDIT_PACKS: Dict[str, CreditPack] = {
        "pack_25": CreditPack(id="pack_25", name="Starter Pack", credits=25, price_in_cents=299),
        "pack_75": CreditPack(id="pack_75", name="Value Pack", credits=75, price_in_cents=699, popular=True),
        "pack_200": CreditPack(id="pack_200", name="Power Pack", credits=200, price_in_cents=1499),
    }

    AI_FEATURE_COSTS: Dict[str, AIFeature] = {
        "insights": AIFeature(
            id="insights",
            name="AI Insights",
            description="Get personalized spending insights",
            credit_cost=1,
        ),
        "budget_improvement": AIFeature(
            id="budget_improvement",
            name="Budget Improvement Plan",
            description="AI-generated budget optimization suggestions",
            credit_cost=3,
        ),
        "expense_analysis": AIFeature(
            id="expense_analysis",
            name="Expense Analysis",
            description="Deep analysis of spending patterns",
            credit_cost=2,
        ),
        "savings_recommendations": AIFeature(
            id="savings_recommendations",
            name="Savings Recommendations",
            description="Personalized savings strategies",
            credit_cost=2,
        ),
    }

    @classmethod
    def get_credit_pack(cls, pack_id: Any) -> Optional[CreditPack]:
        """팩 ID로 크레딧 팩 조회 (정확히 일치하는 ID만 허용)"""
        if not isinstance(pack_id, str):
            return None
        return cls.CREDIT_PACKS.get(pack_id)

    @classmethod
    def get_pack_credits(cls, pack_id: Any) -> Optional[int]:
        """팩 ID에 해당하는 크레딧 수 (없으면 None)"""
        pack = cls.get_credit_pack(pack_id)
        return pack.credits if pack else None

    @classmethod
    def list_credit_packs(cls) -> List[Dict[str, Any]]:
        """구매 가능한 팩 목록"""
        return [
            {
                "id": pack.id,
                "name": pack.name,
                "credits": pack.credits,
                "price_in_cents": pack.price_in_cents,
                "popular": pack.popular,
            }
            for pack in cls.CREDIT_PACKS.values()
        ]

    @classmethod
    def get_feature(cls, feature_id: Any) -> Optional[AIFeature]:
        """AI 기능 조회"""
        if not isinstance(feature_id, str):
            return None
        return cls.AI_FEATURE_COSTS.get(feature_id)
