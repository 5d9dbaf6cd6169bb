"""
저장소 및 서비스 인터페이스 정의
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional

from margin_billing.core.billing_config import SubscriptionTier
from margin_billing.schemas.billing import CreditLedgerEntry, SubscriptionRecord
from margin_billing.schemas.events import BillingCycle, ParsedWebhook


class ISubscriptionStore(ABC):
    """구독 저장소 인터페이스 (provider_subscription_id 기준 upsert)"""

    @abstractmethod
    async def find_by_provider_id(self, provider_subscription_id: str) -> Optional[SubscriptionRecord]:
        """공급자 구독 ID로 조회"""
        pass

    @abstractmethod
    async def find_latest_for_user(self, user_id: str) -> Optional[SubscriptionRecord]:
        """사용자의 가장 최근 구독 조회"""
        pass

    @abstractmethod
    async def upsert(self, record: SubscriptionRecord) -> SubscriptionRecord:
        """구독 생성 또는 갱신"""
        pass

    @abstractmethod
    async def update_fields(
        self,
        provider_subscription_id: str,
        fields: Dict[str, Any],
    ) -> Optional[SubscriptionRecord]:
        """지정한 컬럼만 갱신. 갱신된 레코드, 대상이 없으면 None"""
        pass


class ICreditLedgerStore(ABC):
    """크레딧 원장 저장소 인터페이스 (추가 및 합계)"""

    @abstractmethod
    async def append(self, entry: CreditLedgerEntry) -> Optional[CreditLedgerEntry]:
        """항목 추가. 같은 (user, reason, external_ref)가 이미 있으면 None"""
        pass

    @abstractmethod
    async def sum_balance(self, user_id: str) -> int:
        """delta 합계"""
        pass

    @abstractmethod
    async def list_entries(self, user_id: str, limit: int = 20) -> List[CreditLedgerEntry]:
        """최근 항목 조회"""
        pass

    @abstractmethod
    async def set_subscription_credits(self, user_id: str, amount_per_month: int) -> None:
        """월간 구독 크레딧 지급량 기록"""
        pass


class IUserSettingsStore(ABC):
    """사용자 설정 저장소 인터페이스"""

    @abstractmethod
    async def upsert_tier(self, user_id: str, tier: SubscriptionTier) -> None:
        """subscription_tier 필드 갱신"""
        pass

    @abstractmethod
    async def get_tier(self, user_id: str) -> Optional[SubscriptionTier]:
        """저장된 등급 조회"""
        pass


class IProcessedEventStore(ABC):
    """처리된 웹훅 이벤트 저장소 인터페이스"""

    @abstractmethod
    async def insert_if_absent(self, event_id: str, event_type: Optional[str] = None) -> bool:
        """처음이면 기록 후 True, 이미 있으면 False (원자적)"""
        pass

    @abstractmethod
    async def delete(self, event_id: str) -> None:
        """처리 기록 삭제 (재전송 허용)"""
        pass

    @abstractmethod
    async def mark_rejected(self, event_id: str, detail: str) -> None:
        """처리 불가 페이로드로 기록"""
        pass

    @abstractmethod
    async def purge_older_than(self, cutoff: datetime) -> int:
        """cutoff 이전 기록 삭제 후 삭제 건수 반환"""
        pass


class IPaymentProvider(ABC):
    """결제 공급자 어댑터 인터페이스"""

    name: str

    @abstractmethod
    def parse_webhook(self, raw_body: bytes, signature: Optional[str]) -> Optional[ParsedWebhook]:
        """서명 검증 후 정규화 이벤트 반환 (서명 실패 또는 JSON 아님: None)"""
        pass

    @abstractmethod
    async def create_checkout(
        self,
        user_id: str,
        billing_cycle: BillingCycle,
        email: Optional[str] = None,
    ) -> Dict[str, Any]:
        """구독 체크아웃 생성"""
        pass

    @abstractmethod
    async def create_credit_pack_checkout(
        self,
        user_id: str,
        pack_id: str,
        email: Optional[str] = None,
    ) -> Dict[str, Any]:
        """크레딧 팩 체크아웃 생성"""
        pass

    @abstractmethod
    async def get_portal_url(self, provider_customer_id: str, provider_subscription_id: Optional[str] = None) -> str:
        """고객 포털 URL 발급"""
        pass

    @abstractmethod
    async def cancel_subscription(self, provider_subscription_id: str) -> Dict[str, Any]:
        """다음 결제 주기에 구독 해지 예약"""
        pass

    @abstractmethod
    async def resume_subscription(self, provider_subscription_id: str) -> Dict[str, Any]:
        """예약된 해지 취소"""
        pass

    @abstractmethod
    async def get_subscription(self, provider_subscription_id: str) -> Dict[str, Any]:
        """공급자 측 구독 조회"""
        pass


class IAuthService(ABC):
    """인증 서비스 인터페이스"""

    @abstractmethod
    async def verify_auth(self, credentials) -> Any:
        """토큰 검증"""
        pass
