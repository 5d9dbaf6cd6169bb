"""
Supabase 기반 결제 저장소 모음

웹훅 처리는 RLS를 우회해야 하므로 service role 클라이언트를 사용한다.
조회 실패는 로그를 남긴 뒤 그대로 전파한다 (호출자가 재전송 여부를 결정).
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
import logging

from postgrest.exceptions import APIError
from supabase import Client

from margin_billing.core.billing_config import SubscriptionTier
from margin_billing.core.interfaces import (
    ICreditLedgerStore,
    IProcessedEventStore,
    ISubscriptionStore,
    IUserSettingsStore,
)
from margin_billing.schemas.billing import CreditLedgerEntry, SubscriptionRecord

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION = "23505"


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _is_unique_violation(exc: APIError) -> bool:
    return getattr(exc, "code", None) == UNIQUE_VIOLATION


class DatabaseHelper:
    """Supabase 클라이언트 보관 및 공통 유틸"""

    def __init__(self, supabase_client: Client, admin_client: Client = None):
        self.supabase = supabase_client
        self.admin_client = admin_client or supabase_client

    def _get_client(self, use_admin: bool = False) -> Client:
        """적절한 클라이언트 반환 - 일반적으로 admin client 사용"""
        return self.admin_client if use_admin or self.admin_client else self.supabase


class SupabaseSubscriptionStore(DatabaseHelper, ISubscriptionStore):
    """subscriptions 테이블"""

    table = "subscriptions"

    async def find_by_provider_id(self, provider_subscription_id: str) -> Optional[SubscriptionRecord]:
        try:
            client = self._get_client(use_admin=True)
            result = (
                client.table(self.table)
                .select("*")
                .eq("provider_subscription_id", provider_subscription_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.error(f"구독 조회 실패 ({provider_subscription_id}): {e}")
            raise
        return SubscriptionRecord.from_row(result.data[0]) if result.data else None

    async def find_latest_for_user(self, user_id: str) -> Optional[SubscriptionRecord]:
        try:
            client = self._get_client(use_admin=True)
            result = (
                client.table(self.table)
                .select("*")
                .eq("user_id", user_id)
                .order("updated_at", desc=True)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.error(f"사용자 구독 조회 실패 ({user_id}): {e}")
            raise
        return SubscriptionRecord.from_row(result.data[0]) if result.data else None

    async def upsert(self, record: SubscriptionRecord) -> SubscriptionRecord:
        row = record.to_row()
        row["updated_at"] = _utcnow_iso()
        try:
            client = self._get_client(use_admin=True)
            result = (
                client.table(self.table)
                .upsert(row, on_conflict="provider_subscription_id")
                .execute()
            )
        except Exception as e:
            logger.error(f"구독 저장 실패 ({record.provider_subscription_id}): {e}")
            raise
        return SubscriptionRecord.from_row(result.data[0]) if result.data else record

    async def update_fields(
        self,
        provider_subscription_id: str,
        fields: Dict[str, Any],
    ) -> Optional[SubscriptionRecord]:
        row = SubscriptionRecord.fields_to_row(fields)
        row["updated_at"] = _utcnow_iso()
        try:
            client = self._get_client(use_admin=True)
            result = (
                client.table(self.table)
                .update(row)
                .eq("provider_subscription_id", provider_subscription_id)
                .execute()
            )
        except Exception as e:
            logger.error(f"구독 부분 갱신 실패 ({provider_subscription_id}): {e}")
            raise
        return SubscriptionRecord.from_row(result.data[0]) if result.data else None


class SupabaseCreditLedgerStore(DatabaseHelper, ICreditLedgerStore):
    """credit_ledger / user_credits 테이블"""

    table = "credit_ledger"

    async def append(self, entry: CreditLedgerEntry) -> Optional[CreditLedgerEntry]:
        try:
            client = self._get_client(use_admin=True)
            result = client.table(self.table).insert(entry.to_row()).execute()
        except APIError as e:
            if _is_unique_violation(e):
                return None
            logger.error(f"크레딧 원장 기록 실패 ({entry.user_id}): {e}")
            raise
        return CreditLedgerEntry.from_row(result.data[0]) if result.data else entry

    async def sum_balance(self, user_id: str) -> int:
        try:
            client = self._get_client(use_admin=True)
            result = client.rpc("credit_balance", {"p_user_id": user_id}).execute()
        except Exception as e:
            logger.error(f"크레딧 잔액 조회 실패 ({user_id}): {e}")
            raise
        return int(result.data or 0)

    async def list_entries(self, user_id: str, limit: int = 20) -> List[CreditLedgerEntry]:
        try:
            client = self._get_client(use_admin=True)
            result = (
                client.table(self.table)
                .select("*")
                .eq("user_id", user_id)
                .order("created_at", desc=True)
                .limit(limit)
                .execute()
            )
        except Exception as e:
            logger.error(f"크레딧 내역 조회 실패 ({user_id}): {e}")
            raise
        return [CreditLedgerEntry.from_row(row) for row in result.data or []]

    async def set_subscription_credits(self, user_id: str, amount_per_month: int) -> None:
        try:
            client = self._get_client(use_admin=True)
            client.table("user_credits").upsert(
                {
                    "user_id": user_id,
                    "subscription_credits_per_month": amount_per_month,
                    "updated_at": _utcnow_iso(),
                },
                on_conflict="user_id",
            ).execute()
        except Exception as e:
            logger.error(f"구독 크레딧 지급량 저장 실패 ({user_id}): {e}")
            raise


class SupabaseUserSettingsStore(DatabaseHelper, IUserSettingsStore):
    """user_settings.subscription_tier"""

    table = "user_settings"

    async def upsert_tier(self, user_id: str, tier: SubscriptionTier) -> None:
        try:
            client = self._get_client(use_admin=True)
            client.table(self.table).upsert(
                {"user_id": user_id, "subscription_tier": tier.value},
                on_conflict="user_id",
            ).execute()
        except Exception as e:
            logger.error(f"구독 등급 저장 실패 ({user_id}): {e}")
            raise

    async def get_tier(self, user_id: str) -> Optional[SubscriptionTier]:
        try:
            client = self._get_client(use_admin=True)
            result = (
                client.table(self.table)
                .select("subscription_tier")
                .eq("user_id", user_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.error(f"구독 등급 조회 실패 ({user_id}): {e}")
            raise
        if not result.data:
            return None
        raw: Any = result.data[0].get("subscription_tier")
        return SubscriptionTier.PRO if raw == SubscriptionTier.PRO.value else SubscriptionTier.FREE


class SupabaseProcessedEventStore(DatabaseHelper, IProcessedEventStore):
    """processed_webhooks 테이블 (event_id PK가 중복 판단 기준)"""

    table = "processed_webhooks"

    async def insert_if_absent(self, event_id: str, event_type: Optional[str] = None) -> bool:
        row: Dict[str, Any] = {
            "event_id": event_id,
            "event_type": event_type,
            "status": "processed",
        }
        try:
            client = self._get_client(use_admin=True)
            client.table(self.table).insert(row).execute()
        except APIError as e:
            if _is_unique_violation(e):
                return False
            logger.error(f"웹훅 처리 기록 실패 ({event_id}): {e}")
            raise
        return True

    async def delete(self, event_id: str) -> None:
        try:
            client = self._get_client(use_admin=True)
            client.table(self.table).delete().eq("event_id", event_id).execute()
        except Exception as e:
            logger.error(f"웹훅 처리 기록 삭제 실패 ({event_id}): {e}")
            raise

    async def mark_rejected(self, event_id: str, detail: str) -> None:
        try:
            client = self._get_client(use_admin=True)
            client.table(self.table).update(
                {"status": "rejected", "detail": detail}
            ).eq("event_id", event_id).execute()
        except Exception as e:
            logger.error(f"웹훅 거부 기록 실패 ({event_id}): {e}")
            raise

    async def purge_older_than(self, cutoff: datetime) -> int:
        try:
            client = self._get_client(use_admin=True)
            result = (
                client.table(self.table)
                .delete()
                .lt("processed_at", cutoff.isoformat())
                .execute()
            )
        except Exception as e:
            logger.error(f"웹훅 처리 기록 정리 실패: {e}")
            raise
        return len(result.data) if result.data else 0
