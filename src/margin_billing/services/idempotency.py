"""
웹훅 이벤트 중복 처리 방지
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from margin_billing.core.interfaces import IProcessedEventStore

logger = logging.getLogger(__name__)


class IdempotencyGuard:
    """공급자 이벤트 ID 기준 at-most-once 게이트

    원자성은 저장소의 유일성 제약(processed_webhooks.event_id PK)에 맡긴다.
    프로세스 내 캐시는 두지 않는다.
    """

    def __init__(
        self,
        store: IProcessedEventStore,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.store = store
        self._clock = clock

    async def mark_processed(self, event_id: Optional[str], event_type: Optional[str] = None) -> bool:
        """처음 보는 이벤트면 True, 이미 기록된 이벤트면 False

        event_id가 없는 레거시 이벤트는 중복 검사 없이 True.
        """
        if not event_id:
            return True

        inserted = await self.store.insert_if_absent(event_id, event_type)
        if not inserted:
            logger.info("[PADDLE] duplicate webhook event skipped: %s", event_id)
        return inserted

    async def release(self, event_id: Optional[str]) -> None:
        """처리 실패 시 기록을 지워 공급자 재전송이 다시 처리되도록 함"""
        if not event_id:
            return
        await self.store.delete(event_id)
        logger.info("[PADDLE] idempotency claim released: %s", event_id)

    async def mark_rejected(self, event_id: Optional[str], detail: str) -> None:
        if not event_id:
            return
        await self.store.mark_rejected(event_id, detail)

    async def purge_expired(self, retention: timedelta) -> int:
        """보존 기간이 지난 기록 정리"""
        cutoff = self._clock() - retention
        deleted = await self.store.purge_older_than(cutoff)
        logger.info("[PADDLE] purged %s processed webhook records older than %s", deleted, cutoff.isoformat())
        return deleted
