"""
배경 작업 스케줄러
처리된 웹훅 기록의 보존 기간 정리
"""
import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from margin_billing.services.idempotency import IdempotencyGuard

logger = logging.getLogger(__name__)


class BackgroundScheduler:
    def __init__(self, idempotency: IdempotencyGuard, retention: timedelta):
        self.idempotency = idempotency
        self.retention = retention
        self.running = False
        self.tasks = []

    async def start(self):
        """스케줄러 시작"""
        if self.running:
            return

        self.running = True
        logger.info("백그라운드 스케줄러 시작")

        # 웹훅 처리 기록 정리 (매일 자정, UTC)
        self.tasks.append(
            asyncio.create_task(self._daily_cleanup_scheduler())
        )

    async def stop(self):
        """스케줄러 중지"""
        if not self.running:
            return

        self.running = False
        logger.info("백그라운드 스케줄러 중지")

        for task in self.tasks:
            if not task.done():
                task.cancel()

        if self.tasks:
            await asyncio.gather(*self.tasks, return_exceptions=True)

        self.tasks.clear()

    async def _daily_cleanup_scheduler(self):
        """매일 자정에 정리 작업 실행"""
        while self.running:
            try:
                now = datetime.now(timezone.utc)
                next_midnight = (now + timedelta(days=1)).replace(
                    hour=0, minute=0, second=0, microsecond=0
                )
                sleep_seconds = (next_midnight - now).total_seconds()

                logger.info(f"다음 정리 작업까지 {sleep_seconds:.0f}초 대기")
                await asyncio.sleep(sleep_seconds)

                if not self.running:
                    break

                await self.run_cleanup()

            except asyncio.CancelledError:
                logger.info("일일 정리 스케줄러 취소됨")
                break
            except Exception as e:
                logger.error(f"일일 정리 스케줄러 오류: {e}")
                # 오류 발생 시 1시간 후 재시도
                await asyncio.sleep(3600)

    async def run_cleanup(self) -> int:
        """보존 기간이 지난 웹훅 처리 기록 삭제"""
        logger.info("웹훅 처리 기록 정리 시작")
        deleted = await self.idempotency.purge_expired(self.retention)
        logger.info(f"웹훅 처리 기록 {deleted}개 정리 완료")
        return deleted


# 전역 스케줄러 인스턴스
scheduler: Optional[BackgroundScheduler] = None


def get_scheduler() -> Optional[BackgroundScheduler]:
    """스케줄러 인스턴스 반환"""
    return scheduler


async def initialize_scheduler(idempotency: IdempotencyGuard, retention: timedelta):
    """스케줄러 초기화"""
    global scheduler
    if scheduler is None:
        scheduler = BackgroundScheduler(idempotency, retention)
        await scheduler.start()
        logger.info("백그라운드 스케줄러 초기화 완료")


async def cleanup_scheduler():
    """스케줄러 정리"""
    global scheduler
    if scheduler:
        await scheduler.stop()
        scheduler = None
        logger.info("백그라운드 스케줄러 정리 완료")
