"""
결제 웹훅 / 구독 상태 엔진 애플리케이션
"""
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import uvicorn

from margin_billing.core.config import settings
from margin_billing.core.factory import BillingServices, ServiceFactory
from margin_billing.core.middleware import setup_exception_handlers
from margin_billing.core.responses import success_response
from margin_billing.core.scheduler import cleanup_scheduler, initialize_scheduler
from margin_billing.routers import billing_router, webhook_router

# 로깅 설정
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """애플리케이션 라이프사이클 관리"""
    if getattr(app.state, "billing", None) is None:
        app.state.billing = ServiceFactory.build(settings)
        logger.info("결제 서비스 구성 완료")

    services: BillingServices = app.state.billing
    await initialize_scheduler(services.idempotency, services.retention)
    logger.info("애플리케이션 초기화 완료")

    yield

    await cleanup_scheduler()
    logger.info("애플리케이션 종료")


def create_app(services: Optional[BillingServices] = None) -> FastAPI:
    """FastAPI 애플리케이션 생성

    services를 넘기면 Supabase 구성을 건너뛰고 그대로 사용한다.
    """
    app = FastAPI(
        title="Margin Billing Server",
        description="Payment webhook ingestion and subscription state engine",
        version="1.0.0",
        lifespan=lifespan,
        debug=settings.DEBUG,
    )
    if services is not None:
        app.state.billing = services

    setup_exception_handlers(app)

    # CORS 미들웨어 추가
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # 프로덕션에서는 특정 도메인만 허용
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(webhook_router.router)
    app.include_router(billing_router.router)

    @app.get("/")
    async def root():
        return success_response(
            data={"service": "margin-billing", "provider": settings.PAYMENT_PROVIDER},
            message="Margin Billing Server",
        )

    @app.get("/health")
    async def health_check():
        return success_response(
            data={"status": "healthy", "timestamp": datetime.now().isoformat()},
            message="서버가 정상 작동 중입니다",
        )

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(app, host=settings.HOST, port=settings.PORT)
