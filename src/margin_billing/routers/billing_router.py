"""
구독 / 크레딧 관련 API 라우터
사용자 구독 조회, 해지, 복구, 체크아웃 및 크레딧 조회/차감 엔드포인트 제공
"""
import logging

from fastapi import APIRouter, Depends, Query

from margin_billing.core.dependencies import get_billing_services, get_current_user
from margin_billing.core.factory import BillingServices
from margin_billing.core.responses import success_response
from margin_billing.schemas.billing import (
    CheckoutRequest,
    ConsumeCreditsRequest,
    CreditPackCheckoutRequest,
)
from margin_billing.schemas.events import BillingCycle

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/billing", tags=["billing"])


@router.get("/subscription")
async def get_subscription(
    current_user=Depends(get_current_user),
    services: BillingServices = Depends(get_billing_services),
):
    info = await services.subscription_service.get_subscription_info(current_user.id)
    return success_response(data=info.model_dump(mode="json"), message="구독 정보 조회 성공")


@router.post("/subscription/cancel")
async def cancel_subscription(
    current_user=Depends(get_current_user),
    services: BillingServices = Depends(get_billing_services),
):
    """구독 해지 요청 (기간 종료 시점)"""
    result = await services.subscription_service.cancel_subscription(current_user.id)
    return success_response(data=result, message="구독 해지가 예약되었습니다")


@router.post("/subscription/resume")
async def resume_subscription(
    current_user=Depends(get_current_user),
    services: BillingServices = Depends(get_billing_services),
):
    result = await services.subscription_service.resume_subscription(current_user.id)
    return success_response(data=result, message="구독 해지 예약이 취소되었습니다")


@router.get("/portal")
async def get_portal(
    current_user=Depends(get_current_user),
    services: BillingServices = Depends(get_billing_services),
):
    result = await services.subscription_service.get_portal_url(current_user.id)
    return success_response(data=result, message="포털 URL 발급 성공")


@router.post("/checkout")
async def create_checkout(
    request: CheckoutRequest,
    current_user=Depends(get_current_user),
    services: BillingServices = Depends(get_billing_services),
):
    result = await services.subscription_service.create_checkout(
        current_user.id,
        BillingCycle(request.billing_cycle),
        getattr(current_user, "email", None),
    )
    return success_response(data=result, message="체크아웃 생성 성공")


@router.get("/credits")
async def get_credits(
    limit: int = Query(20, ge=1, le=100),
    current_user=Depends(get_current_user),
    services: BillingServices = Depends(get_billing_services),
):
    result = await services.subscription_service.get_credits_overview(current_user.id, limit)
    return success_response(data=result, message="크레딧 조회 성공")


@router.get("/credits/packs")
async def list_credit_packs(services: BillingServices = Depends(get_billing_services)):
    return success_response(
        data={"packs": services.subscription_service.list_credit_packs()},
        message="크레딧 팩 목록",
    )


@router.post("/credits/checkout")
async def create_credit_pack_checkout(
    request: CreditPackCheckoutRequest,
    current_user=Depends(get_current_user),
    services: BillingServices = Depends(get_billing_services),
):
    result = await services.subscription_service.create_credit_pack_checkout(
        current_user.id,
        request.pack_id,
        getattr(current_user, "email", None),
    )
    return success_response(data=result, message="크레딧 팩 체크아웃 생성 성공")


@router.post("/credits/consume")
async def consume_credits(
    request: ConsumeCreditsRequest,
    current_user=Depends(get_current_user),
    services: BillingServices = Depends(get_billing_services),
):
    """AI 기능 사용 크레딧 차감"""
    result = await services.ledger.consume_credits(current_user.id, request.feature_id)
    return success_response(data=result, message="크레딧 차감 성공")
