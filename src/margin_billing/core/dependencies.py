"""
FastAPI 의존성 함수
"""
from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from margin_billing.core.factory import BillingServices

security = HTTPBearer()


def get_billing_services(request: Request) -> BillingServices:
    """lifespan에서 구성한 서비스 묶음 반환"""
    services = getattr(request.app.state, "billing", None)
    if services is None:
        raise HTTPException(status_code=503, detail="결제 서비스가 초기화되지 않았습니다")
    return services


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    services: BillingServices = Depends(get_billing_services),
):
    """현재 사용자 정보를 가져오는 의존성"""
    if services.auth_service is None:
        raise HTTPException(status_code=503, detail="인증 서비스가 구성되지 않았습니다")
    return await services.auth_service.verify_auth(credentials)
