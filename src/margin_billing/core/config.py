"""
애플리케이션 설정 관리
"""
from pathlib import Path
from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


_FILE_PATH = Path(__file__).resolve()


def _collect_env_files(file_path: Path) -> tuple[Path, ...]:
    """환경 파일 후보를 가까운 디렉터리부터 수집"""

    collected: list[Path] = []
    seen: set[Path] = set()

    for directory in file_path.parents:
        for name in (".env", ".env.local"):
            candidate = directory / name
            if candidate.exists() and candidate not in seen:
                collected.append(candidate)
                seen.add(candidate)

    return tuple(collected)


_ENV_FILES = _collect_env_files(_FILE_PATH)


def _load_dotenv_files() -> None:
    """프로젝트 전체에서 활용할 .env 파일들을 순차적으로 로드"""

    for dotenv_path in _ENV_FILES:
        load_dotenv(dotenv_path, override=False)


_load_dotenv_files()


class Settings(BaseSettings):
    """애플리케이션 설정"""

    model_config = SettingsConfigDict(
        env_file=tuple(str(path) for path in _ENV_FILES) if _ENV_FILES else None,
        case_sensitive=True,
        extra="allow",
    )

    # 서버 설정
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    DEBUG: bool = False

    # 로깅 설정
    LOG_LEVEL: str = "INFO"

    # Supabase 설정 (웹훅 처리는 RLS를 우회하는 service role 키 사용)
    SUPABASE_URL: Optional[str] = None
    SUPABASE_ANON_KEY: Optional[str] = None
    SUPABASE_SERVICE_ROLE_KEY: Optional[str] = None

    # 결제 공급자 선택
    PAYMENT_PROVIDER: Literal["paddle", "lemonsqueezy"] = "paddle"

    # Paddle Billing 설정
    PADDLE_API_KEY: Optional[str] = None
    PADDLE_WEBHOOK_SECRET: str = ""
    PADDLE_ENVIRONMENT: Literal["sandbox", "production"] = "sandbox"
    PADDLE_MONTHLY_PRICE_ID: Optional[str] = None
    PADDLE_YEARLY_PRICE_ID: Optional[str] = None
    PADDLE_CREDIT_PACK_25_PRICE_ID: Optional[str] = None
    PADDLE_CREDIT_PACK_75_PRICE_ID: Optional[str] = None
    PADDLE_CREDIT_PACK_200_PRICE_ID: Optional[str] = None
    PADDLE_API_TIMEOUT_SECONDS: float = 15.0

    # 크레딧 / 웹훅 정책
    PRO_CREDITS_PER_MONTH: int = 0
    WEBHOOK_TIMESTAMP_TOLERANCE_SECONDS: int = 300
    PROCESSED_WEBHOOK_RETENTION_DAYS: int = 7

    @field_validator("PRO_CREDITS_PER_MONTH")
    @classmethod
    def validate_pro_credits(cls, v):
        if v < 0:
            raise ValueError("PRO_CREDITS_PER_MONTH는 0 이상이어야 합니다")
        return v

    @field_validator("WEBHOOK_TIMESTAMP_TOLERANCE_SECONDS")
    @classmethod
    def validate_tolerance(cls, v):
        if v <= 0:
            raise ValueError("WEBHOOK_TIMESTAMP_TOLERANCE_SECONDS는 양수여야 합니다")
        return v

    @field_validator("PROCESSED_WEBHOOK_RETENTION_DAYS")
    @classmethod
    def validate_retention(cls, v):
        # 보존 기간은 리플레이 허용 구간(분 단위)보다 충분히 길어야 함
        if v < 1:
            raise ValueError("PROCESSED_WEBHOOK_RETENTION_DAYS는 1일 이상이어야 합니다")
        return v

    @property
    def paddle_api_base_url(self) -> str:
        if self.PADDLE_ENVIRONMENT == "production":
            return "https://api.paddle.com"
        return "https://sandbox-api.paddle.com"


# 전역 설정 인스턴스
settings = Settings()
