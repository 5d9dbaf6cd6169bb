"""
웹훅 리플레이 허용 구간 필터
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Union

logger = logging.getLogger(__name__)

DEFAULT_TOLERANCE = timedelta(minutes=5)


def parse_timestamp(value: Union[str, datetime, None]) -> Optional[datetime]:
    """ISO-8601 문자열 또는 datetime을 UTC aware datetime으로 변환 (실패 시 None)"""
    if value is None:
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        raw = str(value).strip()
        if not raw:
            return None
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(raw)
        except ValueError:
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def is_timestamp_valid(
    occurred_at: Union[str, datetime, None],
    now: Optional[datetime] = None,
    tolerance: timedelta = DEFAULT_TOLERANCE,
) -> bool:
    """발생 시각이 허용 구간 안에 있는지 확인

    - 발생 시각이 없으면 항상 허용
    - ``now - occurred_at <= tolerance`` 이면 허용 (경계 포함)
    - 미래 시각은 크기와 관계없이 허용 (시계 오차)
    - 해석할 수 없는 문자열은 오래된 이벤트로 간주
    """
    if occurred_at is None or occurred_at == "":
        return True

    parsed = parse_timestamp(occurred_at)
    if parsed is None:
        logger.warning("[PADDLE] unparseable occurred_at value: %r", occurred_at)
        return False

    current = now or datetime.now(timezone.utc)
    if current.tzinfo is None:
        current = current.replace(tzinfo=timezone.utc)

    return current - parsed <= tolerance
