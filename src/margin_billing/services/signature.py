"""
Paddle Billing 웹훅 서명 검증

헤더 형식: ``ts=<unix-seconds>;h1=<hex-hmac>``
서명 대상: ``"{ts}:{raw_body}"`` (HMAC-SHA256)

본문은 검증 전에 절대 파싱하지 않으며, 어떤 구성 요소라도 빠지면 실패로 처리한다.
"""
import hashlib
import hmac
import logging
import string
from dataclasses import dataclass
from typing import Dict, Optional

logger = logging.getLogger(__name__)

_HEX_DIGITS = frozenset(string.hexdigits)


@dataclass(slots=True, frozen=True)
class SignatureParts:
    timestamp: str
    h1: str


def parse_signature_header(header: Optional[str]) -> Optional[SignatureParts]:
    """서명 헤더를 ts / h1 구성 요소로 분리 (형식이 맞지 않으면 None)"""
    if not header:
        return None

    parts: Dict[str, str] = {}
    for chunk in header.split(";"):
        chunk = chunk.strip()
        if not chunk or "=" not in chunk:
            continue
        key, value = chunk.split("=", 1)
        parts[key.strip()] = value.strip()

    ts = parts.get("ts")
    provided = parts.get("h1")
    if not ts or not provided:
        return None
    if not ts.isdigit():
        return None
    if any(ch not in _HEX_DIGITS for ch in provided):
        return None
    return SignatureParts(timestamp=ts, h1=provided.lower())


def compute_signature(raw_body: bytes, timestamp: str, secret: str) -> str:
    """``"{ts}:{body}"``에 대한 HMAC-SHA256 hex digest"""
    payload = timestamp.encode("utf-8") + b":" + raw_body
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def verify_signature(raw_body: bytes, header: Optional[str], secret: str) -> bool:
    """Paddle-Signature 검증 (fail closed)"""
    if not secret:
        logger.warning("[PADDLE] no webhook secret configured, rejecting webhook")
        return False

    if not header:
        logger.warning("[PADDLE] missing signature header")
        return False

    parts = parse_signature_header(header)
    if parts is None:
        logger.warning("[PADDLE] malformed signature header (ts/h1 missing or invalid)")
        return False

    expected = compute_signature(raw_body, parts.timestamp, secret)
    if hmac.compare_digest(expected, parts.h1):
        return True

    logger.warning("[PADDLE] signature mismatch (ts=%s)", parts.timestamp)
    return False
