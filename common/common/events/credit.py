"""크레딧 원장 이벤트 정의."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


class CreditEventType:
    """크레딧 이벤트 타입 상수."""

    CREDIT_CONSUMED = "credit.consumed"
    CREDIT_GRANTED = "credit.granted"
    CREDIT_EXPIRED = "credit.expired"


@dataclass(slots=True)
class CreditConsumedEvent:
    """크레딧 소비 이벤트.

    FIFO 차감과 일일 사용량 갱신이 커밋된 뒤 발행된다.
    transactions 는 {"transaction_id", "amount_used"} 목록이다.
    """

    id: str
    type: str
    timestamp: str
    source: str
    version: str
    user_code: str
    amount: int
    new_daily_total: int
    transactions: list[dict[str, Any]] = field(default_factory=list)


@dataclass(slots=True)
class CreditGrantedEvent:
    """크레딧 지급 이벤트.

    구매, 가입 보너스, 관리자 조정 등으로 새 grant 가 생성되면 발행된다.
    """

    id: str
    type: str
    timestamp: str
    source: str
    version: str
    user_code: str
    grant_id: str
    credit_type: str
    amount: int
    expires_at: str | None


@dataclass(slots=True)
class CreditExpiredEvent:
    """만료 회수 배치 결과 이벤트."""

    id: str
    type: str
    timestamp: str
    source: str
    version: str
    cleaned_count: int
    freed_space: int
