"""원장 연산 결과 모델.

모든 공개 연산은 예외 대신 success/error 를 가진 결과 값을 반환한다.
호출자는 success 로 분기하고, 실패 시 error 코드와 함께 실린 수치(available, daily_used 등)를 사용한다.
"""

from __future__ import annotations

from datetime import date
from enum import StrEnum
from typing import Any, Self

from pydantic import BaseModel, Field

from common.types.datetime import UtcDateTime

from .credit import CreditGrant


class CreditErrorCode(StrEnum):
    USER_NOT_FOUND = "USER_NOT_FOUND"
    INSUFFICIENT_CREDITS = "INSUFFICIENT_CREDITS"
    DAILY_LIMIT_EXCEEDED = "DAILY_LIMIT_EXCEEDED"
    BONUS_ALREADY_CLAIMED = "BONUS_ALREADY_CLAIMED"
    INVALID_AMOUNT = "INVALID_AMOUNT"
    DATABASE_ERROR = "DATABASE_ERROR"


class LedgerResult(BaseModel):
    """결과 모델 공통 베이스."""

    success: bool = True
    error: CreditErrorCode | None = None

    @classmethod
    def failure(cls, error: CreditErrorCode, **context: Any) -> Self:
        return cls(success=False, error=error, **context)


class ConsumedGrant(BaseModel):
    """FIFO 차감 내역 한 건. transaction_id 는 차감된 grant 의 id 다."""

    transaction_id: str
    amount_used: int


class ConsumeResult(LedgerResult):
    consumed: int | None = None
    transactions: list[ConsumedGrant] = Field(default_factory=list)
    new_daily_total: int | None = None
    # INSUFFICIENT_CREDITS
    available: int | None = None
    requested: int | None = None
    # DAILY_LIMIT_EXCEEDED
    daily_used: int | None = None
    daily_limit: int | None = None
    daily_remaining: int | None = None


class DailyLimitResult(LedgerResult):
    can_consume: bool = False
    daily_used: int = 0
    daily_limit: int = 0
    daily_remaining: int = 0
    usage_date: date | None = None


class ExpiringCredit(BaseModel):
    grant_id: str | None
    amount: int  # 아직 쓸 수 있는 잔량
    expires_at: UtcDateTime


class BalanceResult(LedgerResult):
    total_valid: int = 0
    expiring_credits: list[ExpiringCredit] = Field(default_factory=list)


class GrantResult(LedgerResult):
    transaction_id: str | None = None
    amount: int | None = None
    expires_at: UtcDateTime | None = None
    grant: CreditGrant | None = None


class BonusResult(LedgerResult):
    amount: int | None = None
    bonus_claimed: bool = False
    transaction_id: str | None = None
    expires_at: UtcDateTime | None = None


class SignupBonusConfig(BaseModel):
    bonus_amount: int
    expiry_days: int | None


class CleanupResult(LedgerResult):
    cleaned_count: int = 0
    freed_space: int = 0


class ExpiredCreditsResult(LedgerResult):
    grants: list[CreditGrant] = Field(default_factory=list)


class HistoryResult(LedgerResult):
    items: list[CreditGrant] = Field(default_factory=list)
    total: int = 0
    page: int = 1
    page_size: int = 20


class AdjustmentResult(LedgerResult):
    """관리자 잔액 조정 결과.

    delta > 0 이면 새 grant(transaction_id), delta < 0 이면 FIFO 차감 내역(transactions)을 담는다.
    """

    delta: int | None = None
    transaction_id: str | None = None
    expires_at: UtcDateTime | None = None
    transactions: list[ConsumedGrant] = Field(default_factory=list)
    available: int | None = None
    requested: int | None = None
