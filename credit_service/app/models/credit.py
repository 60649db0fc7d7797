"""크레딧 원장 도메인 모델.

유저당 여러 grant 를 가질 수 있으며, 각 grant 는 독립적인 잔량과 만료시각을 가진다.
grant 는 삭제되지 않고 remaining 만 단조 감소하므로 그 자체로 감사 기록이 된다.
"""

from __future__ import annotations

from datetime import date, datetime
from enum import StrEnum
from typing import Iterable

from pydantic import BaseModel, Field, model_validator

from common.types.datetime import UtcDateTime


class CreditType(StrEnum):
    PURCHASE = "purchase"
    BONUS = "bonus"
    REFERRAL = "referral"
    ADMIN_ADJUSTMENT = "admin_adjustment"
    OTHER = "other"


class CreditGrant(BaseModel):
    """한 번의 크레딧 지급 단위."""

    id: str | None = None
    user_code: str
    amount: int = Field(gt=0)  # 최초 지급량
    remaining: int = Field(ge=0)  # 아직 쓰지 않은 양
    type: CreditType
    description: str = ""
    created_at: UtcDateTime
    expires_at: UtcDateTime | None = None  # None 이면 만료 없음
    consumed_at: UtcDateTime | None = None  # remaining 이 0 이 되는 순간 한 번만 기록

    @model_validator(mode="after")
    def _check_balance_invariant(self) -> "CreditGrant":
        if self.remaining > self.amount:
            raise ValueError("remaining cannot exceed amount")
        if (self.remaining == 0) != (self.consumed_at is not None):
            raise ValueError("consumed_at must be set exactly when remaining is 0")
        return self

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at <= now

    def is_spendable(self, now: datetime) -> bool:
        return self.remaining > 0 and not self.is_expired(now)


class DailyUsageRecord(BaseModel):
    """유저의 하루(설정 타임존 기준) 누적 소비량."""

    user_code: str
    usage_date: date
    credits_consumed: int = Field(default=0, ge=0)


class UserCreditProfile(BaseModel):
    """원장이 참조하는 유저별 설정.

    외부 유저 관리 쪽 소유이며, 원장은 signup_bonus_claimed 만 갱신한다.
    """

    user_code: str
    daily_limit: int = Field(default=100, gt=0)
    signup_bonus_claimed: bool = False


def fifo_sort_key(grant: CreditGrant) -> tuple:
    """만료 임박 순 정렬 키. 만료 없음은 맨 뒤, 동률이면 생성시각, id 순."""
    return (
        grant.expires_at is None,
        grant.expires_at or grant.created_at,
        grant.created_at,
        grant.id or "",
    )


def sort_fifo(grants: Iterable[CreditGrant]) -> list[CreditGrant]:
    return sorted(grants, key=fifo_sort_key)
