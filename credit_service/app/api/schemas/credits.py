from __future__ import annotations

from datetime import date
from typing import Self

from pydantic import BaseModel, Field

from common.types.datetime import UtcDateTime

from ...models.credit import CreditGrant, CreditType
from ...models.results import BalanceResult, ConsumedGrant


class ConsumeRequest(BaseModel):
    """크레딧 소비 요청."""

    amount: int


class ConsumeResponse(BaseModel):
    consumed: int
    transactions: list[ConsumedGrant]
    new_daily_total: int


class DailyLimitResponse(BaseModel):
    can_consume: bool
    daily_used: int
    daily_limit: int
    daily_remaining: int
    usage_date: date | None = None


class ExpiringCreditResponse(BaseModel):
    grant_id: str | None
    amount: int
    expires_at: UtcDateTime


class BalanceResponse(BaseModel):
    """유효 잔액과 만료 임박 grant 목록."""

    user_code: str
    total_valid: int
    expiring_credits: list[ExpiringCreditResponse]

    @classmethod
    def from_result(cls, user_code: str, result: BalanceResult) -> Self:
        return cls(
            user_code=user_code,
            total_valid=result.total_valid,
            expiring_credits=[
                ExpiringCreditResponse(
                    grant_id=item.grant_id,
                    amount=item.amount,
                    expires_at=item.expires_at,
                )
                for item in result.expiring_credits
            ],
        )


class GrantCreditRequest(BaseModel):
    """구매/추천/기타 사유의 크레딧 지급 요청. expires_at 이 없으면 기본 만료 일수를 따른다."""

    amount: int
    type: CreditType = CreditType.PURCHASE
    description: str = ""
    expires_at: UtcDateTime | None = None


class GrantCreditResponse(BaseModel):
    user_code: str
    transaction_id: str
    amount: int
    expires_at: UtcDateTime | None = None


class SignupBonusResponse(BaseModel):
    amount: int
    bonus_claimed: bool
    transaction_id: str | None = None
    expires_at: UtcDateTime | None = None


class SignupBonusConfigResponse(BaseModel):
    bonus_amount: int
    expiry_days: int | None


class AdjustCreditRequest(BaseModel):
    """관리자 잔액 조정 요청. delta 가 음수면 FIFO 차감."""

    delta: int
    description: str = ""
    expires_at: UtcDateTime | None = None


class AdjustCreditResponse(BaseModel):
    user_code: str
    delta: int
    transaction_id: str | None = None
    expires_at: UtcDateTime | None = None
    transactions: list[ConsumedGrant] = Field(default_factory=list)


class CreditGrantResponse(BaseModel):
    """grant 단건 응답 (이력/만료 목록 공용)."""

    id: str | None
    user_code: str
    amount: int
    remaining: int
    type: CreditType
    description: str
    created_at: UtcDateTime
    expires_at: UtcDateTime | None = None
    consumed_at: UtcDateTime | None = None

    @classmethod
    def from_domain(cls, grant: CreditGrant) -> Self:
        return cls(**grant.model_dump())


class ExpiredCreditsResponse(BaseModel):
    total: int
    items: list[CreditGrantResponse]


class CleanupResponse(BaseModel):
    cleaned_count: int
    freed_space: int
