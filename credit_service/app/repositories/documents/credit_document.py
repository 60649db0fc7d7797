"""크레딧 원장 MongoDB 도큐먼트.

grant 는 credit_grants 컬렉션에, 일일 사용량은 daily_usage 컬렉션에 저장한다.
"""

from __future__ import annotations

from common.mongo.types import (
    BaseDocument,
    MongoDate,
    MongoDateTime,
    from_object_id,
    to_object_id,
)

from ...models.credit import CreditGrant, CreditType, DailyUsageRecord


class CreditGrantDocument(BaseDocument):
    """MongoDB credit_grants 컬렉션 도큐먼트 모델."""

    user_code: str
    amount: int
    remaining: int
    type: CreditType
    description: str = ""
    expires_at: MongoDateTime | None = None
    consumed_at: MongoDateTime | None = None

    @classmethod
    def from_domain(cls, grant: CreditGrant) -> "CreditGrantDocument":
        return cls(
            _id=to_object_id(grant.id) if grant.id else None,
            user_code=grant.user_code,
            amount=grant.amount,
            remaining=grant.remaining,
            type=grant.type,
            description=grant.description,
            expires_at=grant.expires_at,
            consumed_at=grant.consumed_at,
            created_at=grant.created_at,
            updated_at=grant.created_at,
        )

    def to_mongo_record(self) -> dict:
        record = super().to_mongo_record()
        record["type"] = self.type.value
        return record

    def to_domain(self) -> CreditGrant:
        return CreditGrant(
            id=from_object_id(self.id),
            user_code=self.user_code,
            amount=self.amount,
            remaining=self.remaining,
            type=self.type,
            description=self.description,
            created_at=self.created_at,
            expires_at=self.expires_at,
            consumed_at=self.consumed_at,
        )


class DailyUsageDocument(BaseDocument):
    """MongoDB daily_usage 컬렉션 도큐먼트 모델."""

    user_code: str
    usage_date: MongoDate
    credits_consumed: int = 0

    def to_domain(self) -> DailyUsageRecord:
        return DailyUsageRecord(
            user_code=self.user_code,
            usage_date=self.usage_date,
            credits_consumed=self.credits_consumed,
        )
