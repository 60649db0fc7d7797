from __future__ import annotations

from datetime import date, datetime, timezone

from pymongo import ReturnDocument
from pymongo.client_session import ClientSession
from pymongo.database import Database

from ..models.credit import DailyUsageRecord
from .documents.credit_document import DailyUsageDocument
from .interfaces import DailyUsageRepositoryInterface


class DailyUsageRepository(DailyUsageRepositoryInterface):
    """daily_usage 컬렉션에 대한 MongoDB 접근 레이어.

    usage_date 는 설정 타임존 기준 달력 날짜이며 'YYYY-MM-DD' 문자열로 저장한다.
    """

    def __init__(self, database: Database) -> None:
        self._db = database
        self._col = database["daily_usage"]

    def get(
        self,
        user_code: str,
        usage_date: date,
        *,
        session: ClientSession | None = None,
    ) -> DailyUsageRecord | None:
        doc = self._col.find_one(
            {"user_code": user_code, "usage_date": usage_date.isoformat()},
            session=session,
        )
        if not doc:
            return None
        return DailyUsageDocument.model_validate(doc).to_domain()

    def increment(
        self,
        user_code: str,
        usage_date: date,
        amount: int,
        *,
        session: ClientSession | None = None,
    ) -> DailyUsageRecord:
        now = datetime.now(timezone.utc)
        # 그날 첫 소비라면 upsert 로 레코드를 만든다. unique 인덱스가 중복 생성을 막는다.
        doc = self._col.find_one_and_update(
            {"user_code": user_code, "usage_date": usage_date.isoformat()},
            {
                "$inc": {"credits_consumed": amount},
                "$set": {"updated_at": now},
                "$setOnInsert": {"created_at": now},
            },
            upsert=True,
            return_document=ReturnDocument.AFTER,
            session=session,
        )
        return DailyUsageDocument.model_validate(doc).to_domain()
