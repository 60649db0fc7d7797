"""credit_grants 컬렉션 레포지토리 (1:N 모델).

세션이 주어지면 해당 트랜잭션 안에서 읽고 쓴다. FIFO 정렬은 서비스가 최종적으로 보장하지만,
조회도 만료 임박 순으로 가져온다.
"""

from __future__ import annotations

from datetime import datetime

from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.client_session import ClientSession
from pymongo.database import Database

from common.mongo.types import to_object_id

from ..exceptions import ConcurrentGrantUpdateError
from ..models.credit import CreditGrant
from .documents.credit_document import CreditGrantDocument
from .interfaces import CreditGrantRepositoryInterface


class CreditGrantRepository(CreditGrantRepositoryInterface):
    """credit_grants 컬렉션에 대한 MongoDB 접근 레이어."""

    def __init__(self, database: Database) -> None:
        self._db = database
        self._col = database["credit_grants"]

    @staticmethod
    def _from_document(doc: dict) -> CreditGrant:
        return CreditGrantDocument.model_validate(doc).to_domain()

    def insert(
        self, grant: CreditGrant, *, session: ClientSession | None = None
    ) -> CreditGrant:
        payload = CreditGrantDocument.from_domain(grant).to_mongo_record()
        result = self._col.insert_one(payload, session=session)
        payload["_id"] = result.inserted_id
        return self._from_document(payload)

    def list_spendable(
        self, user_code: str, now: datetime, *, session: ClientSession | None = None
    ) -> list[CreditGrant]:
        cursor = self._col.find(
            {
                "user_code": user_code,
                "remaining": {"$gt": 0},
                # expires_at: None 은 필드 없음/ null 을 모두 매칭한다.
                "$or": [{"expires_at": None}, {"expires_at": {"$gt": now}}],
            },
            sort=[("expires_at", ASCENDING), ("created_at", ASCENDING), ("_id", ASCENDING)],
            session=session,
        )
        return [self._from_document(doc) for doc in cursor]

    def list_expired(
        self,
        now: datetime,
        *,
        user_code: str | None = None,
        session: ClientSession | None = None,
    ) -> list[CreditGrant]:
        query: dict = {"expires_at": {"$lte": now}, "remaining": {"$gt": 0}}
        if user_code is not None:
            query["user_code"] = user_code
        cursor = self._col.find(
            query,
            sort=[("user_code", ASCENDING), ("expires_at", ASCENDING)],
            session=session,
        )
        return [self._from_document(doc) for doc in cursor]

    def debit(
        self,
        grant: CreditGrant,
        amount: int,
        now: datetime,
        *,
        session: ClientSession | None = None,
    ) -> CreditGrant:
        if amount <= 0 or amount > grant.remaining:
            raise ValueError(
                f"invalid debit amount {amount} for remaining {grant.remaining}"
            )

        remaining = grant.remaining - amount
        update: dict = {"remaining": remaining, "updated_at": now}
        if remaining == 0:
            update["consumed_at"] = now

        # 읽었던 remaining 과 같을 때만 갱신한다 (낙관적 검증).
        doc = self._col.find_one_and_update(
            {"_id": to_object_id(grant.id), "remaining": grant.remaining},
            {"$set": update},
            return_document=ReturnDocument.AFTER,
            session=session,
        )
        if doc is None:
            raise ConcurrentGrantUpdateError(grant.id, grant.remaining)
        return self._from_document(doc)

    def list_by_user(
        self,
        user_code: str,
        page: int,
        page_size: int,
        *,
        session: ClientSession | None = None,
    ) -> tuple[list[CreditGrant], int]:
        skip = (page - 1) * page_size
        total = self._col.count_documents({"user_code": user_code}, session=session)
        cursor = self._col.find(
            {"user_code": user_code},
            sort=[("created_at", DESCENDING), ("_id", DESCENDING)],
            skip=skip,
            limit=page_size,
            session=session,
        )
        return [self._from_document(doc) for doc in cursor], total
