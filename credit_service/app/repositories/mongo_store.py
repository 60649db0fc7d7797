"""MongoDB 기반 원장 저장소.

유저 단위 배타성은 멀티 도큐먼트 트랜잭션으로 만든다. 트랜잭션 첫 쓰기로
users 도큐먼트의 credit_ledger_version 을 올리므로, 같은 유저에 대한 두 트랜잭션은
반드시 write conflict 가 나고 진 쪽은 with_transaction 에 의해 처음부터 다시 실행된다.
따라서 재실행된 쪽은 항상 이긴 쪽이 커밋한 뒤의 상태를 다시 읽는다.
"""

from __future__ import annotations

import logging
from typing import Callable, TypeVar

from bson.errors import InvalidId
from pydantic import ValidationError
from pymongo import MongoClient
from pymongo.client_session import ClientSession
from pymongo.database import Database
from pymongo.errors import PyMongoError
from pymongo.read_concern import ReadConcern
from pymongo.read_preferences import ReadPreference
from pymongo.write_concern import WriteConcern

from ..exceptions import CreditStoreError
from .daily_usage_repository import DailyUsageRepository
from .grant_repository import CreditGrantRepository
from .user_profile_repository import UserProfileRepository


logger = logging.getLogger(__name__)

T = TypeVar("T")

# 드라이버 오류와 users/credit_grants 의 깨진 도큐먼트는 모두 저장소 장애로 본다.
STORE_FAILURES = (PyMongoError, ValidationError, InvalidId)


class MongoCreditStore:
    def __init__(
        self,
        client: MongoClient,
        database: Database,
        *,
        default_daily_limit: int = 100,
    ) -> None:
        self._client = client
        self._db = database
        self._users_col = database["users"]

        self.grants = CreditGrantRepository(database)
        self.daily_usage = DailyUsageRepository(database)
        self.users = UserProfileRepository(
            database, default_daily_limit=default_daily_limit
        )

    def run_exclusive(self, user_code: str, fn: Callable[[ClientSession], T]) -> T:
        def _callback(session: ClientSession) -> T:
            # 유저 단위 잠금. 유저가 없으면 아무것도 잠그지 않지만 fn 이 USER_NOT_FOUND 로 끝난다.
            self._users_col.update_one(
                {"user_code": user_code},
                {"$inc": {"credit_ledger_version": 1}},
                session=session,
            )
            return fn(session)

        try:
            with self._client.start_session() as session:
                return session.with_transaction(
                    _callback,
                    read_concern=ReadConcern("snapshot"),
                    write_concern=WriteConcern("majority"),
                    read_preference=ReadPreference.PRIMARY,
                )
        except STORE_FAILURES as exc:
            logger.error(
                "credit ledger transaction failed for user_code=%s: %s", user_code, exc
            )
            raise CreditStoreError(str(exc)) from exc

    def run_snapshot(self, fn: Callable[[ClientSession], T]) -> T:
        try:
            with self._client.start_session(snapshot=True) as session:
                return fn(session)
        except STORE_FAILURES as exc:
            logger.error("credit ledger snapshot read failed: %s", exc)
            raise CreditStoreError(str(exc)) from exc
