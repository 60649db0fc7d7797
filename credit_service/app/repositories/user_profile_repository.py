from __future__ import annotations

from datetime import datetime, timezone

from pymongo.client_session import ClientSession
from pymongo.database import Database

from ..models.credit import UserCreditProfile
from .interfaces import UserProfileRepositoryInterface


class UserProfileRepository(UserProfileRepositoryInterface):
    """users 컬렉션에서 크레딧 관련 필드만 읽는 접근 레이어.

    유저 도큐먼트는 유저 서비스 소유이다. 원장은 signup_bonus_claimed 와
    트랜잭션 잠금용 credit_ledger_version 외에는 쓰지 않는다.
    """

    def __init__(self, database: Database, default_daily_limit: int = 100) -> None:
        self._db = database
        self._col = database["users"]
        self._default_daily_limit = default_daily_limit

    def find_by_user_code(
        self, user_code: str, *, session: ClientSession | None = None
    ) -> UserCreditProfile | None:
        doc = self._col.find_one(
            {"user_code": user_code},
            projection={"user_code": 1, "daily_limit": 1, "signup_bonus_claimed": 1},
            session=session,
        )
        if not doc:
            return None
        return UserCreditProfile(
            user_code=doc["user_code"],
            daily_limit=doc.get("daily_limit") or self._default_daily_limit,
            signup_bonus_claimed=bool(doc.get("signup_bonus_claimed", False)),
        )

    def mark_signup_bonus_claimed(
        self, user_code: str, *, session: ClientSession | None = None
    ) -> bool:
        result = self._col.update_one(
            {"user_code": user_code, "signup_bonus_claimed": {"$ne": True}},
            {
                "$set": {
                    "signup_bonus_claimed": True,
                    "updated_at": datetime.now(timezone.utc),
                }
            },
            session=session,
        )
        return result.modified_count == 1
