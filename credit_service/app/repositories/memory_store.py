"""단일 인스턴스용 인메모리 원장 저장소.

- user_code 별 threading.Lock 으로 run_exclusive 를 직렬화한다. 잠금은 잡고 있거나
  기다리는 스레드가 없어지면 바로 정리되므로 유저 수만큼 쌓이지 않는다.
- run_exclusive 안의 쓰기는 InMemorySession 에 쌓아 두었다가 fn 이 끝나면
  데이터 락을 잡고 한 번에 반영한다. 예외가 나면 쌓인 쓰기를 버린다.
- 읽기는 데이터 락 아래에서 수행하므로 커밋 도중의 상태를 보지 않는다.
- auto_register_users 가 켜져 있으면 처음 보는 user_code 에 기본 프로필을 만든다.
  외부 유저 관리 없이 단독으로 띄울 때 쓴다.
"""

from __future__ import annotations

import threading
import uuid
from contextlib import contextmanager
from datetime import date, datetime
from typing import Callable, Iterator, TypeVar

from ..exceptions import ConcurrentGrantUpdateError
from ..models.credit import CreditGrant, DailyUsageRecord, UserCreditProfile
from .interfaces import StoreSession


T = TypeVar("T")


class InMemorySession:
    """run_exclusive 하나에 대응하는 스테이징 영역."""

    def __init__(self, user_code: str) -> None:
        self.user_code = user_code
        self.grants: dict[str, CreditGrant] = {}
        self.daily_usage: dict[tuple[str, date], DailyUsageRecord] = {}
        self.profiles: dict[str, UserCreditProfile] = {}


class _UserLock:
    __slots__ = ("lock", "holders")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.holders = 0  # 잡고 있거나 기다리는 스레드 수


class InMemoryCreditStore:
    def __init__(
        self, default_daily_limit: int = 100, *, auto_register_users: bool = False
    ) -> None:
        self._default_daily_limit = default_daily_limit
        self.auto_register_users = auto_register_users
        self._data_lock = threading.RLock()
        self._user_locks: dict[str, _UserLock] = {}
        self._user_locks_guard = threading.Lock()

        self._grants: dict[str, CreditGrant] = {}
        self._daily_usage: dict[tuple[str, date], DailyUsageRecord] = {}
        self._profiles: dict[str, UserCreditProfile] = {}

        self.grants = InMemoryCreditGrantRepository(self)
        self.daily_usage = InMemoryDailyUsageRepository(self)
        self.users = InMemoryUserProfileRepository(self)

    # 유저 프로필은 외부 유저 관리 쪽 소유이므로 세션 밖에서 직접 등록한다.
    def add_user(
        self,
        user_code: str,
        *,
        daily_limit: int | None = None,
        signup_bonus_claimed: bool = False,
    ) -> UserCreditProfile:
        profile = UserCreditProfile(
            user_code=user_code,
            daily_limit=daily_limit or self._default_daily_limit,
            signup_bonus_claimed=signup_bonus_claimed,
        )
        with self._data_lock:
            self._profiles[user_code] = profile
        return profile.model_copy()

    def run_exclusive(self, user_code: str, fn: Callable[[StoreSession], T]) -> T:
        with self._locked(user_code):
            session = InMemorySession(user_code)
            result = fn(session)
            self._commit(session)
            return result

    def run_snapshot(self, fn: Callable[[StoreSession], T]) -> T:
        with self._data_lock:
            return fn(None)

    @contextmanager
    def _locked(self, user_code: str) -> Iterator[None]:
        with self._user_locks_guard:
            entry = self._user_locks.get(user_code)
            if entry is None:
                entry = _UserLock()
                self._user_locks[user_code] = entry
            entry.holders += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._user_locks_guard:
                entry.holders -= 1
                if entry.holders == 0:
                    del self._user_locks[user_code]

    def _commit(self, session: InMemorySession) -> None:
        with self._data_lock:
            self._grants.update(session.grants)
            self._daily_usage.update(session.daily_usage)
            self._profiles.update(session.profiles)


class InMemoryCreditGrantRepository:
    def __init__(self, store: InMemoryCreditStore) -> None:
        self._store = store

    def _view(self, session: InMemorySession | None) -> dict[str, CreditGrant]:
        with self._store._data_lock:
            merged = dict(self._store._grants)
        if session is not None:
            merged.update(session.grants)
        return merged

    def _write(self, grant: CreditGrant, session: InMemorySession | None) -> None:
        assert grant.id is not None
        if session is not None:
            session.grants[grant.id] = grant
            return
        with self._store._data_lock:
            self._store._grants[grant.id] = grant

    def insert(
        self, grant: CreditGrant, *, session: InMemorySession | None = None
    ) -> CreditGrant:
        stored = grant.model_copy(update={"id": uuid.uuid4().hex})
        self._write(stored, session)
        return stored.model_copy()

    def list_spendable(
        self, user_code: str, now: datetime, *, session: InMemorySession | None = None
    ) -> list[CreditGrant]:
        return [
            grant.model_copy()
            for grant in self._view(session).values()
            if grant.user_code == user_code and grant.is_spendable(now)
        ]

    def list_expired(
        self,
        now: datetime,
        *,
        user_code: str | None = None,
        session: InMemorySession | None = None,
    ) -> list[CreditGrant]:
        return [
            grant.model_copy()
            for grant in self._view(session).values()
            if grant.remaining > 0
            and grant.is_expired(now)
            and (user_code is None or grant.user_code == user_code)
        ]

    def debit(
        self,
        grant: CreditGrant,
        amount: int,
        now: datetime,
        *,
        session: InMemorySession | None = None,
    ) -> CreditGrant:
        if amount <= 0 or amount > grant.remaining:
            raise ValueError(
                f"invalid debit amount {amount} for remaining {grant.remaining}"
            )
        # 세션 밖 호출도 읽기-비교-쓰기가 한 덩어리가 되도록 데이터 락을 잡는다.
        with self._store._data_lock:
            current = self._view(session).get(grant.id or "")
            if current is None or current.remaining != grant.remaining:
                raise ConcurrentGrantUpdateError(grant.id, grant.remaining)

            remaining = current.remaining - amount
            updated = current.model_copy(
                update={
                    "remaining": remaining,
                    "consumed_at": now if remaining == 0 else current.consumed_at,
                }
            )
            self._write(updated, session)
        return updated.model_copy()

    def list_by_user(
        self,
        user_code: str,
        page: int,
        page_size: int,
        *,
        session: InMemorySession | None = None,
    ) -> tuple[list[CreditGrant], int]:
        grants = [
            grant
            for grant in self._view(session).values()
            if grant.user_code == user_code
        ]
        grants.sort(key=lambda g: (g.created_at, g.id or ""), reverse=True)
        skip = (page - 1) * page_size
        return [g.model_copy() for g in grants[skip : skip + page_size]], len(grants)


class InMemoryDailyUsageRepository:
    def __init__(self, store: InMemoryCreditStore) -> None:
        self._store = store

    def get(
        self,
        user_code: str,
        usage_date: date,
        *,
        session: InMemorySession | None = None,
    ) -> DailyUsageRecord | None:
        key = (user_code, usage_date)
        if session is not None and key in session.daily_usage:
            return session.daily_usage[key].model_copy()
        with self._store._data_lock:
            record = self._store._daily_usage.get(key)
        return record.model_copy() if record else None

    def increment(
        self,
        user_code: str,
        usage_date: date,
        amount: int,
        *,
        session: InMemorySession | None = None,
    ) -> DailyUsageRecord:
        with self._store._data_lock:
            current = self.get(user_code, usage_date, session=session)
            consumed = (current.credits_consumed if current else 0) + amount
            record = DailyUsageRecord(
                user_code=user_code,
                usage_date=usage_date,
                credits_consumed=consumed,
            )
            key = (user_code, usage_date)
            if session is not None:
                session.daily_usage[key] = record
            else:
                self._store._daily_usage[key] = record
        return record.model_copy()


class InMemoryUserProfileRepository:
    def __init__(self, store: InMemoryCreditStore) -> None:
        self._store = store

    def find_by_user_code(
        self, user_code: str, *, session: InMemorySession | None = None
    ) -> UserCreditProfile | None:
        if session is not None and user_code in session.profiles:
            return session.profiles[user_code].model_copy()
        with self._store._data_lock:
            profile = self._store._profiles.get(user_code)
            if profile is None and self._store.auto_register_users:
                return self._store.add_user(user_code)
        return profile.model_copy() if profile else None

    def mark_signup_bonus_claimed(
        self, user_code: str, *, session: InMemorySession | None = None
    ) -> bool:
        with self._store._data_lock:
            profile = self.find_by_user_code(user_code, session=session)
            if profile is None or profile.signup_bonus_claimed:
                return False
            updated = profile.model_copy(update={"signup_bonus_claimed": True})
            if session is not None:
                session.profiles[user_code] = updated
            else:
                self._store._profiles[user_code] = updated
        return True
