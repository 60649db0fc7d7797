from __future__ import annotations

from datetime import date, datetime
from typing import Any, Callable, Protocol, TypeVar

from ..models.credit import CreditGrant, DailyUsageRecord, UserCreditProfile


T = TypeVar("T")

# 구현체별 세션 핸들 (Mongo: ClientSession, 메모리: InMemorySession).
# None 이면 세션 밖에서 커밋된 데이터를 바로 읽고 쓴다.
StoreSession = Any


class CreditGrantRepositoryInterface(Protocol):
    """CreditGrant 저장소가 따라야 할 계약.

    - grant 는 삭제하지 않는다. 변경은 debit(잔량 감소)으로만 일어난다.
    """

    def insert(
        self, grant: CreditGrant, *, session: StoreSession = None
    ) -> CreditGrant:  # pragma: no cover - Protocol
        """새 grant 를 저장하고 id 가 채워진 grant 를 반환한다."""
        ...

    def list_spendable(
        self, user_code: str, now: datetime, *, session: StoreSession = None
    ) -> list[CreditGrant]:  # pragma: no cover - Protocol
        """remaining > 0 이고 만료되지 않은(expires_at 없음 또는 > now) grant 목록."""
        ...

    def list_expired(
        self,
        now: datetime,
        *,
        user_code: str | None = None,
        session: StoreSession = None,
    ) -> list[CreditGrant]:  # pragma: no cover - Protocol
        """expires_at <= now 이면서 remaining > 0 인 grant 목록."""
        ...

    def debit(
        self,
        grant: CreditGrant,
        amount: int,
        now: datetime,
        *,
        session: StoreSession = None,
    ) -> CreditGrant:  # pragma: no cover - Protocol
        """grant.remaining 을 amount 만큼 줄인다.

        저장된 remaining 이 grant.remaining 과 다르면 ConcurrentGrantUpdateError.
        0 이 되면 같은 쓰기에서 consumed_at=now 를 기록한다.
        """
        ...

    def list_by_user(
        self,
        user_code: str,
        page: int,
        page_size: int,
        *,
        session: StoreSession = None,
    ) -> tuple[list[CreditGrant], int]:  # pragma: no cover - Protocol
        ...


class DailyUsageRepositoryInterface(Protocol):
    """(user_code, usage_date) 당 하나의 누적 소비 레코드."""

    def get(
        self, user_code: str, usage_date: date, *, session: StoreSession = None
    ) -> DailyUsageRecord | None:  # pragma: no cover - Protocol
        ...

    def increment(
        self,
        user_code: str,
        usage_date: date,
        amount: int,
        *,
        session: StoreSession = None,
    ) -> DailyUsageRecord:  # pragma: no cover - Protocol
        """레코드가 없으면 만들고 credits_consumed 를 amount 만큼 올린다."""
        ...


class UserProfileRepositoryInterface(Protocol):
    """외부 유저 관리 쪽의 프로필을 읽는 read-through 계약."""

    def find_by_user_code(
        self, user_code: str, *, session: StoreSession = None
    ) -> UserCreditProfile | None:  # pragma: no cover - Protocol
        ...

    def mark_signup_bonus_claimed(
        self, user_code: str, *, session: StoreSession = None
    ) -> bool:  # pragma: no cover - Protocol
        """signup_bonus_claimed 를 false -> true 로 바꾼다. 이미 true 면 False."""
        ...


class CreditStoreInterface(Protocol):
    """원장 저장소 묶음과 트랜잭션 경계.

    - run_exclusive: 같은 user_code 에 대한 쓰기 작업끼리 서로 배타적으로 실행하고,
      fn 안의 쓰기를 한꺼번에 커밋한다. fn 이 예외를 던지면 아무것도 커밋하지 않는다.
    - run_snapshot: 락 없이 일관된 스냅샷에서 읽기 전용 fn 을 실행한다.
    - 저장소 오류는 CreditStoreError 로 변환해서 던진다.
    """

    grants: CreditGrantRepositoryInterface
    daily_usage: DailyUsageRepositoryInterface
    users: UserProfileRepositoryInterface

    def run_exclusive(
        self, user_code: str, fn: Callable[[StoreSession], T]
    ) -> T:  # pragma: no cover - Protocol
        ...

    def run_snapshot(
        self, fn: Callable[[StoreSession], T]
    ) -> T:  # pragma: no cover - Protocol
        ...
