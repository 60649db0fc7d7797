"""크레딧 소비 엔진.

만료 임박 순(FIFO) 차감과 타임존 기준 일일 한도 검사를 유저 단위 배타 구간 안에서 수행한다.
한도/잔액 검사와 차감 커밋은 같은 스냅샷에서 일어나며, 실패한 검사는 아무것도 바꾸지 않는다.
"""

from __future__ import annotations

import logging
from datetime import datetime

from ..clock import Calendar, Clock
from ..exceptions import CreditStoreError
from ..models.credit import CreditGrant, sort_fifo
from ..models.results import (
    ConsumedGrant,
    ConsumeResult,
    CreditErrorCode,
    DailyLimitResult,
)
from ..repositories.interfaces import CreditStoreInterface, StoreSession


logger = logging.getLogger(__name__)


class ConsumptionService:
    def __init__(
        self,
        store: CreditStoreInterface,
        clock: Clock,
        calendar: Calendar,
    ) -> None:
        self._store = store
        self._clock = clock
        self._calendar = calendar

    def consume(self, user_code: str, amount: int) -> ConsumeResult:
        """크레딧을 FIFO 로 차감하고 오늘 사용량을 올린다."""
        if amount <= 0:
            return ConsumeResult.failure(
                CreditErrorCode.INVALID_AMOUNT, requested=amount
            )

        try:
            result = self._store.run_exclusive(
                user_code,
                lambda session: self._consume_locked(session, user_code, amount),
            )
        except CreditStoreError:
            logger.exception(
                "credit consumption failed",
                extra={"user_code": user_code, "amount": amount},
            )
            return ConsumeResult.failure(CreditErrorCode.DATABASE_ERROR)

        if result.success:
            logger.info(
                "consumed %d credits from %d grant(s) (daily total=%s)",
                amount,
                len(result.transactions),
                result.new_daily_total,
                extra={"user_code": user_code, "amount": amount},
            )
        else:
            logger.info(
                "credit consumption rejected: %s",
                result.error,
                extra={
                    "user_code": user_code,
                    "amount": amount,
                    "error_code": str(result.error),
                },
            )
        return result

    def deduct(self, user_code: str, amount: int) -> ConsumeResult:
        """관리자 차감. 일일 한도를 보지 않고 일일 사용량에도 반영하지 않는 FIFO 차감."""
        if amount <= 0:
            return ConsumeResult.failure(
                CreditErrorCode.INVALID_AMOUNT, requested=amount
            )

        def _deduct_locked(session: StoreSession) -> ConsumeResult:
            if self._store.users.find_by_user_code(user_code, session=session) is None:
                return ConsumeResult.failure(CreditErrorCode.USER_NOT_FOUND)
            now = self._clock.now()
            candidates = self._spendable(session, user_code, now)
            available = sum(grant.remaining for grant in candidates)
            if available < amount:
                return ConsumeResult.failure(
                    CreditErrorCode.INSUFFICIENT_CREDITS,
                    available=available,
                    requested=amount,
                )
            transactions = self._debit_fifo(session, candidates, amount, now)
            return ConsumeResult(consumed=amount, transactions=transactions)

        try:
            return self._store.run_exclusive(user_code, _deduct_locked)
        except CreditStoreError:
            logger.exception(
                "admin credit deduction failed",
                extra={"user_code": user_code, "amount": amount},
            )
            return ConsumeResult.failure(CreditErrorCode.DATABASE_ERROR)

    def check_daily_limit(self, user_code: str, amount: int) -> DailyLimitResult:
        """오늘 amount 만큼 더 쓸 수 있는지 락 없이 조회한다."""

        def _read(session: StoreSession) -> DailyLimitResult:
            profile = self._store.users.find_by_user_code(user_code, session=session)
            if profile is None:
                return DailyLimitResult(can_consume=False)

            today = self._calendar.day_of(self._clock.now())
            record = self._store.daily_usage.get(user_code, today, session=session)
            daily_used = record.credits_consumed if record else 0
            return DailyLimitResult(
                can_consume=daily_used + amount <= profile.daily_limit,
                daily_used=daily_used,
                daily_limit=profile.daily_limit,
                daily_remaining=profile.daily_limit - daily_used,
                usage_date=today,
            )

        try:
            return self._store.run_snapshot(_read)
        except CreditStoreError:
            logger.exception("daily limit check failed", extra={"user_code": user_code})
            return DailyLimitResult.failure(CreditErrorCode.DATABASE_ERROR)

    def _consume_locked(
        self, session: StoreSession, user_code: str, amount: int
    ) -> ConsumeResult:
        profile = self._store.users.find_by_user_code(user_code, session=session)
        if profile is None:
            return ConsumeResult.failure(CreditErrorCode.USER_NOT_FOUND)

        now = self._clock.now()
        today = self._calendar.day_of(now)
        record = self._store.daily_usage.get(user_code, today, session=session)
        daily_used = record.credits_consumed if record else 0
        daily_remaining = profile.daily_limit - daily_used
        if amount > daily_remaining:
            return ConsumeResult.failure(
                CreditErrorCode.DAILY_LIMIT_EXCEEDED,
                daily_used=daily_used,
                daily_limit=profile.daily_limit,
                daily_remaining=daily_remaining,
            )

        candidates = self._spendable(session, user_code, now)
        available = sum(grant.remaining for grant in candidates)
        if available < amount:
            return ConsumeResult.failure(
                CreditErrorCode.INSUFFICIENT_CREDITS,
                available=available,
                requested=amount,
            )

        transactions = self._debit_fifo(session, candidates, amount, now)
        self._store.daily_usage.increment(user_code, today, amount, session=session)

        return ConsumeResult(
            consumed=amount,
            transactions=transactions,
            new_daily_total=daily_used + amount,
        )

    def _spendable(
        self, session: StoreSession, user_code: str, now: datetime
    ) -> list[CreditGrant]:
        return sort_fifo(
            self._store.grants.list_spendable(user_code, now, session=session)
        )

    def _debit_fifo(
        self,
        session: StoreSession,
        candidates: list[CreditGrant],
        amount: int,
        now: datetime,
    ) -> list[ConsumedGrant]:
        transactions: list[ConsumedGrant] = []
        left = amount
        for grant in candidates:
            if left == 0:
                break
            used = min(grant.remaining, left)
            self._store.grants.debit(grant, used, now, session=session)
            transactions.append(
                ConsumedGrant(transaction_id=grant.id or "", amount_used=used)
            )
            left -= used
        return transactions
