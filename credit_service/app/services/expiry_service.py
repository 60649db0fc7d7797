"""만료 크레딧 회수.

만료됐지만 남아 있는 잔량을 0 으로 만들고 consumed_at 을 찍는다.
grant 하나하나의 갱신은 소비와 같은 유저 단위 배타 구간 안에서 일어나므로
진행 중인 consume 과 같은 grant 를 두고 경합하지 않는다.
"""

from __future__ import annotations

import logging
from datetime import datetime

from ..clock import Clock
from ..exceptions import CreditStoreError
from ..models.results import CleanupResult, CreditErrorCode, ExpiredCreditsResult
from ..repositories.interfaces import CreditStoreInterface, StoreSession


logger = logging.getLogger(__name__)


class ExpiryService:
    def __init__(self, store: CreditStoreInterface, clock: Clock) -> None:
        self._store = store
        self._clock = clock

    def cleanup_expired_credits(self) -> CleanupResult:
        now = self._clock.now()
        try:
            backlog = self._store.run_snapshot(
                lambda session: self._store.grants.list_expired(now, session=session)
            )
        except CreditStoreError:
            logger.exception("failed to list expired credits")
            return CleanupResult.failure(CreditErrorCode.DATABASE_ERROR)

        cleaned_count = 0
        freed_space = 0
        for user_code in sorted({grant.user_code for grant in backlog}):
            try:
                count, freed = self._store.run_exclusive(
                    user_code,
                    lambda session, uc=user_code: self._reap_user(session, uc, now),
                )
            except CreditStoreError:
                logger.exception(
                    "expired credit cleanup aborted",
                    extra={
                        "user_code": user_code,
                        "cleaned_count": cleaned_count,
                        "freed_space": freed_space,
                    },
                )
                return CleanupResult.failure(
                    CreditErrorCode.DATABASE_ERROR,
                    cleaned_count=cleaned_count,
                    freed_space=freed_space,
                )
            cleaned_count += count
            freed_space += freed

        logger.info(
            "expired credit cleanup finished: %d grant(s), %d credits reclaimed",
            cleaned_count,
            freed_space,
            extra={"cleaned_count": cleaned_count, "freed_space": freed_space},
        )
        return CleanupResult(cleaned_count=cleaned_count, freed_space=freed_space)

    def get_expired_credits(self) -> ExpiredCreditsResult:
        now = self._clock.now()
        try:
            grants = self._store.run_snapshot(
                lambda session: self._store.grants.list_expired(now, session=session)
            )
        except CreditStoreError:
            logger.exception("failed to list expired credits")
            return ExpiredCreditsResult.failure(CreditErrorCode.DATABASE_ERROR)
        return ExpiredCreditsResult(grants=grants)

    def _reap_user(
        self, session: StoreSession, user_code: str, now: datetime
    ) -> tuple[int, int]:
        # 스냅샷 이후 소비된 grant 는 빠지도록 잠금 안에서 다시 읽는다.
        expired = self._store.grants.list_expired(
            now, user_code=user_code, session=session
        )
        freed = 0
        for grant in expired:
            self._store.grants.debit(grant, grant.remaining, now, session=session)
            freed += grant.remaining
        return len(expired), freed
