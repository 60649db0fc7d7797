from __future__ import annotations

import logging
from datetime import timedelta

from ..clock import Clock
from ..exceptions import CreditStoreError
from ..models.credit import sort_fifo
from ..models.results import BalanceResult, CreditErrorCode, ExpiringCredit
from ..repositories.interfaces import CreditStoreInterface


logger = logging.getLogger(__name__)


class BalanceService:
    """유효 잔액 집계 (읽기 전용).

    만료되었거나 다 쓴 grant 는 consumed_at 과 관계없이 합계에서 빠진다.
    """

    def __init__(
        self,
        store: CreditStoreInterface,
        clock: Clock,
        expiring_soon_days: int = 7,
    ) -> None:
        self._store = store
        self._clock = clock
        self._expiring_window = timedelta(days=expiring_soon_days)

    def get_valid_credits(self, user_code: str) -> BalanceResult:
        now = self._clock.now()
        try:
            grants = self._store.run_snapshot(
                lambda session: self._store.grants.list_spendable(
                    user_code, now, session=session
                )
            )
        except CreditStoreError:
            logger.exception("balance lookup failed", extra={"user_code": user_code})
            return BalanceResult.failure(CreditErrorCode.DATABASE_ERROR)

        horizon = now + self._expiring_window
        return BalanceResult(
            total_valid=sum(grant.remaining for grant in grants),
            expiring_credits=[
                ExpiringCredit(
                    grant_id=grant.id,
                    amount=grant.remaining,
                    expires_at=grant.expires_at,
                )
                for grant in sort_fifo(grants)
                if grant.expires_at is not None and grant.expires_at <= horizon
            ],
        )
