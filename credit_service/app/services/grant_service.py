from __future__ import annotations

import logging
from datetime import datetime, timedelta

from common.types.datetime import ensure_utc

from ..clock import Clock
from ..exceptions import CreditStoreError
from ..models.credit import CreditGrant, CreditType
from ..models.results import CreditErrorCode, GrantResult, HistoryResult
from ..repositories.interfaces import CreditStoreInterface, StoreSession


logger = logging.getLogger(__name__)

MAX_HISTORY_PAGE_SIZE = 100
DEFAULT_HISTORY_PAGE_SIZE = 20


class GrantService:
    """크레딧 지급 (구매, 추천, 관리자 조정 등).

    - 지급에는 일일 한도나 소비 로직이 적용되지 않는다.
    - expires_at 이 없고 default_grant_expiry_days 가 설정되어 있으면 그만큼 뒤에 만료된다.
    """

    def __init__(
        self,
        store: CreditStoreInterface,
        clock: Clock,
        default_grant_expiry_days: int | None = None,
    ) -> None:
        self._store = store
        self._clock = clock
        self._default_expiry = (
            timedelta(days=default_grant_expiry_days)
            if default_grant_expiry_days
            else None
        )

    def add_credits(
        self,
        user_code: str,
        amount: int,
        type: CreditType,
        description: str = "",
        expires_at: datetime | None = None,
    ) -> GrantResult:
        if amount <= 0:
            return GrantResult.failure(CreditErrorCode.INVALID_AMOUNT, amount=amount)

        now = self._clock.now()
        if expires_at is not None:
            expires_at = ensure_utc(expires_at)
        elif self._default_expiry is not None:
            expires_at = now + self._default_expiry

        def _insert(session: StoreSession) -> GrantResult:
            if self._store.users.find_by_user_code(user_code, session=session) is None:
                return GrantResult.failure(CreditErrorCode.USER_NOT_FOUND)
            grant = self._store.grants.insert(
                CreditGrant(
                    user_code=user_code,
                    amount=amount,
                    remaining=amount,
                    type=type,
                    description=description or "",
                    created_at=now,
                    expires_at=expires_at,
                ),
                session=session,
            )
            return GrantResult(
                transaction_id=grant.id,
                amount=grant.amount,
                expires_at=grant.expires_at,
                grant=grant,
            )

        try:
            result = self._store.run_exclusive(user_code, _insert)
        except CreditStoreError:
            logger.exception(
                "failed to add credits", extra={"user_code": user_code, "amount": amount}
            )
            return GrantResult.failure(CreditErrorCode.DATABASE_ERROR)

        if result.success:
            logger.info(
                "granted %d %s credits (grant=%s)",
                amount,
                type,
                result.transaction_id,
                extra={"user_code": user_code, "amount": amount},
            )
        return result

    def get_history(
        self, user_code: str, page: int = 1, page_size: int = DEFAULT_HISTORY_PAGE_SIZE
    ) -> HistoryResult:
        """유저의 grant 이력을 최신순으로 페이지네이션하여 반환한다."""
        if page <= 0:
            page = 1
        if page_size <= 0 or page_size > MAX_HISTORY_PAGE_SIZE:
            page_size = DEFAULT_HISTORY_PAGE_SIZE

        try:
            items, total = self._store.run_snapshot(
                lambda session: self._store.grants.list_by_user(
                    user_code, page, page_size, session=session
                )
            )
        except CreditStoreError:
            logger.exception("failed to load credit history", extra={"user_code": user_code})
            return HistoryResult.failure(
                CreditErrorCode.DATABASE_ERROR, page=page, page_size=page_size
            )
        return HistoryResult(items=items, total=total, page=page, page_size=page_size)
