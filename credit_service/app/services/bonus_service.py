"""가입 보너스 지급.

보너스 grant 생성과 signup_bonus_claimed 플래그 변경은 같은 트랜잭션으로 커밋된다.
둘 중 하나만 남는 상태(플래그만 true, 혹은 grant 만 존재)는 만들어지지 않는다.
"""

from __future__ import annotations

import logging
from datetime import timedelta

from ..clock import Clock
from ..exceptions import BonusAlreadyClaimedError, CreditStoreError
from ..models.credit import CreditGrant, CreditType
from ..models.results import BonusResult, CreditErrorCode, SignupBonusConfig
from ..repositories.interfaces import CreditStoreInterface, StoreSession


logger = logging.getLogger(__name__)

SIGNUP_BONUS_DESCRIPTION = "New user signup bonus"


class BonusService:
    def __init__(
        self,
        store: CreditStoreInterface,
        clock: Clock,
        bonus_amount: int = 100,
        bonus_expiry_days: int | None = None,
    ) -> None:
        self._store = store
        self._clock = clock
        self._bonus_amount = bonus_amount
        self._bonus_expiry_days = bonus_expiry_days

    def get_signup_bonus_config(self) -> SignupBonusConfig:
        return SignupBonusConfig(
            bonus_amount=self._bonus_amount,
            expiry_days=self._bonus_expiry_days,
        )

    def grant_signup_bonus(self, user_code: str) -> BonusResult:
        now = self._clock.now()
        expires_at = (
            now + timedelta(days=self._bonus_expiry_days)
            if self._bonus_expiry_days
            else None
        )

        def _grant(session: StoreSession) -> BonusResult:
            profile = self._store.users.find_by_user_code(user_code, session=session)
            if profile is None:
                return BonusResult.failure(CreditErrorCode.USER_NOT_FOUND)
            if profile.signup_bonus_claimed:
                return BonusResult.failure(
                    CreditErrorCode.BONUS_ALREADY_CLAIMED, bonus_claimed=True
                )

            grant = self._store.grants.insert(
                CreditGrant(
                    user_code=user_code,
                    amount=self._bonus_amount,
                    remaining=self._bonus_amount,
                    type=CreditType.BONUS,
                    description=SIGNUP_BONUS_DESCRIPTION,
                    created_at=now,
                    expires_at=expires_at,
                ),
                session=session,
            )
            # 플래그가 이미 바뀌어 있으면 예외로 트랜잭션을 버려 grant 도 남기지 않는다.
            if not self._store.users.mark_signup_bonus_claimed(user_code, session=session):
                raise BonusAlreadyClaimedError(user_code)

            return BonusResult(
                amount=grant.amount,
                bonus_claimed=True,
                transaction_id=grant.id,
                expires_at=grant.expires_at,
            )

        try:
            result = self._store.run_exclusive(user_code, _grant)
        except BonusAlreadyClaimedError:
            result = BonusResult.failure(
                CreditErrorCode.BONUS_ALREADY_CLAIMED, bonus_claimed=True
            )
        except CreditStoreError:
            logger.exception("failed to grant signup bonus", extra={"user_code": user_code})
            return BonusResult.failure(CreditErrorCode.DATABASE_ERROR)

        if result.success:
            logger.info(
                "signup bonus granted",
                extra={"user_code": user_code, "amount": result.amount},
            )
        else:
            logger.info(
                "signup bonus rejected: %s",
                result.error,
                extra={"user_code": user_code, "error_code": str(result.error)},
            )
        return result
