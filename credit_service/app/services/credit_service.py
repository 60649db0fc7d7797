"""크레딧 원장 서비스 (1:N 모델).

소비, 잔액 조회, 지급, 가입 보너스, 만료 회수, 관리자 조정을 하나의 진입점으로 묶는다.
HTTP 핸들러와 스케줄러는 이 클래스만 사용한다.
"""

from __future__ import annotations

import threading
from datetime import datetime
from typing import Optional

from ..clock import Calendar, Clock, SystemClock
from ..config import STORE_BACKEND_MEMORY, CreditConfig, load_credit_config
from ..models.credit import CreditType
from ..models.results import (
    AdjustmentResult,
    BalanceResult,
    BonusResult,
    CleanupResult,
    ConsumeResult,
    CreditErrorCode,
    DailyLimitResult,
    ExpiredCreditsResult,
    GrantResult,
    HistoryResult,
    SignupBonusConfig,
)
from ..repositories.interfaces import CreditStoreInterface
from .balance_service import BalanceService
from .bonus_service import BonusService
from .consumption_service import ConsumptionService
from .expiry_service import ExpiryService
from .grant_service import GrantService


class CreditService:
    """크레딧 원장 비즈니스 로직의 파사드.

    - 저장소(CreditStoreInterface)에만 의존하고, Mongo/메모리 구현은 알지 않는다.
    - 모든 메서드는 예외 대신 결과 모델을 반환한다.
    """

    def __init__(
        self,
        store: CreditStoreInterface,
        config: CreditConfig,
        clock: Clock | None = None,
    ) -> None:
        clock = clock or SystemClock()
        calendar = Calendar(config.timezone)

        self._consumption = ConsumptionService(store, clock, calendar)
        self._balance = BalanceService(
            store, clock, expiring_soon_days=config.expiring_soon_days
        )
        self._expiry = ExpiryService(store, clock)
        self._grants = GrantService(
            store, clock, default_grant_expiry_days=config.default_grant_expiry_days
        )
        self._bonus = BonusService(
            store,
            clock,
            bonus_amount=config.signup_bonus_amount,
            bonus_expiry_days=config.signup_bonus_expiry_days,
        )

    def consume_credits(self, user_code: str, amount: int) -> ConsumeResult:
        return self._consumption.consume(user_code, amount)

    def check_daily_limit(self, user_code: str, amount: int) -> DailyLimitResult:
        return self._consumption.check_daily_limit(user_code, amount)

    def get_valid_credits(self, user_code: str) -> BalanceResult:
        return self._balance.get_valid_credits(user_code)

    def add_credits(
        self,
        user_code: str,
        amount: int,
        type: CreditType,
        description: str = "",
        expires_at: datetime | None = None,
    ) -> GrantResult:
        return self._grants.add_credits(user_code, amount, type, description, expires_at)

    def grant_signup_bonus(self, user_code: str) -> BonusResult:
        return self._bonus.grant_signup_bonus(user_code)

    def get_signup_bonus_config(self) -> SignupBonusConfig:
        return self._bonus.get_signup_bonus_config()

    def cleanup_expired_credits(self) -> CleanupResult:
        return self._expiry.cleanup_expired_credits()

    def get_expired_credits(self) -> ExpiredCreditsResult:
        return self._expiry.get_expired_credits()

    def get_history(
        self, user_code: str, page: int = 1, page_size: int = 20
    ) -> HistoryResult:
        return self._grants.get_history(user_code, page, page_size)

    def adjust_credits(
        self,
        user_code: str,
        delta: int,
        description: str = "",
        expires_at: datetime | None = None,
    ) -> AdjustmentResult:
        """관리자 잔액 조정.

        별도의 잔액 필드를 직접 고치지 않고 원장을 통해서만 반영한다.
        양수는 admin_adjustment grant 지급, 음수는 일일 한도를 보지 않는 FIFO 차감이다.
        """
        if delta == 0:
            return AdjustmentResult.failure(CreditErrorCode.INVALID_AMOUNT, delta=0)

        if delta > 0:
            granted = self._grants.add_credits(
                user_code,
                delta,
                CreditType.ADMIN_ADJUSTMENT,
                description,
                expires_at,
            )
            if not granted.success:
                return AdjustmentResult.failure(granted.error, delta=delta)
            return AdjustmentResult(
                delta=delta,
                transaction_id=granted.transaction_id,
                expires_at=granted.expires_at,
            )

        deducted = self._consumption.deduct(user_code, -delta)
        if not deducted.success:
            return AdjustmentResult.failure(
                deducted.error,
                delta=delta,
                available=deducted.available,
                requested=deducted.requested,
            )
        return AdjustmentResult(delta=delta, transactions=deducted.transactions)


# -------- Dependencies --------

_store: Optional[CreditStoreInterface] = None
_service: Optional[CreditService] = None
_lock = threading.Lock()


def build_credit_store(config: CreditConfig) -> CreditStoreInterface:
    """설정된 백엔드에 맞는 원장 저장소를 만든다."""

    if config.store_backend == STORE_BACKEND_MEMORY:
        from ..repositories.memory_store import InMemoryCreditStore

        # 단독 실행용이므로 users 컬렉션 대신 처음 보는 유저를 기본 프로필로 등록한다.
        return InMemoryCreditStore(
            default_daily_limit=config.default_daily_limit, auto_register_users=True
        )

    from common.mongo.client import get_client, get_database

    from ..repositories.mongo_store import MongoCreditStore

    return MongoCreditStore(
        get_client(),
        get_database(),
        default_daily_limit=config.default_daily_limit,
    )


def get_credit_service() -> CreditService:
    """FastAPI DI 및 스케줄러용 CreditService 싱글톤 팩토리.

    인메모리 백엔드는 프로세스 안에서 상태를 공유해야 하므로 서비스와 저장소를 한 번만 만든다.
    """

    global _store, _service

    if _service is not None:
        return _service

    with _lock:
        if _service is None:
            config = load_credit_config()
            _store = build_credit_store(config)
            _service = CreditService(_store, config)
    return _service
