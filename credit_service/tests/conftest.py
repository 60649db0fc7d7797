from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import pytest

from credit_service.app.config import STORE_BACKEND_MEMORY, CreditConfig
from credit_service.app.models.credit import CreditGrant, CreditType
from credit_service.app.repositories.memory_store import InMemoryCreditStore
from credit_service.app.services.credit_service import CreditService


# 2025-03-10 12:00 Asia/Taipei
NOW = datetime(2025, 3, 10, 4, 0, tzinfo=timezone.utc)
USER = "user-001"


class FrozenClock:
    def __init__(self, now: datetime = NOW) -> None:
        self.current = now

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs: float) -> None:
        self.current = self.current + timedelta(**kwargs)


@dataclass
class LedgerFixture:
    service: CreditService
    store: InMemoryCreditStore
    clock: FrozenClock
    config: CreditConfig

    def seed_grant(
        self,
        amount: int,
        *,
        user_code: str = USER,
        expires_in: timedelta | None = None,
        created_ago: timedelta = timedelta(days=1),
        type: CreditType = CreditType.PURCHASE,
    ) -> CreditGrant:
        """세션 없이 저장소에 grant 를 바로 넣는다. 만료 시각은 현재 시각 기준 상대값."""
        now = self.clock.now()
        return self.store.grants.insert(
            CreditGrant(
                user_code=user_code,
                amount=amount,
                remaining=amount,
                type=type,
                created_at=now - created_ago,
                expires_at=now + expires_in if expires_in is not None else None,
            )
        )

    def grants(self, user_code: str = USER) -> dict[str, CreditGrant]:
        items, _ = self.store.grants.list_by_user(user_code, 1, 1000)
        return {grant.id: grant for grant in items}


def build_ledger(config: CreditConfig | None = None, *users: str) -> LedgerFixture:
    config = config or CreditConfig(store_backend=STORE_BACKEND_MEMORY)
    clock = FrozenClock()
    store = InMemoryCreditStore(default_daily_limit=config.default_daily_limit)
    for user_code in users or (USER,):
        store.add_user(user_code)
    service = CreditService(store, config, clock=clock)
    return LedgerFixture(service=service, store=store, clock=clock, config=config)


@pytest.fixture
def ledger() -> LedgerFixture:
    return build_ledger()
