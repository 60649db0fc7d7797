from __future__ import annotations

from datetime import date, timedelta

import pytest
from bson import ObjectId
from pydantic import ValidationError

from conftest import NOW, USER, LedgerFixture

from credit_service.app.config import STORE_BACKEND_MEMORY, CreditConfig
from credit_service.app.exceptions import ConcurrentGrantUpdateError
from credit_service.app.models.credit import CreditGrant, CreditType, sort_fifo
from credit_service.app.repositories.documents.credit_document import (
    CreditGrantDocument,
    DailyUsageDocument,
)
from credit_service.app.repositories.memory_store import InMemoryCreditStore
from credit_service.app.services.credit_service import build_credit_store


def _grant(**overrides) -> CreditGrant:
    values = dict(
        user_code=USER,
        amount=10,
        remaining=10,
        type=CreditType.PURCHASE,
        created_at=NOW,
    )
    values.update(overrides)
    return CreditGrant(**values)


def test_grant_requires_consumed_at_exactly_when_empty() -> None:
    with pytest.raises(ValidationError):
        _grant(remaining=0)
    with pytest.raises(ValidationError):
        _grant(remaining=5, consumed_at=NOW)
    with pytest.raises(ValidationError):
        _grant(remaining=11)

    assert _grant(remaining=0, consumed_at=NOW).consumed_at == NOW


def test_sort_fifo_puts_non_expiring_last() -> None:
    never = _grant(id="c")
    late = _grant(id="b", expires_at=NOW + timedelta(days=2))
    soon = _grant(id="a", expires_at=NOW + timedelta(days=1))

    assert [g.id for g in sort_fifo([never, late, soon])] == ["a", "b", "c"]


def test_insert_assigns_id(ledger: LedgerFixture) -> None:
    stored = ledger.store.grants.insert(_grant())

    assert stored.id
    assert ledger.grants()[stored.id].amount == 10


def test_run_exclusive_discards_staged_writes_on_error(ledger: LedgerFixture) -> None:
    grant = ledger.seed_grant(10)

    def _fail(session) -> None:
        ledger.store.grants.debit(grant, 4, NOW, session=session)
        ledger.store.daily_usage.increment(USER, date(2025, 3, 10), 4, session=session)
        raise RuntimeError("abort")

    with pytest.raises(RuntimeError):
        ledger.store.run_exclusive(USER, _fail)

    assert ledger.grants()[grant.id].remaining == 10
    assert ledger.store.daily_usage.get(USER, date(2025, 3, 10)) is None


def test_staged_writes_are_visible_inside_the_same_session(
    ledger: LedgerFixture,
) -> None:
    grant = ledger.seed_grant(10)

    def _debit_twice(session) -> int:
        first = ledger.store.grants.debit(grant, 4, NOW, session=session)
        second = ledger.store.grants.debit(first, 6, NOW, session=session)
        return second.remaining

    assert ledger.store.run_exclusive(USER, _debit_twice) == 0
    stored = ledger.grants()[grant.id]
    assert stored.remaining == 0
    assert stored.consumed_at == NOW


def test_debit_rejects_stale_remaining(ledger: LedgerFixture) -> None:
    grant = ledger.seed_grant(10)
    ledger.store.grants.debit(grant, 3, NOW)

    with pytest.raises(ConcurrentGrantUpdateError) as exc_info:
        ledger.store.grants.debit(grant, 3, NOW)

    assert exc_info.value.grant_id == grant.id
    assert exc_info.value.expected_remaining == 10
    assert ledger.grants()[grant.id].remaining == 7


def test_debit_rejects_invalid_amount(ledger: LedgerFixture) -> None:
    grant = ledger.seed_grant(10)

    with pytest.raises(ValueError):
        ledger.store.grants.debit(grant, 0, NOW)
    with pytest.raises(ValueError):
        ledger.store.grants.debit(grant, 11, NOW)


def test_mark_signup_bonus_claimed_flips_once(ledger: LedgerFixture) -> None:
    assert ledger.store.users.mark_signup_bonus_claimed(USER) is True
    assert ledger.store.users.mark_signup_bonus_claimed(USER) is False
    assert ledger.store.users.mark_signup_bonus_claimed("ghost") is False


def test_add_user_uses_store_default_daily_limit(ledger: LedgerFixture) -> None:
    profile = ledger.store.add_user("user-002")

    assert profile.daily_limit == 100
    assert profile.signup_bonus_claimed is False


def test_grant_document_keeps_none_expiry_and_string_type() -> None:
    grant = _grant(id=str(ObjectId()), expires_at=None)

    record = CreditGrantDocument.from_domain(grant).to_mongo_record()

    assert isinstance(record["_id"], ObjectId)
    assert record["type"] == "purchase"
    assert "expires_at" in record and record["expires_at"] is None
    assert CreditGrantDocument.model_validate(record).to_domain() == grant


def test_new_grant_document_lets_mongo_assign_id() -> None:
    record = CreditGrantDocument.from_domain(_grant()).to_mongo_record()

    assert "_id" not in record
    assert record["updated_at"] == NOW


def test_daily_usage_document_stores_date_as_string() -> None:
    doc = DailyUsageDocument(
        user_code=USER,
        usage_date=date(2025, 3, 11),
        credits_consumed=5,
        created_at=NOW,
        updated_at=NOW,
    )

    record = doc.to_mongo_record()

    assert record["usage_date"] == "2025-03-11"
    assert DailyUsageDocument.model_validate(record).to_domain().usage_date == date(
        2025, 3, 11
    )


def test_user_locks_are_dropped_once_released(ledger: LedgerFixture) -> None:
    for user_code in ("user-a", "user-b", USER):
        ledger.store.run_exclusive(user_code, lambda session: None)

    def _abort(session) -> None:
        raise RuntimeError("abort")

    with pytest.raises(RuntimeError):
        ledger.store.run_exclusive(USER, _abort)

    assert ledger.store._user_locks == {}


def test_standalone_memory_store_registers_unknown_users() -> None:
    store = build_credit_store(
        CreditConfig(store_backend=STORE_BACKEND_MEMORY, default_daily_limit=40)
    )

    assert isinstance(store, InMemoryCreditStore)
    profile = store.users.find_by_user_code("walk-in")
    assert profile is not None
    assert (profile.daily_limit, profile.signup_bonus_claimed) == (40, False)
    assert store.users.mark_signup_bonus_claimed("walk-in") is True


def test_store_without_auto_registration_reports_unknown_users(
    ledger: LedgerFixture,
) -> None:
    assert ledger.store.users.find_by_user_code("ghost") is None
