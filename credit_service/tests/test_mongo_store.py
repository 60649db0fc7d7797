from __future__ import annotations

from datetime import date, timedelta
from typing import Any

import pytest
from bson import ObjectId
from pymongo.errors import OperationFailure, ServerSelectionTimeoutError
from pymongo.read_preferences import ReadPreference

from conftest import NOW, USER, FrozenClock

from credit_service.app.config import CreditConfig
from credit_service.app.exceptions import ConcurrentGrantUpdateError, CreditStoreError
from credit_service.app.models.credit import CreditGrant, CreditType
from credit_service.app.models.results import CreditErrorCode
from credit_service.app.repositories.mongo_store import MongoCreditStore
from credit_service.app.services.credit_service import CreditService


class FakeUpdateResult:
    def __init__(self, modified_count: int) -> None:
        self.modified_count = modified_count


class FakeInsertResult:
    def __init__(self, inserted_id: ObjectId) -> None:
        self.inserted_id = inserted_id


class FakeCollection:
    """호출을 기록하고 미리 정해 둔 결과를 돌려주는 컬렉션."""

    def __init__(self, name: str, calls: list[tuple[str, str, dict[str, Any]]]) -> None:
        self.name = name
        self._calls = calls
        self.find_one_result: dict | None = None
        self.find_result: list[dict] = []
        self.find_one_and_update_result: dict | None = None
        self.modified_count = 1

    def _record(self, method: str, **kwargs: Any) -> None:
        self._calls.append((self.name, method, kwargs))

    def find_one(self, filter: dict, **kwargs: Any) -> dict | None:
        self._record("find_one", filter=filter, **kwargs)
        return self.find_one_result

    def find(self, filter: dict, **kwargs: Any) -> list[dict]:
        self._record("find", filter=filter, **kwargs)
        return list(self.find_result)

    def find_one_and_update(self, filter: dict, update: dict, **kwargs: Any) -> dict | None:
        self._record("find_one_and_update", filter=filter, update=update, **kwargs)
        return self.find_one_and_update_result

    def update_one(self, filter: dict, update: dict, **kwargs: Any) -> FakeUpdateResult:
        self._record("update_one", filter=filter, update=update, **kwargs)
        return FakeUpdateResult(self.modified_count)

    def insert_one(self, document: dict, **kwargs: Any) -> FakeInsertResult:
        self._record("insert_one", document=document, **kwargs)
        return FakeInsertResult(ObjectId())


class FakeDatabase:
    def __init__(self) -> None:
        self.calls: list[tuple[str, str, dict[str, Any]]] = []
        self._collections: dict[str, FakeCollection] = {}

    def __getitem__(self, name: str) -> FakeCollection:
        if name not in self._collections:
            self._collections[name] = FakeCollection(name, self.calls)
        return self._collections[name]


class FakeSession:
    def __init__(self) -> None:
        self.transaction_options: dict[str, Any] | None = None
        self.transaction_error: Exception | None = None

    def __enter__(self) -> "FakeSession":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        return None

    def with_transaction(self, callback, **options: Any):  # type: ignore[no-untyped-def]
        self.transaction_options = options
        if self.transaction_error is not None:
            raise self.transaction_error
        return callback(self)


class FakeClient:
    def __init__(self) -> None:
        self.session = FakeSession()
        self.start_session_calls: list[dict[str, Any]] = []

    def start_session(self, **kwargs: Any) -> FakeSession:
        self.start_session_calls.append(kwargs)
        return self.session


def _build_store(
    default_daily_limit: int = 50,
) -> tuple[MongoCreditStore, FakeClient, FakeDatabase]:
    client = FakeClient()
    database = FakeDatabase()
    store = MongoCreditStore(
        client, database, default_daily_limit=default_daily_limit  # type: ignore[arg-type]
    )
    return store, client, database


def _grant_doc(oid: ObjectId, *, remaining: int = 10, consumed_at=None) -> dict:
    return {
        "_id": oid,
        "user_code": USER,
        "amount": 10,
        "remaining": remaining,
        "type": "purchase",
        "description": "",
        "expires_at": NOW + timedelta(days=3),
        "consumed_at": consumed_at,
        "created_at": NOW - timedelta(days=1),
        "updated_at": NOW,
    }


def _grant(oid: ObjectId, remaining: int = 10) -> CreditGrant:
    return CreditGrant(
        id=str(oid),
        user_code=USER,
        amount=10,
        remaining=remaining,
        type=CreditType.PURCHASE,
        created_at=NOW - timedelta(days=1),
        expires_at=NOW + timedelta(days=3),
    )


def test_run_exclusive_bumps_ledger_version_before_work() -> None:
    store, client, database = _build_store()
    seen: list[tuple[str, str, dict[str, Any]]] = []

    def _work(session) -> str:
        seen.extend(database.calls)
        assert session is client.session
        return "done"

    assert store.run_exclusive(USER, _work) == "done"

    assert len(seen) == 1
    collection, method, kwargs = seen[0]
    assert (collection, method) == ("users", "update_one")
    assert kwargs["filter"] == {"user_code": USER}
    assert kwargs["update"] == {"$inc": {"credit_ledger_version": 1}}
    assert kwargs["session"] is client.session

    options = client.session.transaction_options
    assert options["read_concern"].level == "snapshot"
    assert options["write_concern"].document == {"w": "majority"}
    assert options["read_preference"] == ReadPreference.PRIMARY


def test_run_exclusive_wraps_driver_errors() -> None:
    store, client, _ = _build_store()
    failure = OperationFailure("WriteConflict")
    client.session.transaction_error = failure

    with pytest.raises(CreditStoreError) as exc_info:
        store.run_exclusive(USER, lambda session: None)

    assert exc_info.value.__cause__ is failure


def test_run_snapshot_uses_snapshot_session_and_wraps_errors() -> None:
    store, client, _ = _build_store()

    def _read(session) -> None:
        raise ServerSelectionTimeoutError("no primary available")

    with pytest.raises(CreditStoreError):
        store.run_snapshot(_read)

    assert client.start_session_calls == [{"snapshot": True}]


def test_debit_is_conditional_on_previously_read_remaining() -> None:
    store, _, database = _build_store()
    oid = ObjectId()
    database["credit_grants"].find_one_and_update_result = None

    with pytest.raises(ConcurrentGrantUpdateError) as exc_info:
        store.grants.debit(_grant(oid), 4, NOW)

    assert exc_info.value.expected_remaining == 10
    _, _, kwargs = database.calls[-1]
    assert kwargs["filter"] == {"_id": oid, "remaining": 10}
    assert kwargs["update"]["$set"]["remaining"] == 6
    assert "consumed_at" not in kwargs["update"]["$set"]


def test_debit_to_zero_stamps_consumed_at() -> None:
    store, _, database = _build_store()
    oid = ObjectId()
    database["credit_grants"].find_one_and_update_result = _grant_doc(
        oid, remaining=0, consumed_at=NOW
    )

    updated = store.grants.debit(_grant(oid), 10, NOW)

    _, _, kwargs = database.calls[-1]
    assert kwargs["update"]["$set"]["consumed_at"] == NOW
    assert updated.id == str(oid)
    assert (updated.remaining, updated.consumed_at) == (0, NOW)


def test_list_spendable_keeps_non_expiring_grants() -> None:
    store, _, database = _build_store()
    oid = ObjectId()
    database["credit_grants"].find_result = [_grant_doc(oid)]

    grants = store.grants.list_spendable(USER, NOW)

    _, method, kwargs = database.calls[-1]
    assert method == "find"
    assert kwargs["filter"] == {
        "user_code": USER,
        "remaining": {"$gt": 0},
        "$or": [{"expires_at": None}, {"expires_at": {"$gt": NOW}}],
    }
    assert kwargs["sort"][0] == ("expires_at", 1)
    assert [g.id for g in grants] == [str(oid)]


def test_daily_usage_increment_upserts_the_day_record() -> None:
    store, _, database = _build_store()
    database["daily_usage"].find_one_and_update_result = {
        "_id": ObjectId(),
        "user_code": USER,
        "usage_date": "2025-03-10",
        "credits_consumed": 7,
        "created_at": NOW,
        "updated_at": NOW,
    }

    record = store.daily_usage.increment(USER, date(2025, 3, 10), 7)

    _, _, kwargs = database.calls[-1]
    assert kwargs["filter"] == {"user_code": USER, "usage_date": "2025-03-10"}
    assert kwargs["update"]["$inc"] == {"credits_consumed": 7}
    assert kwargs["upsert"] is True
    assert record.usage_date == date(2025, 3, 10)
    assert record.credits_consumed == 7


def test_user_without_daily_limit_uses_store_default() -> None:
    store, _, database = _build_store(default_daily_limit=50)
    database["users"].find_one_result = {"user_code": USER}

    profile = store.users.find_by_user_code(USER)

    assert profile is not None
    assert profile.daily_limit == 50
    assert profile.signup_bonus_claimed is False


def test_mark_signup_bonus_claimed_only_flips_unclaimed_users() -> None:
    store, _, database = _build_store()
    database["users"].modified_count = 0

    assert store.users.mark_signup_bonus_claimed(USER) is False
    _, _, kwargs = database.calls[-1]
    assert kwargs["filter"] == {"user_code": USER, "signup_bonus_claimed": {"$ne": True}}


def test_malformed_user_document_becomes_store_error() -> None:
    store, _, database = _build_store()
    database["users"].find_one_result = {"user_code": USER, "daily_limit": -5}

    with pytest.raises(CreditStoreError):
        store.run_snapshot(
            lambda session: store.users.find_by_user_code(USER, session=session)
        )

    service = CreditService(store, CreditConfig(), clock=FrozenClock())
    result = service.consume_credits(USER, 1)

    assert result.success is False
    assert result.error == CreditErrorCode.DATABASE_ERROR


def test_invalid_grant_id_becomes_store_error() -> None:
    store, _, _ = _build_store()
    broken = _grant(ObjectId()).model_copy(update={"id": "not-an-object-id"})

    with pytest.raises(CreditStoreError):
        store.run_exclusive(
            USER, lambda session: store.grants.debit(broken, 1, NOW, session=session)
        )
