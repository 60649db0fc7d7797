from __future__ import annotations

from datetime import timedelta

from conftest import LedgerFixture

from common.events.credit import CreditEventType
from credit_service.app.scheduler import expiry_scheduler
from credit_service.app.scheduler.expiry_scheduler import run_expiry_cleanup


class RecordingBus:
    def __init__(self) -> None:
        self.published = []

    def publish(self, topic, event) -> None:
        self.published.append((topic, event))


def test_cleanup_run_publishes_expired_event(ledger: LedgerFixture) -> None:
    ledger.seed_grant(9, expires_in=-timedelta(minutes=5))
    bus = RecordingBus()

    result = run_expiry_cleanup(ledger.service, bus, "test run")

    assert (result.cleaned_count, result.freed_space) == (1, 9)
    topic, event = bus.published[0]
    assert topic == "credit-ledger.credit"
    assert event.payload["type"] == CreditEventType.CREDIT_EXPIRED
    assert (event.payload["cleaned_count"], event.payload["freed_space"]) == (1, 9)
    assert event.partition_key == event.id


def test_cleanup_run_without_expired_grants_publishes_nothing(
    ledger: LedgerFixture,
) -> None:
    ledger.seed_grant(9, expires_in=timedelta(days=1))
    bus = RecordingBus()

    result = run_expiry_cleanup(ledger.service, bus, "test run")

    assert result.cleaned_count == 0
    assert bus.published == []


def test_cleanup_run_works_without_event_bus(ledger: LedgerFixture) -> None:
    ledger.seed_grant(3, expires_in=-timedelta(minutes=5))

    assert run_expiry_cleanup(ledger.service, None, "test run").freed_space == 3


def test_scheduler_is_not_started_when_interval_is_zero() -> None:
    expiry_scheduler.start_expiry_scheduler(0)

    assert expiry_scheduler._EXPIRY_SCHEDULER_THREAD is None
    expiry_scheduler.stop_expiry_scheduler()
