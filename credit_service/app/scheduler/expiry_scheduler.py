from __future__ import annotations

import logging
import threading
import uuid
from datetime import datetime, timezone

from common.eventbus.config import get_brokers, is_event_bus_configured
from common.eventbus.helpers import wrap_domain_event
from common.eventbus.kafka import KafkaEventBus
from common.eventbus.topics import TOPIC_CREDIT
from common.events.credit import CreditEventType, CreditExpiredEvent

from ..models.results import CleanupResult
from ..services.credit_service import CreditService, get_credit_service


logger = logging.getLogger(__name__)


_EXPIRY_SCHEDULER_THREAD: threading.Thread | None = None
_EXPIRY_SCHEDULER_STOP_EVENT: threading.Event | None = None


def publish_expired_event(bus: KafkaEventBus, result: CleanupResult) -> None:
    """회수한 grant 가 있을 때만 credit.expired 이벤트를 발행한다."""

    if result.cleaned_count == 0:
        return

    event = CreditExpiredEvent(
        id=str(uuid.uuid4()),
        type=CreditEventType.CREDIT_EXPIRED,
        timestamp=datetime.now(timezone.utc).isoformat(),
        source="credit-service",
        version="1.0",
        cleaned_count=result.cleaned_count,
        freed_space=result.freed_space,
    )
    bus.publish(TOPIC_CREDIT.base, wrap_domain_event(event))


def run_expiry_cleanup(
    service: CreditService, bus: KafkaEventBus | None, label: str
) -> CleanupResult:
    logger.info("expired credit cleanup starting (%s)", label)
    result = service.cleanup_expired_credits()
    if not result.success:
        # 부분 회수분은 이미 커밋되었으므로 다음 주기에 남은 것만 다시 처리된다.
        logger.error(
            "expired credit cleanup failed (%s): %s",
            label,
            result.error,
            extra={
                "error_code": str(result.error),
                "cleaned_count": result.cleaned_count,
                "freed_space": result.freed_space,
            },
        )
    if bus is not None:
        try:
            publish_expired_event(bus, result)
        except Exception:  # noqa: BLE001
            logger.exception("failed to publish credit.expired event (%s)", label)
    return result


def _run_scheduler_loop(stop_event: threading.Event, interval: float) -> None:
    logger.info(
        "expiry scheduler thread started (interval=%.0f seconds)",
        interval,
    )

    service = get_credit_service()
    bus = KafkaEventBus(get_brokers()) if is_event_bus_configured() else None

    try:
        # 최초 실행
        try:
            run_expiry_cleanup(service, bus, "initial run")
        except Exception:  # noqa: BLE001
            logger.exception("expired credit cleanup crashed (initial run)")

        # 주기적 실행
        while not stop_event.wait(interval):
            try:
                run_expiry_cleanup(service, bus, "scheduled run")
            except Exception:  # noqa: BLE001
                logger.exception("expired credit cleanup crashed (scheduled run)")
    finally:
        if bus is not None:
            bus.close()
        logger.info("expiry scheduler thread stopped")


def start_expiry_scheduler(interval: float) -> None:
    """만료 회수 스케줄러 스레드를 시작한다.

    FastAPI lifespan 시작 시 호출된다. interval 이 0 이하이면 아무것도 하지 않는다.
    """

    global _EXPIRY_SCHEDULER_THREAD, _EXPIRY_SCHEDULER_STOP_EVENT

    if interval <= 0:
        logger.info("expiry scheduler disabled")
        return

    if _EXPIRY_SCHEDULER_THREAD and _EXPIRY_SCHEDULER_THREAD.is_alive():
        return

    stop_event = threading.Event()
    thread = threading.Thread(
        target=_run_scheduler_loop,
        args=(stop_event, interval),
        name="credit-expiry-scheduler",
        daemon=True,
    )

    _EXPIRY_SCHEDULER_STOP_EVENT = stop_event
    _EXPIRY_SCHEDULER_THREAD = thread

    thread.start()
    logger.info("expiry scheduler thread launched")


def stop_expiry_scheduler() -> None:
    """만료 회수 스케줄러 스레드를 정지한다. FastAPI lifespan 종료 시 호출된다."""

    global _EXPIRY_SCHEDULER_THREAD, _EXPIRY_SCHEDULER_STOP_EVENT

    if _EXPIRY_SCHEDULER_THREAD is None or _EXPIRY_SCHEDULER_STOP_EVENT is None:
        return

    _EXPIRY_SCHEDULER_STOP_EVENT.set()
    _EXPIRY_SCHEDULER_THREAD.join(timeout=10.0)

    _EXPIRY_SCHEDULER_THREAD = None
    _EXPIRY_SCHEDULER_STOP_EVENT = None

    logger.info("expiry scheduler thread stopped by shutdown")
