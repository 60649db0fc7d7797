from __future__ import annotations

import json
import logging
import threading
from typing import Optional

from confluent_kafka import Producer

from .config import get_brokers
from .core import Event
from .helpers import event_to_dict

logger = logging.getLogger(__name__)


class KafkaEventBus:
    """Kafka 기반 EventBus 발행기.

    크레딧 원장은 커밋이 끝난 사실만 알리므로 발행(produce)만 담당한다.
    """

    def __init__(self, brokers: str) -> None:
        self._producer = Producer({"bootstrap.servers": brokers})
        self._brokers = brokers

    def close(self) -> None:
        self._producer.flush()

    def publish(self, topic: str, event: Event) -> None:
        payload = json.dumps(event_to_dict(event), ensure_ascii=False, default=str).encode(
            "utf-8"
        )

        def _delivery_callback(err, msg) -> None:  # type: ignore[no-untyped-def]
            if err is not None:
                logger.error("failed to deliver message to %s: %s", msg.topic(), err)

        self._producer.produce(
            topic=topic,
            value=payload,
            key=event.partition_key.encode("utf-8"),
            callback=_delivery_callback,
        )
        self._producer.poll(0)


_bus: Optional[KafkaEventBus] = None
_bus_lock = threading.Lock()


def get_kafka_event_bus() -> KafkaEventBus:
    """프로세스 전역 KafkaEventBus 싱글톤을 반환한다."""

    global _bus

    if _bus is not None:
        return _bus

    with _bus_lock:
        if _bus is None:
            _bus = KafkaEventBus(get_brokers())
            logger.info("Kafka event bus initialized")
    return _bus
