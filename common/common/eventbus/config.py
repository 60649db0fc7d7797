from __future__ import annotations

import os


KAFKA_BOOTSTRAP_SERVERS_ENV = "KAFKA_BOOTSTRAP_SERVERS"


def get_brokers() -> str:
    value = os.getenv(KAFKA_BOOTSTRAP_SERVERS_ENV)
    if not value:
        raise RuntimeError(
            f"{KAFKA_BOOTSTRAP_SERVERS_ENV} environment variable is required"
        )
    return value


def is_event_bus_configured() -> bool:
    """Kafka 브로커 주소가 설정되어 있는지 여부.

    로컬 실행이나 테스트처럼 브로커가 없는 환경에서는 이벤트 발행을 건너뛴다.
    """

    return bool(os.getenv(KAFKA_BOOTSTRAP_SERVERS_ENV, "").strip())
