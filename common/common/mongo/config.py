from __future__ import annotations

import os
from dataclasses import dataclass


MONGO_URI_ENV = "MONGO_URI"
MONGO_DB_NAME_ENV = "MONGO_DB_NAME"
MONGO_SERVER_SELECTION_TIMEOUT_MS_ENV = "MONGO_SERVER_SELECTION_TIMEOUT_MS"

DEFAULT_SERVER_SELECTION_TIMEOUT_MS = 5000


@dataclass(frozen=True, slots=True)
class MongoSettings:
    """MongoDB 접속 설정.

    크레딧 원장은 멀티 도큐먼트 트랜잭션을 사용하므로 uri 는 replica set 을 가리켜야 한다.
    db_name 이 None 이면 URI 의 기본 DB 를 사용한다.
    """

    uri: str
    db_name: str | None
    server_selection_timeout_ms: int


def load_mongo_settings() -> MongoSettings:
    """환경 변수에서 MongoDB 접속 설정을 읽는다. MONGO_URI 가 없으면 RuntimeError."""

    uri = os.getenv(MONGO_URI_ENV, "").strip()
    if not uri:
        raise RuntimeError(
            f"{MONGO_URI_ENV} environment variable is required for the mongo store backend",
        )

    raw_timeout = os.getenv(MONGO_SERVER_SELECTION_TIMEOUT_MS_ENV, "").strip()
    try:
        timeout_ms = int(raw_timeout) if raw_timeout else DEFAULT_SERVER_SELECTION_TIMEOUT_MS
    except ValueError as exc:
        raise RuntimeError(
            f"invalid {MONGO_SERVER_SELECTION_TIMEOUT_MS_ENV}: {raw_timeout!r}"
        ) from exc

    return MongoSettings(
        uri=uri,
        db_name=os.getenv(MONGO_DB_NAME_ENV, "").strip() or None,
        server_selection_timeout_ms=timeout_ms,
    )
