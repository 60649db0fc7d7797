from __future__ import annotations

import logging
import threading
from typing import Optional

from pymongo import ASCENDING, DESCENDING, IndexModel, MongoClient
from pymongo.database import Database

from .config import load_mongo_settings


logger = logging.getLogger(__name__)


_client: Optional[MongoClient] = None
_db: Optional[Database] = None
_lock = threading.Lock()


def get_client() -> MongoClient:
    """전역 MongoClient 싱글톤을 반환한다.

    - MONGO_URI, MONGO_DB_NAME 환경 변수에서 접속 설정을 읽어온다.
    - ping 으로 연결을 검증한다.
    - 크레딧 원장 컬렉션에 필요한 인덱스를 한 번만 생성한다.
    """

    global _client, _db

    if _client is not None:
        return _client

    with _lock:
        if _client is not None:
            return _client

        settings = load_mongo_settings()
        # 원장 트랜잭션은 UTC datetime 비교에 의존하므로 tz_aware 로 읽는다.
        client: MongoClient = MongoClient(
            settings.uri,
            tz_aware=True,
            serverSelectionTimeoutMS=settings.server_selection_timeout_ms,
        )

        try:
            client.admin.command("ping")
        except Exception as exc:  # noqa: BLE001
            client.close()
            raise RuntimeError(f"failed to connect to MongoDB: {exc}") from exc

        try:
            db = (
                client[settings.db_name]
                if settings.db_name
                else client.get_default_database()
            )
        except Exception as exc:  # noqa: BLE001
            client.close()
            raise RuntimeError(
                "MongoDB database name must be specified via MONGO_DB_NAME or in MONGO_URI (mongodb://.../db_name)",
            ) from exc

        try:
            ensure_ledger_indexes(db)
        except Exception as exc:  # noqa: BLE001
            logger.error("failed to ensure MongoDB indexes: %s", exc)
            client.close()
            raise

        _client = client
        _db = db
        logger.info("MongoDB connected and indexes ensured (db=%s)", db.name)
        return _client


def get_database() -> Database:
    """전역 기본 Database 객체를 반환한다."""

    if _db is None:
        get_client()
    assert _db is not None  # get_client 가 실패했다면 예외가 이미 발생했어야 한다.
    return _db


def ensure_ledger_indexes(db: Database) -> None:
    """크레딧 원장 컬렉션의 필수 인덱스를 생성한다.

    중복 생성해도 MongoDB 가 처리하므로 idempotent 하다.
    트랜잭션 안에서는 컬렉션/인덱스를 만들 수 없으므로 반드시 시작 시점에 호출해야 한다.
    """

    db["credit_grants"].create_indexes(
        [
            # FIFO 후보 조회: user_code + 잔량 + 만료 시각
            IndexModel(
                [
                    ("user_code", ASCENDING),
                    ("remaining", ASCENDING),
                    ("expires_at", ASCENDING),
                ],
                name="idx_user_remaining_expires",
            ),
            # 만료 회수 배치
            IndexModel([("expires_at", ASCENDING)], name="idx_expires_at"),
            # 이력 조회 (최신순)
            IndexModel(
                [("user_code", ASCENDING), ("created_at", DESCENDING)],
                name="idx_user_created_desc",
            ),
        ]
    )

    db["daily_usage"].create_indexes(
        [
            IndexModel(
                [("user_code", ASCENDING), ("usage_date", ASCENDING)],
                name="uniq_user_usage_date",
                unique=True,
            )
        ]
    )

    db["users"].create_indexes(
        [IndexModel([("user_code", ASCENDING)], name="uniq_user_code", unique=True)]
    )
