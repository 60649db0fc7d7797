"""현재 시각과 달력 날짜 계산.

만료 비교는 항상 UTC 로, 일일 사용량 버킷은 설정된 타임존의 달력 날짜로 계산한다.
서버 로컬 시간에는 의존하지 않는다.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Protocol
from zoneinfo import ZoneInfo

from common.types.datetime import ensure_utc


class Clock(Protocol):
    def now(self) -> datetime:  # pragma: no cover - Protocol
        ...


class SystemClock:
    """실제 시스템 시각(UTC)을 반환하는 Clock."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class Calendar:
    """타임스탬프를 특정 타임존의 달력 날짜로 변환한다."""

    def __init__(self, timezone_name: str) -> None:
        self._tz = ZoneInfo(timezone_name)

    @property
    def timezone_name(self) -> str:
        return self._tz.key

    def day_of(self, value: datetime) -> date:
        return ensure_utc(value).astimezone(self._tz).date()
