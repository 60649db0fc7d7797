from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Annotated

from pydantic.functional_serializers import PlainSerializer
from pydantic.functional_validators import BeforeValidator


def ensure_utc(value: datetime) -> datetime:
    """datetime 값을 UTC 기준으로 정규화한다.

    - tzinfo 가 없으면 UTC 로 간주해 tzinfo=UTC 를 부여
    - tzinfo 가 있으면 UTC 로 변환
    """

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _ensure_optional_utc(value: object) -> object:
    if isinstance(value, datetime):
        return ensure_utc(value)
    return value


def serialize_datetime_to_utc_iso8601(value: datetime) -> str:
    """모든 datetime을 UTC 기준 ISO8601(+타임존) 문자열로 직렬화한다."""
    return ensure_utc(value).isoformat()


def parse_iso_date(value: object) -> object:
    """'YYYY-MM-DD' 문자열을 date 로 변환한다. 그 외 값은 그대로 둔다."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, str):
        return date.fromisoformat(value)
    return value


# 도메인 모델에서 사용하는 datetime. 입력은 UTC 로 정규화하고, JSON 출력은 UTC ISO8601 로 고정한다.
UtcDateTime = Annotated[
    datetime,
    BeforeValidator(_ensure_optional_utc),
    PlainSerializer(
        serialize_datetime_to_utc_iso8601,
        return_type=str,
        when_used="json",
    ),
]
