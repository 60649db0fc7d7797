from __future__ import annotations

import uuid
from dataclasses import asdict
from typing import Any, Mapping

from .core import Event


def new_json_event(
    payload: Mapping[str, Any],
    *,
    event_id: str | None = None,
    key: str | None = None,
) -> Event:
    """dict 페이로드를 Event 봉투로 감싼다. event_id 가 비어 있으면 uuid4 문자열을 쓴다."""
    return Event(id=event_id or str(uuid.uuid4()), payload=dict(payload), key=key)


def wrap_domain_event(event: Any) -> Event:
    """id 필드를 가진 이벤트 dataclass(CreditConsumedEvent 등)를 봉투로 감싼다.

    봉투 id 는 이벤트 id 와 같고, user_code 가 있으면 파티션 키로 쓴다.
    """
    return new_json_event(
        asdict(event),
        event_id=event.id,
        key=getattr(event, "user_code", None),
    )


def event_to_dict(event: Event) -> dict[str, Any]:
    """Event를 JSON 직렬화 가능한 dict로 변환한다."""
    return asdict(event)
