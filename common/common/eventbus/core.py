from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(slots=True)
class Event:
    """Kafka 메시지 봉투.

    - payload 는 JSON 직렬화 가능한 dict 이고, 인코딩은 Kafka I/O 레이어가 맡는다.
    - key 는 파티션 키다. 같은 유저의 원장 이벤트는 같은 파티션으로 가서 순서가 유지된다.
      None 이면 id 를 키로 쓴다.
    """

    id: str
    payload: Any
    key: str | None = None

    @property
    def partition_key(self) -> str:
        return self.key or self.id


@dataclass(frozen=True, slots=True)
class Topic:
    base: str
