from __future__ import annotations

from datetime import date, datetime
from typing import Any, Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, Field
from pydantic.functional_serializers import PlainSerializer
from pydantic.functional_validators import BeforeValidator
from typing_extensions import Annotated

from common.types.datetime import ensure_utc, parse_iso_date


def to_object_id(value: Any) -> ObjectId:
    """여러 타입(str, ObjectId 등)을 MongoDB ObjectId 로 변환한다."""

    if isinstance(value, ObjectId):
        return value
    if value is None:
        raise TypeError("ObjectId cannot be None")
    return ObjectId(str(value))


def from_object_id(value: Optional[ObjectId]) -> Optional[str]:
    if value is None:
        return None
    return str(value)


def _to_mongo_datetime(value: Any) -> Any:
    if isinstance(value, datetime):
        return ensure_utc(value)
    return value


PyObjectId = Annotated[ObjectId, BeforeValidator(to_object_id)]
MongoDateTime = Annotated[datetime, BeforeValidator(_to_mongo_datetime)]
# BSON 에는 date 전용 타입이 없으므로 'YYYY-MM-DD' 문자열로 저장한다.
MongoDate = Annotated[
    date,
    BeforeValidator(parse_iso_date),
    PlainSerializer(lambda value: value.isoformat(), return_type=str),
]


class BaseDocument(BaseModel):
    """MongoDB 도큐먼트용 공통 베이스 모델.

    - ObjectId 같은 임의 타입을 허용
    - alias 기반 직렬화(by_alias)를 사용할 수 있도록 한다.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, populate_by_name=True)

    id: Optional[PyObjectId] = Field(default=None, alias="_id")
    created_at: MongoDateTime
    updated_at: MongoDateTime

    def to_mongo_record(self) -> dict[str, Any]:
        """MongoDB 저장에 사용할 레코드(dict) 직렬화.

        - by_alias=True 로 id -> _id 필드 이름을 맞춘다.
        - _id 가 비어 있으면 빼서 Mongo 가 ObjectId 를 생성하도록 한다.
          expires_at 처럼 의미 있는 None 값은 유지한다.
        """

        record = self.model_dump(by_alias=True)
        if record.get("_id") is None:
            record.pop("_id", None)
        return record
