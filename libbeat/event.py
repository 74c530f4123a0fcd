from __future__ import annotations

from collections.abc import Iterator, Mapping
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator, model_validator

TIMESTAMP_FIELD = "@timestamp"
TYPE_FIELD = "type"
RESERVED_FIELDS = frozenset({TIMESTAMP_FIELD, TYPE_FIELD})


def truncate_to_millis(value: datetime) -> datetime:
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    value = value.astimezone(UTC)
    return value.replace(microsecond=(value.microsecond // 1000) * 1000)


def format_timestamp(value: datetime) -> str:
    value = truncate_to_millis(value)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def parse_timestamp(text: str) -> datetime:
    cleaned = text.strip()
    if cleaned.endswith("Z"):
        cleaned = cleaned[:-1] + "+00:00"
    return truncate_to_millis(datetime.fromisoformat(cleaned))


def _freeze_value(value: Any, path: str) -> Any:
    if isinstance(value, Mapping):
        output: dict[str, Any] = {}
        for key, item in value.items():
            if not isinstance(key, str):
                raise ValueError(f"field {path!r} has a non-string key {key!r}")
            output[key] = _freeze_value(item, f"{path}.{key}")
        return output
    if isinstance(value, (list, tuple)):
        return [_freeze_value(item, f"{path}[{index}]") for index, item in enumerate(value)]
    if isinstance(value, datetime):
        return format_timestamp(value)
    if value is None or isinstance(value, (str, bool, int, float)):
        return value
    raise ValueError(f"field {path!r} has unsupported value type {type(value).__name__}")


def _copy_value(value: Any) -> Any:
    if isinstance(value, dict):
        return {key: _copy_value(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_copy_value(item) for item in value]
    return value


class Event(BaseModel, Mapping[str, Any]):
    model_config = ConfigDict(extra="allow", frozen=True, populate_by_name=True)

    timestamp: datetime = Field(alias=TIMESTAMP_FIELD)
    type: str = Field(min_length=1, max_length=256)

    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, value: datetime) -> datetime:
        return truncate_to_millis(value)

    @field_validator("type")
    @classmethod
    def validate_type(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("event type must not be empty")
        return cleaned

    @model_validator(mode="after")
    def normalize_fields(self) -> "Event":
        extra = self.__pydantic_extra__ or {}
        for name in list(extra):
            extra[name] = _freeze_value(extra[name], name)
        return self

    @field_serializer("timestamp")
    def serialize_timestamp(self, value: datetime) -> str:
        return format_timestamp(value)

    @classmethod
    def create(
        cls,
        event_type: str,
        fields: Mapping[str, Any] | None = None,
        *,
        timestamp: datetime | None = None,
    ) -> "Event":
        payload = dict(fields or {})
        clashing = RESERVED_FIELDS.intersection(payload)
        if clashing:
            raise ValueError(f"reserved event fields cannot be set directly: {sorted(clashing)}")
        payload[TIMESTAMP_FIELD] = timestamp or datetime.now(UTC)
        payload[TYPE_FIELD] = event_type
        return cls.model_validate(payload)

    @property
    def fields(self) -> dict[str, Any]:
        return {key: _copy_value(value) for key, value in (self.__pydantic_extra__ or {}).items()}

    def to_dict(self) -> dict[str, Any]:
        document: dict[str, Any] = {
            TIMESTAMP_FIELD: format_timestamp(self.timestamp),
            TYPE_FIELD: self.type,
        }
        document.update(self.fields)
        return document

    def __getitem__(self, key: str) -> Any:
        if key == TIMESTAMP_FIELD:
            return format_timestamp(self.timestamp)
        if key == TYPE_FIELD:
            return self.type
        extra = self.__pydantic_extra__ or {}
        if key not in extra:
            raise KeyError(key)
        return _copy_value(extra[key])

    def __iter__(self) -> Iterator[str]:  # type: ignore[override]
        yield TIMESTAMP_FIELD
        yield TYPE_FIELD
        yield from (self.__pydantic_extra__ or {})

    def __len__(self) -> int:
        return len(RESERVED_FIELDS) + len(self.__pydantic_extra__ or {})

    def __contains__(self, key: object) -> bool:
        return key in RESERVED_FIELDS or key in (self.__pydantic_extra__ or {})
