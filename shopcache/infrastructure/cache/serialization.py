"""
Cache Payload Serialization

Encodes values for the key-value store and decodes them back into typed
objects.

Architectural Decision: orjson + pydantic TypeAdapter
- orjson for fast JSON encoding/decoding
- pydantic models are dumped in JSON mode with their wire aliases
- Decoding validates into any type a TypeAdapter accepts (a model class,
  ``list[ShopType]``, ``int``, ...). Adapters are cached per type.

Logical expiration envelope:
    {"data": <payload>, "expireTime": "2024-01-01T00:30:00"}

    ``expireTime`` is written as a naive ISO-8601 datetime holding UTC wall
    time. On read an offset-aware value is converted to UTC, a naive one is
    taken as UTC, and a number is taken as epoch milliseconds.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Generic, TypeVar

import orjson
from pydantic import BaseModel, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from shopcache.core.config.constants import ENVELOPE_DATA_FIELD, ENVELOPE_EXPIRE_FIELD
from shopcache.core.exceptions import StoreCorruptError

T = TypeVar("T")


def _default(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True)
    raise TypeError(f"Type is not JSON serializable: {type(value).__name__}")


@lru_cache(maxsize=256)
def _adapter(result_type: Any) -> TypeAdapter:
    return TypeAdapter(result_type)


def dumps(value: Any) -> str:
    return orjson.dumps(value, default=_default).decode()


def loads(payload: str | bytes, result_type: type[T]) -> T:
    """
    Decode a cached payload into ``result_type``.

    Raises:
        StoreCorruptError: payload is not JSON or does not validate
    """
    try:
        raw = orjson.loads(payload)
    except orjson.JSONDecodeError as e:
        raise StoreCorruptError.from_exception(e, message="Cached payload is not valid JSON")
    return validate(raw, result_type)


def validate(raw: Any, result_type: type[T]) -> T:
    try:
        return _adapter(result_type).validate_python(raw)
    except PydanticValidationError as e:
        raise StoreCorruptError.from_exception(
            e,
            message="Cached payload does not match the requested type",
            result_type=getattr(result_type, "__name__", str(result_type)),
        )


# ============================================================================
# Logical Expiration Envelope
# ============================================================================


@dataclass(frozen=True)
class Envelope(Generic[T]):
    data: T
    expire_time: datetime

    def is_expired(self, now: datetime) -> bool:
        return self.expire_time <= now


def format_expire_time(expire_time: datetime) -> str:
    if expire_time.tzinfo is not None:
        expire_time = expire_time.astimezone(timezone.utc).replace(tzinfo=None)
    return expire_time.isoformat()


def parse_expire_time(value: Any) -> datetime:
    """
    Raises:
        StoreCorruptError: unparseable value
    """
    if isinstance(value, bool):
        raise StoreCorruptError("expireTime has an unsupported type", details={"value": value})
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
    if not isinstance(value, str):
        raise StoreCorruptError("expireTime has an unsupported type", details={"value": repr(value)})

    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as e:
        raise StoreCorruptError.from_exception(e, message="expireTime is not ISO-8601", value=value)

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def encode_envelope(value: Any, expire_time: datetime) -> str:
    return dumps({
        ENVELOPE_DATA_FIELD: value,
        ENVELOPE_EXPIRE_FIELD: format_expire_time(expire_time),
    })


def decode_envelope(payload: str | bytes, result_type: type[T]) -> Envelope[T]:
    """
    Raises:
        StoreCorruptError: not an object, missing fields, or bad payload
    """
    try:
        raw = orjson.loads(payload)
    except orjson.JSONDecodeError as e:
        raise StoreCorruptError.from_exception(e, message="Cached envelope is not valid JSON")

    if not isinstance(raw, dict):
        raise StoreCorruptError("Cached envelope is not a JSON object")
    if raw.get(ENVELOPE_DATA_FIELD) is None or ENVELOPE_EXPIRE_FIELD not in raw:
        raise StoreCorruptError(
            "Cached envelope is missing fields", details={"fields": sorted(raw)}
        )

    return Envelope(
        data=validate(raw[ENVELOPE_DATA_FIELD], result_type),
        expire_time=parse_expire_time(raw[ENVELOPE_EXPIRE_FIELD]),
    )
