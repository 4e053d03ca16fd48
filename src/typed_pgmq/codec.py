"""
Message codec: payload values to JSON text for ``jsonb`` columns, and back.

Encoding goes through orjson, which writes dataclasses, datetimes and UUIDs
natively; pydantic models are dumped in JSON mode. Field names are written
exactly as declared.

Decoding parses with orjson and, when a target type is requested, validates
the parsed value with a pydantic ``TypeAdapter`` so dataclasses, models,
TypedDicts, containers and datetimes come back as the declared type.

``str`` is special-cased both ways: a string payload is taken to already be
a JSON document and is stored verbatim, and decoding to ``str`` hands back
the stored text without parsing it.
"""

import functools
from typing import Any, Optional, Type, TypeVar, Union

import orjson
from pydantic import BaseModel, TypeAdapter, ValidationError

from typed_pgmq.errors import PGMQCodecError

T = TypeVar("T")


def _orjson_default(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    raise TypeError(f"Type is not JSON serializable: {type(value).__name__}")


@functools.lru_cache(maxsize=256)
def _cached_adapter(message_type: Any) -> TypeAdapter:
    return TypeAdapter(message_type)


def type_adapter(message_type: Any) -> TypeAdapter:
    """Return a (cached where possible) TypeAdapter for ``message_type``."""
    try:
        hash(message_type)
    except TypeError:
        return TypeAdapter(message_type)
    return _cached_adapter(message_type)


class MessageCodec:
    """Stateless JSON codec shared by the sync and async clients."""

    @staticmethod
    def is_passthrough(value: Any, message_type: Optional[Any] = None) -> bool:
        if message_type is not None:
            return message_type is str
        return isinstance(value, str)

    def encode(self, value: Any, message_type: Optional[Any] = None) -> str:
        """
        Serialize ``value`` to JSON text.

        With ``message_type=str`` (or an untyped ``str`` value) the value is
        returned unchanged, and ``None`` becomes the empty string rather
        than ``"null"``.
        """
        if self.is_passthrough(value, message_type):
            return "" if value is None else value
        try:
            return orjson.dumps(value, default=_orjson_default).decode("utf-8")
        except TypeError as e:
            raise PGMQCodecError(f"Cannot encode message payload: {e}", e) from e

    def encode_many(self, values, message_type: Optional[Any] = None) -> list:
        return [self.encode(value, message_type) for value in values]

    def decode(
        self,
        text: Union[str, bytes, Any, None],
        message_type: Optional[Type[T]] = None,
    ) -> Optional[T]:
        """
        Deserialize stored JSON into ``message_type``.

        ``message_type=str`` returns the stored text as-is. ``None`` returns
        the parsed JSON value. SQL NULL and JSON ``null`` decode to ``None``.
        """
        if message_type is str:
            return text
        if text is None:
            return None
        try:
            value = orjson.loads(text) if isinstance(text, (str, bytes)) else text
            if value is None or message_type is None:
                return value
            return type_adapter(message_type).validate_python(value)
        except (orjson.JSONDecodeError, ValidationError) as e:
            name = getattr(message_type, "__name__", repr(message_type))
            raise PGMQCodecError(f"Cannot decode message payload as {name}: {e}", e) from e


default_codec = MessageCodec()
