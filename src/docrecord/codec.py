"""
JSON encoding for document values that JSON cannot represent natively.

Such values are stored as single-key tagged objects, ``{"$datetime": "..."}``,
and turned back into Python values on read. Anything without a tag is
rejected before it is written.
"""
import base64
import datetime
import decimal
import enum
import json
import uuid
from typing import Any, Callable

_DECODERS: dict[str, Callable[[Any], Any]] = {
    "$datetime": datetime.datetime.fromisoformat,
    "$date": datetime.date.fromisoformat,
    "$time": datetime.time.fromisoformat,
    "$tuple": tuple,
    "$bytes": lambda payload: base64.b64decode(payload.encode("ascii")),
    "$uuid": uuid.UUID,
    "$decimal": decimal.Decimal,
    "$map": dict,
}


def encode_value(value: Any) -> Any:
    """
    Convert value to something json.dumps accepts, tagging non-JSON types.

    Raises TypeError for values with no encoding.
    """
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    # datetime before date, it is a subclass
    if isinstance(value, datetime.datetime):
        return {"$datetime": value.isoformat()}
    if isinstance(value, datetime.date):
        return {"$date": value.isoformat()}
    if isinstance(value, datetime.time):
        return {"$time": value.isoformat()}
    if isinstance(value, enum.Enum):
        # typed fields coerce the stored value back into the enum
        return encode_value(value.value)
    if isinstance(value, tuple):
        return {"$tuple": [encode_value(v) for v in value]}
    if isinstance(value, bytes):
        return {"$bytes": base64.b64encode(value).decode("ascii")}
    if isinstance(value, uuid.UUID):
        return {"$uuid": str(value)}
    if isinstance(value, decimal.Decimal):
        return {"$decimal": str(value)}
    if isinstance(value, list):
        return [encode_value(v) for v in value]
    if isinstance(value, dict):
        encoded = {}
        for key, item in value.items():
            if not isinstance(key, str):
                raise TypeError(f"document keys must be str, not {type(key).__name__}")
            encoded[key] = encode_value(item)
        if len(encoded) == 1 and next(iter(encoded)) in _DECODERS:
            # a plain dict shaped like a tag is stored as its pairs
            return {"$map": [[key, item] for key, item in encoded.items()]}
        return encoded
    raise TypeError(f"cannot store {type(value).__name__} value {value!r}")


def _decode_object(obj: dict) -> Any:
    if len(obj) == 1:
        ((tag, payload),) = obj.items()
        if tag in _DECODERS:
            return _DECODERS[tag](payload)
    return obj


def dumps(value: Any) -> str:
    return json.dumps(encode_value(value))


def loads(text: str) -> Any:
    return json.loads(text, object_hook=_decode_object)


def sort_text(value: Any) -> str:
    """
    Compact JSON text of an encoded value, as sqlite's json_extract returns it.
    """
    return json.dumps(encode_value(value), separators=(",", ":"), ensure_ascii=False)
