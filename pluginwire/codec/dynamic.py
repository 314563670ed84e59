"""Schema-driven encode/decode of dynamic values.

Values are plain Python data checked against a TypeDescriptor:

    string -> str          list/set -> list       object -> dict (every attribute)
    number -> int | float  map      -> dict       tuple  -> tuple
    bool   -> bool         null     -> None       unknown -> UNKNOWN

The wire shape alone cannot tell a map from an object or a list from a set,
so decoding always needs the descriptor.
"""

from __future__ import annotations

import json
import math
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any

import msgpack

from pluginwire.codec.types import List, Map, Object, Primitive, Set, Tuple, TypeDescriptor, describe
from pluginwire.utils.exceptions import CodecMismatch

_INT64_MIN = -(2**63)
_UINT64_MAX = 2**64 - 1
# ext type 12 is the refined-unknown form newer hosts send
_UNKNOWN_EXT_CODES = (0, 12)
# plain ASCII decimal, as the host writes it
_DECIMAL_INT = re.compile(r"-?(0|[1-9][0-9]*)")
_DECIMAL_NUMBER = re.compile(r"-?(0|[1-9][0-9]*)(\.[0-9]+)?([eE][+-]?[0-9]+)?")


class Format(str, Enum):
    MSGPACK = "msgpack"
    JSON = "json"


class _UnknownValue:
    """Placeholder for a value that is not known until apply time."""

    _instance: _UnknownValue | None = None

    def __new__(cls) -> _UnknownValue:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNKNOWN"

    def __reduce__(self) -> str:
        return "UNKNOWN"


UNKNOWN = _UnknownValue()


@dataclass(frozen=True, slots=True)
class DynamicValue:
    """Encoded value; exactly one of the two buffers is normally populated.

    Field names mirror the host's DynamicValue protobuf message so a message
    instance can be handed to ``decode`` directly.
    """

    msgpack: bytes = b""
    json: bytes = b""

    @property
    def format(self) -> Format | None:
        if self.msgpack:
            return Format.MSGPACK
        if self.json:
            return Format.JSON
        return None

    @classmethod
    def from_bytes(cls, data: bytes, fmt: Format) -> DynamicValue:
        if fmt is Format.MSGPACK:
            return cls(msgpack=data)
        return cls(json=data)


def _join(path: str, segment: str) -> str:
    return f"{path}{segment}" if path else segment.lstrip(".")


def _wire_type_name(raw: Any) -> str:
    if raw is None:
        return "null"
    if isinstance(raw, bool):
        return "bool"
    if isinstance(raw, (int, float)):
        return "number"
    if isinstance(raw, str):
        return "string"
    if isinstance(raw, (bytes, bytearray)):
        return "binary"
    if isinstance(raw, dict):
        return "mapping"
    if isinstance(raw, (list, tuple)):
        return "sequence"
    if isinstance(raw, msgpack.ExtType):
        return f"extension type {raw.code}"
    return type(raw).__name__


def _mismatch(descriptor: TypeDescriptor, raw: Any, path: str) -> CodecMismatch:
    return CodecMismatch(f"expected {describe(descriptor)}, got {_wire_type_name(raw)}", path)


# -- encoding -----------------------------------------------------------------


def _to_wire(value: Any, descriptor: TypeDescriptor, fmt: Format, path: str) -> Any:
    if value is UNKNOWN:
        if fmt is Format.JSON:
            raise CodecMismatch("unknown values cannot be encoded as JSON", path)
        return msgpack.ExtType(0, b"\x00")
    if value is None:
        return None

    if isinstance(descriptor, Primitive):
        return _primitive_to_wire(value, descriptor, fmt, path)

    if isinstance(descriptor, (List, Set)):
        if not isinstance(value, (list, tuple)):
            raise _mismatch(descriptor, value, path)
        return [_to_wire(item, descriptor.element, fmt, _join(path, f"[{i}]")) for i, item in enumerate(value)]

    if isinstance(descriptor, Map):
        if not isinstance(value, dict):
            raise _mismatch(descriptor, value, path)
        bad_keys = [k for k in value if not isinstance(k, str)]
        if bad_keys:
            raise CodecMismatch(f"map keys must be strings, got {type(bad_keys[0]).__name__}", path)
        out: dict[str, Any] = {}
        for key in sorted(value):
            out[key] = _to_wire(value[key], descriptor.value, fmt, _join(path, f"[{json.dumps(key)}]"))
        return out

    if isinstance(descriptor, Object):
        if not isinstance(value, dict):
            raise _mismatch(descriptor, value, path)
        unknown = [k for k in value if descriptor.attribute(k) is None]
        if unknown:
            raise CodecMismatch(f"unsupported attribute {sorted(map(str, unknown))[0]!r}", path)
        out = {}
        for attr in sorted(descriptor.attributes, key=lambda a: a.name):
            if attr.name not in value:
                if not attr.optional:
                    raise CodecMismatch("missing required attribute", _join(path, f".{attr.name}"))
                out[attr.name] = None
                continue
            out[attr.name] = _to_wire(value[attr.name], attr.type, fmt, _join(path, f".{attr.name}"))
        return out

    if isinstance(descriptor, Tuple):
        if not isinstance(value, (list, tuple)):
            raise _mismatch(descriptor, value, path)
        if len(value) != len(descriptor.elements):
            raise CodecMismatch(
                f"tuple needs exactly {len(descriptor.elements)} elements, got {len(value)}", path
            )
        return [
            _to_wire(item, element, fmt, _join(path, f"[{i}]"))
            for i, (item, element) in enumerate(zip(value, descriptor.elements))
        ]

    raise CodecMismatch(f"not a type descriptor: {type(descriptor).__name__}", path)


def _primitive_to_wire(value: Any, descriptor: Primitive, fmt: Format, path: str) -> Any:
    if descriptor.kind == "string":
        if not isinstance(value, str):
            raise _mismatch(descriptor, value, path)
        return value
    if descriptor.kind == "bool":
        if not isinstance(value, bool):
            raise _mismatch(descriptor, value, path)
        return value
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise _mismatch(descriptor, value, path)
    if isinstance(value, float) and not math.isfinite(value):
        raise CodecMismatch(f"number must be finite, got {value!r}", path)
    if isinstance(value, int) and fmt is Format.MSGPACK and not _INT64_MIN <= value <= _UINT64_MAX:
        return str(value)
    return value


def encode_msgpack(value: Any, descriptor: TypeDescriptor) -> bytes:
    return msgpack.packb(_to_wire(value, descriptor, Format.MSGPACK, ""), use_bin_type=True)


def encode_json(value: Any, descriptor: TypeDescriptor) -> bytes:
    tree = _to_wire(value, descriptor, Format.JSON, "")
    return json.dumps(tree, separators=(",", ":"), ensure_ascii=False, allow_nan=False).encode("utf-8")


def encode(value: Any, descriptor: TypeDescriptor, fmt: Format = Format.MSGPACK) -> DynamicValue:
    """Encode a value for the wire; msgpack unless told otherwise."""
    if fmt is Format.JSON:
        return DynamicValue(json=encode_json(value, descriptor))
    return DynamicValue(msgpack=encode_msgpack(value, descriptor))


# -- decoding -----------------------------------------------------------------


def _from_wire(raw: Any, descriptor: TypeDescriptor, fmt: Format, path: str) -> Any:
    if raw is UNKNOWN:
        return UNKNOWN
    if raw is None:
        return None

    if isinstance(descriptor, Primitive):
        return _primitive_from_wire(raw, descriptor, fmt, path)

    if isinstance(descriptor, (List, Set)):
        if not isinstance(raw, list):
            raise _mismatch(descriptor, raw, path)
        return [_from_wire(item, descriptor.element, fmt, _join(path, f"[{i}]")) for i, item in enumerate(raw)]

    if isinstance(descriptor, Map):
        if not isinstance(raw, dict):
            raise _mismatch(descriptor, raw, path)
        return {
            key: _from_wire(item, descriptor.value, fmt, _join(path, f"[{json.dumps(key)}]"))
            for key, item in raw.items()
        }

    if isinstance(descriptor, Object):
        if not isinstance(raw, dict):
            raise _mismatch(descriptor, raw, path)
        for key in raw:
            if descriptor.attribute(key) is None:
                raise CodecMismatch(f"unsupported attribute {key!r}", path)
        out: dict[str, Any] = {}
        for attr in descriptor.attributes:
            attr_path = _join(path, f".{attr.name}")
            if attr.name not in raw:
                if not attr.optional:
                    raise CodecMismatch("missing required attribute", attr_path)
                out[attr.name] = None
                continue
            out[attr.name] = _from_wire(raw[attr.name], attr.type, fmt, attr_path)
        return out

    if isinstance(descriptor, Tuple):
        if not isinstance(raw, list):
            raise _mismatch(descriptor, raw, path)
        if len(raw) != len(descriptor.elements):
            raise CodecMismatch(
                f"tuple needs exactly {len(descriptor.elements)} elements, got {len(raw)}", path
            )
        return tuple(
            _from_wire(item, element, fmt, _join(path, f"[{i}]"))
            for i, (item, element) in enumerate(zip(raw, descriptor.elements))
        )

    raise CodecMismatch(f"not a type descriptor: {type(descriptor).__name__}", path)


def _primitive_from_wire(raw: Any, descriptor: Primitive, fmt: Format, path: str) -> Any:
    if descriptor.kind == "string":
        if not isinstance(raw, str):
            raise _mismatch(descriptor, raw, path)
        return raw
    if descriptor.kind == "bool":
        if not isinstance(raw, bool):
            raise _mismatch(descriptor, raw, path)
        return raw
    if isinstance(raw, bool):
        raise _mismatch(descriptor, raw, path)
    if isinstance(raw, (int, float)):
        return raw
    if isinstance(raw, str) and fmt is Format.MSGPACK:
        # big numbers arrive as decimal strings
        if _DECIMAL_INT.fullmatch(raw):
            return int(raw)
        if not _DECIMAL_NUMBER.fullmatch(raw):
            raise CodecMismatch(f"invalid number {raw!r}", path)
        number = float(raw)
        if not math.isfinite(number):
            raise CodecMismatch(f"number must be finite, got {raw!r}", path)
        return number
    raise _mismatch(descriptor, raw, path)


def _ext_hook(code: int, data: bytes) -> Any:
    if code in _UNKNOWN_EXT_CODES:
        return UNKNOWN
    return msgpack.ExtType(code, data)


def decode_msgpack(data: bytes, descriptor: TypeDescriptor) -> Any:
    try:
        raw = msgpack.unpackb(data, raw=False, ext_hook=_ext_hook)
    except (ValueError, msgpack.UnpackException) as exc:
        raise CodecMismatch(f"malformed msgpack payload: {exc}") from exc
    return _from_wire(raw, descriptor, Format.MSGPACK, "")


def decode_json(data: bytes, descriptor: TypeDescriptor) -> Any:
    try:
        raw = json.loads(data)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise CodecMismatch(f"malformed JSON payload: {exc}") from exc
    return _from_wire(raw, descriptor, Format.JSON, "")


def decode(value: Any, descriptor: TypeDescriptor) -> Any:
    """Decode a DynamicValue (or any object with msgpack/json bytes fields)."""
    packed = getattr(value, "msgpack", b"") or b""
    text = getattr(value, "json", b"") or b""
    if packed:
        return decode_msgpack(packed, descriptor)
    if text:
        return decode_json(text, descriptor)
    raise CodecMismatch("dynamic value carries neither msgpack nor json data")
