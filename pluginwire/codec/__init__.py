"""Typed-value codec: type descriptors and dynamic values."""

from .dynamic import (
    UNKNOWN,
    DynamicValue,
    Format,
    decode,
    decode_json,
    decode_msgpack,
    encode,
    encode_json,
    encode_msgpack,
)
from .message import DynamicValueMessage, parse_message, serialize_message
from .types import (
    BOOL,
    NUMBER,
    STRING,
    Attribute,
    List,
    Map,
    Object,
    Primitive,
    Set,
    Tuple,
    TypeDescriptor,
    describe,
    descriptor_from_json,
    descriptor_to_json,
)

__all__ = [
    "UNKNOWN",
    "DynamicValue",
    "Format",
    "encode",
    "decode",
    "encode_msgpack",
    "decode_msgpack",
    "encode_json",
    "decode_json",
    "TypeDescriptor",
    "Primitive",
    "List",
    "Set",
    "Map",
    "Object",
    "Attribute",
    "Tuple",
    "STRING",
    "NUMBER",
    "BOOL",
    "describe",
    "DynamicValueMessage",
    "parse_message",
    "serialize_message",
    "descriptor_to_json",
    "descriptor_from_json",
]
