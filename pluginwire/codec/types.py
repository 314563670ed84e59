"""Type descriptors for schema-driven dynamic values.

Descriptors travel on the wire as JSON bytes in the cty type syntax, even when
the values they describe are msgpack-encoded:

    "string" | "number" | "bool"
    ["list", T] | ["set", T] | ["map", T]
    ["object", {"name": T, ...}] | ["object", {"name": T, ...}, ["optional", ...]]
    ["tuple", [T, ...]]
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Union

from pluginwire.utils.exceptions import CodecMismatch

PRIMITIVE_KINDS = ("string", "number", "bool")


@dataclass(frozen=True, slots=True)
class Primitive:
    kind: str

    def __post_init__(self) -> None:
        if self.kind not in PRIMITIVE_KINDS:
            raise CodecMismatch(f"unsupported primitive type {self.kind!r}")


@dataclass(frozen=True, slots=True)
class List:
    element: TypeDescriptor


@dataclass(frozen=True, slots=True)
class Set:
    element: TypeDescriptor


@dataclass(frozen=True, slots=True)
class Map:
    value: TypeDescriptor


@dataclass(frozen=True, slots=True)
class Attribute:
    name: str
    type: TypeDescriptor
    optional: bool = False


@dataclass(frozen=True, slots=True)
class Object:
    """Object type; attributes keep declaration order."""

    attributes: tuple[Attribute, ...] = ()

    def __post_init__(self) -> None:
        names = [attr.name for attr in self.attributes]
        if len(names) != len(set(names)):
            raise CodecMismatch("duplicate attribute names in object type")

    @classmethod
    def of(cls, attributes: dict[str, TypeDescriptor], optional: tuple[str, ...] | list[str] = ()) -> Object:
        unknown = set(optional) - set(attributes)
        if unknown:
            raise CodecMismatch(f"optional attributes not declared: {sorted(unknown)}")
        return cls(tuple(Attribute(name, t, name in optional) for name, t in attributes.items()))

    def attribute(self, name: str) -> Attribute | None:
        for attr in self.attributes:
            if attr.name == name:
                return attr
        return None

    @property
    def names(self) -> list[str]:
        return [attr.name for attr in self.attributes]


@dataclass(frozen=True, slots=True)
class Tuple:
    elements: tuple[TypeDescriptor, ...] = ()


TypeDescriptor = Union[Primitive, List, Set, Map, Object, Tuple]

STRING = Primitive("string")
NUMBER = Primitive("number")
BOOL = Primitive("bool")


def descriptor_to_obj(descriptor: TypeDescriptor) -> Any:
    """Convert a descriptor to its JSON-compatible cty representation."""
    if isinstance(descriptor, Primitive):
        return descriptor.kind
    if isinstance(descriptor, List):
        return ["list", descriptor_to_obj(descriptor.element)]
    if isinstance(descriptor, Set):
        return ["set", descriptor_to_obj(descriptor.element)]
    if isinstance(descriptor, Map):
        return ["map", descriptor_to_obj(descriptor.value)]
    if isinstance(descriptor, Object):
        attrs = {attr.name: descriptor_to_obj(attr.type) for attr in descriptor.attributes}
        optional = [attr.name for attr in descriptor.attributes if attr.optional]
        if optional:
            return ["object", attrs, optional]
        return ["object", attrs]
    if isinstance(descriptor, Tuple):
        return ["tuple", [descriptor_to_obj(e) for e in descriptor.elements]]
    raise CodecMismatch(f"not a type descriptor: {type(descriptor).__name__}")


def descriptor_from_obj(raw: Any, path: str = "") -> TypeDescriptor:
    """Parse the cty JSON representation of a type."""
    if isinstance(raw, str):
        if raw in PRIMITIVE_KINDS:
            return Primitive(raw)
        raise CodecMismatch(f"unsupported primitive type {raw!r}", path)
    if not isinstance(raw, list) or not raw or not isinstance(raw[0], str):
        raise CodecMismatch(f"malformed type descriptor {raw!r}", path)
    kind = raw[0]
    if kind in ("list", "set", "map"):
        if len(raw) != 2:
            raise CodecMismatch(f"{kind} type takes exactly one element type", path)
        inner = descriptor_from_obj(raw[1], f"{path}<{kind}>")
        if kind == "list":
            return List(inner)
        if kind == "set":
            return Set(inner)
        return Map(inner)
    if kind == "object":
        if len(raw) not in (2, 3) or not isinstance(raw[1], dict):
            raise CodecMismatch("object type needs an attribute mapping", path)
        optional = raw[2] if len(raw) == 3 else []
        if not isinstance(optional, list) or not all(isinstance(n, str) for n in optional):
            raise CodecMismatch("object optional attributes must be a list of names", path)
        attributes = {
            str(name): descriptor_from_obj(t, f"{path}.{name}") for name, t in raw[1].items()
        }
        return Object.of(attributes, optional)
    if kind == "tuple":
        if len(raw) != 2 or not isinstance(raw[1], list):
            raise CodecMismatch("tuple type needs a list of element types", path)
        return Tuple(tuple(descriptor_from_obj(t, f"{path}[{i}]") for i, t in enumerate(raw[1])))
    raise CodecMismatch(f"unsupported type kind {kind!r}", path)


def descriptor_to_json(descriptor: TypeDescriptor) -> bytes:
    """Serialize a descriptor as JSON bytes (the wire form, whatever the value format)."""
    return json.dumps(descriptor_to_obj(descriptor), separators=(",", ":")).encode("utf-8")


def descriptor_from_json(data: bytes | str) -> TypeDescriptor:
    try:
        raw = json.loads(data)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise CodecMismatch(f"malformed type descriptor JSON: {exc}") from exc
    return descriptor_from_obj(raw)


def describe(descriptor: TypeDescriptor) -> str:
    """Human-readable form, e.g. ``map(list(string))``."""
    if isinstance(descriptor, Primitive):
        return descriptor.kind
    if isinstance(descriptor, List):
        return f"list({describe(descriptor.element)})"
    if isinstance(descriptor, Set):
        return f"set({describe(descriptor.element)})"
    if isinstance(descriptor, Map):
        return f"map({describe(descriptor.value)})"
    if isinstance(descriptor, Object):
        parts = []
        for attr in descriptor.attributes:
            inner = describe(attr.type)
            parts.append(f"{attr.name}=optional({inner})" if attr.optional else f"{attr.name}={inner}")
        return "object({" + ", ".join(parts) + "})"
    if isinstance(descriptor, Tuple):
        return "tuple([" + ", ".join(describe(e) for e in descriptor.elements) + "])"
    raise CodecMismatch(f"not a type descriptor: {type(descriptor).__name__}")
