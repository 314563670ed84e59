"""Protobuf form of DynamicValue.

Field numbers match the host protocol's ``DynamicValue`` message
(``bytes msgpack = 1; bytes json = 2;``), so bytes produced here are accepted
wherever the host expects one. The descriptor is built at import time; no
generated code is needed.
"""

from __future__ import annotations

from google.protobuf import descriptor_pb2, descriptor_pool, message_factory

from pluginwire.codec.dynamic import DynamicValue
from pluginwire.utils.exceptions import CodecMismatch


def _build_message_class():
    proto = descriptor_pb2.FileDescriptorProto(
        name="pluginwire/dynamic_value.proto",
        package="pluginwire",
        syntax="proto3",
    )
    msg = proto.message_type.add(name="DynamicValue")
    for number, name in ((1, "msgpack"), (2, "json")):
        msg.field.add(
            name=name,
            number=number,
            type=descriptor_pb2.FieldDescriptorProto.TYPE_BYTES,
            label=descriptor_pb2.FieldDescriptorProto.LABEL_OPTIONAL,
        )
    pool = descriptor_pool.DescriptorPool()
    pool.AddSerializedFile(proto.SerializeToString())
    return message_factory.GetMessageClass(pool.FindMessageTypeByName("pluginwire.DynamicValue"))


DynamicValueMessage = _build_message_class()


def to_message(value: DynamicValue):
    return DynamicValueMessage(msgpack=value.msgpack, json=value.json)


def from_message(message) -> DynamicValue:
    return DynamicValue(msgpack=bytes(message.msgpack), json=bytes(message.json))


def parse_message(data: bytes) -> DynamicValue:
    try:
        return from_message(DynamicValueMessage.FromString(data))
    except Exception as exc:  # protobuf raises DecodeError or RuntimeError depending on backend
        raise CodecMismatch(f"malformed DynamicValue message: {exc}") from exc


def serialize_message(value: DynamicValue) -> bytes:
    return to_message(value).SerializeToString()
