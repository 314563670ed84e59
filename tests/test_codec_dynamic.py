"""Tests for dynamic value encode/decode in both wire formats."""

import msgpack
import pytest

from pluginwire.codec import (
    BOOL,
    NUMBER,
    STRING,
    UNKNOWN,
    DynamicValue,
    DynamicValueMessage,
    Format,
    List,
    Map,
    Object,
    Set,
    Tuple,
    decode,
    decode_json,
    decode_msgpack,
    encode,
    encode_json,
    encode_msgpack,
    parse_message,
    serialize_message,
)
from pluginwire.utils.exceptions import CodecMismatch

RESOURCE = Object.of(
    {
        "id": STRING,
        "count": NUMBER,
        "enabled": BOOL,
        "tags": Map(STRING),
        "ports": List(NUMBER),
        "zones": Set(STRING),
        "pair": Tuple((STRING, NUMBER)),
        "note": STRING,
    },
    optional=["note"],
)

RESOURCE_VALUE = {
    "id": "r-1",
    "count": 3,
    "enabled": True,
    "tags": {"env": "prod", "app": "web"},
    "ports": [80, 443],
    "zones": ["a", "b"],
    "pair": ("x", 1.5),
    "note": None,
}


@pytest.mark.parametrize("fmt", [Format.MSGPACK, Format.JSON])
def test_round_trip_preserves_value(fmt: Format) -> None:
    encoded = encode(RESOURCE_VALUE, RESOURCE, fmt)
    assert encoded.format is fmt
    assert decode(encoded, RESOURCE) == RESOURCE_VALUE


def test_default_format_is_msgpack() -> None:
    encoded = encode("hello", STRING)
    assert encoded.msgpack == msgpack.packb("hello")
    assert encoded.json == b""


def test_list_and_set_encode_identically() -> None:
    value = ["b", "a", "c"]
    assert encode_msgpack(value, List(STRING)) == encode_msgpack(value, Set(STRING))
    assert encode_json(value, List(STRING)) == encode_json(value, Set(STRING))


def test_absent_optional_attribute_written_as_explicit_null() -> None:
    obj = Object.of({"b": NUMBER, "a": STRING}, optional=["b"])
    assert encode_msgpack({"a": "x"}, obj) == msgpack.packb({"a": "x", "b": None})
    assert encode_json({"a": "x"}, obj) == b'{"a":"x","b":null}'


def test_decoded_object_carries_every_attribute() -> None:
    obj = Object.of({"a": STRING, "b": NUMBER}, optional=["b"])
    assert decode_json(b'{"a":"x"}', obj) == {"a": "x", "b": None}


def test_map_keys_are_sorted_on_the_wire() -> None:
    assert encode_json({"z": 1, "a": 2}, Map(NUMBER)) == b'{"a":2,"z":1}'


@pytest.mark.parametrize("fmt", [Format.MSGPACK, Format.JSON])
def test_non_string_map_keys_rejected(fmt: Format) -> None:
    with pytest.raises(CodecMismatch, match="map keys must be strings"):
        encode({1: "a", "b": "c"}, Map(STRING), fmt)


def test_tuple_decodes_to_python_tuple() -> None:
    descriptor = Tuple((STRING, NUMBER, BOOL))
    assert decode_msgpack(encode_msgpack(["s", 1, False], descriptor), descriptor) == ("s", 1, False)


def test_tuple_length_must_match() -> None:
    with pytest.raises(CodecMismatch):
        encode_msgpack(("s",), Tuple((STRING, NUMBER)))
    with pytest.raises(CodecMismatch):
        decode_json(b'["s",1,2]', Tuple((STRING, NUMBER)))


def test_none_encodes_as_null_for_any_type() -> None:
    for descriptor in (STRING, List(NUMBER), RESOURCE):
        assert encode_msgpack(None, descriptor) == b"\xc0"
        assert decode_msgpack(b"\xc0", descriptor) is None


def test_shape_mismatch_reports_expected_and_actual() -> None:
    with pytest.raises(CodecMismatch) as exc_info:
        decode_json(b'{"a":"b"}', List(STRING))
    assert exc_info.value.reason == "expected list(string), got mapping"


def test_mismatch_path_points_at_offending_element() -> None:
    descriptor = Object.of({"tags": Map(STRING), "ports": List(NUMBER)})
    with pytest.raises(CodecMismatch) as exc_info:
        decode_json(b'{"tags":{"x":1},"ports":[]}', descriptor)
    assert exc_info.value.path == 'tags["x"]'
    with pytest.raises(CodecMismatch) as exc_info:
        decode_json(b'{"tags":{},"ports":[1,"two"]}', descriptor)
    assert exc_info.value.path == "ports[1]"


def test_unknown_attribute_rejected_both_directions() -> None:
    obj = Object.of({"a": STRING})
    with pytest.raises(CodecMismatch, match="unsupported attribute 'z'"):
        encode_msgpack({"a": "x", "z": "y"}, obj)
    with pytest.raises(CodecMismatch, match="unsupported attribute 'z'"):
        decode_json(b'{"a":"x","z":"y"}', obj)


def test_missing_required_attribute_rejected() -> None:
    obj = Object.of({"a": STRING, "b": NUMBER})
    with pytest.raises(CodecMismatch) as exc_info:
        encode_json({"a": "x"}, obj)
    assert exc_info.value.path == "b"
    with pytest.raises(CodecMismatch):
        decode_msgpack(msgpack.packb({"a": "x"}), obj)


def test_bool_is_never_a_number() -> None:
    with pytest.raises(CodecMismatch):
        encode_msgpack(True, NUMBER)
    with pytest.raises(CodecMismatch):
        decode_json(b"true", NUMBER)
    with pytest.raises(CodecMismatch):
        decode_json(b"1", BOOL)


def test_strings_are_not_numbers_in_json() -> None:
    with pytest.raises(CodecMismatch):
        decode_json(b'"12"', NUMBER)


def test_non_finite_numbers_rejected() -> None:
    with pytest.raises(CodecMismatch):
        encode_msgpack(float("nan"), NUMBER)
    with pytest.raises(CodecMismatch):
        encode_json(float("inf"), NUMBER)


def test_big_integers_travel_as_decimal_strings_in_msgpack() -> None:
    big = 2**70
    packed = encode_msgpack(big, NUMBER)
    assert msgpack.unpackb(packed) == str(big)
    assert decode_msgpack(packed, NUMBER) == big
    assert decode_json(encode_json(big, NUMBER), NUMBER) == big


def test_decimal_string_numbers_must_be_plain_decimal() -> None:
    assert decode_msgpack(msgpack.packb("12345678901234567890123"), NUMBER) == 12345678901234567890123
    assert decode_msgpack(msgpack.packb("-12345678901234567890123"), NUMBER) == -12345678901234567890123
    assert decode_msgpack(msgpack.packb("1.5e300"), NUMBER) == 1.5e300
    for text in ("1_000", " 12", "12\n", "+5", "0x10", "\u0661\u0662", "1e999", "nan", ""):
        with pytest.raises(CodecMismatch):
            decode_msgpack(msgpack.packb(text), NUMBER)


def test_unknown_round_trips_through_msgpack_only() -> None:
    descriptor = Object.of({"id": STRING})
    packed = encode_msgpack({"id": UNKNOWN}, descriptor)
    assert decode_msgpack(packed, descriptor) == {"id": UNKNOWN}
    assert decode_msgpack(encode_msgpack(UNKNOWN, List(STRING)), List(STRING)) is UNKNOWN
    with pytest.raises(CodecMismatch):
        encode_json(UNKNOWN, STRING)


def test_unknown_extension_twelve_accepted() -> None:
    packed = msgpack.packb(msgpack.ExtType(12, b"\x80"))
    assert decode_msgpack(packed, STRING) is UNKNOWN


def test_malformed_payloads_raise_codec_mismatch() -> None:
    with pytest.raises(CodecMismatch):
        decode_msgpack(b"\xc1", STRING)
    with pytest.raises(CodecMismatch):
        decode_msgpack(b"\x92\x01", List(NUMBER))
    with pytest.raises(CodecMismatch):
        decode_json(b"{not json", STRING)


def test_decode_prefers_msgpack_when_both_present() -> None:
    value = DynamicValue(msgpack=msgpack.packb("packed"), json=b'"text"')
    assert decode(value, STRING) == "packed"


def test_decode_requires_a_payload() -> None:
    with pytest.raises(CodecMismatch):
        decode(DynamicValue(), STRING)


def test_protobuf_message_round_trip() -> None:
    encoded = encode({"a": "x"}, Object.of({"a": STRING}), Format.JSON)
    wire = serialize_message(encoded)
    assert parse_message(wire) == encoded
    message = DynamicValueMessage.FromString(wire)
    assert decode(message, Object.of({"a": STRING})) == {"a": "x"}


def test_malformed_protobuf_message_rejected() -> None:
    with pytest.raises(CodecMismatch):
        parse_message(b"\x0a\xff\xff")
