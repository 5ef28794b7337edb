from __future__ import annotations

from decimal import Decimal

import pytest
from boto3.dynamodb.types import Binary

from schemadb_py.codec import (
    MAX_NESTED_DEPTH,
    decode_item,
    decode_number,
    decode_value,
    encode_attribute,
    encode_item,
    encode_number,
    encode_value,
)
from schemadb_py.errors import DecodeError, SchemaError, TypeMismatchError, UnsupportedTypeError, ValidationError
from schemadb_py.schema import TableSchema, TypeTag


def _users() -> TableSchema:
    return TableSchema(
        logical_name="users",
        physical_name="users-dev",
        hash_key_attr="userId",
        range_key_attr="date",
        attribute_types={
            "userId": "S",
            "date": "N",
            "active": "BOOL",
            "deleted": "NULL",
            "avatar": "B",
            "tags": "SS",
            "scores": "NS",
            "blobs": "BS",
            "history": "L",
            "profile": "M",
        },
    )


def test_schema_round_trip_preserves_item() -> None:
    schema = _users()
    item = {
        "userId": "u1",
        "date": 20240101,
        "active": True,
        "deleted": None,
        "avatar": b"\x00\x01",
        "tags": ["a", "b"],
        "scores": [1, 2.5],
        "blobs": [b"x"],
        "history": [1, "two", {"three": [3]}],
        "profile": {"name": "Ann", "age": 31, "nested": {"ok": False}},
    }

    wire = encode_item(item, schema)

    assert wire["userId"] == {"S": "u1"}
    assert wire["date"] == {"N": "20240101"}
    assert wire["deleted"] == {"NULL": True}
    assert wire["tags"] == {"SS": ["a", "b"]}
    assert wire["scores"] == {"NS": ["1", "2.5"]}
    assert wire["history"]["L"][2] == {"M": {"three": {"L": [{"N": "3"}]}}}
    assert decode_item(wire) == item


def test_number_attribute_rejects_string() -> None:
    with pytest.raises(TypeMismatchError) as exc:
        encode_attribute(_users(), "date", "2024-01-01")

    assert exc.value.table == "users"
    assert exc.value.attribute == "date"
    assert exc.value.expected == "N"
    assert exc.value.actual == "str"


@pytest.mark.parametrize(
    ("attribute", "value"),
    [
        ("date", True),
        ("userId", 1),
        ("active", 1),
        ("deleted", ""),
        ("avatar", "bytes"),
        ("tags", "a"),
        ("tags", ["a", 1]),
        ("tags", {"a"}),
        ("scores", frozenset({1})),
        ("scores", [True]),
        ("history", {"a": 1}),
        ("profile", [1]),
    ],
)
def test_typed_encoding_never_coerces(attribute: str, value: object) -> None:
    with pytest.raises(TypeMismatchError):
        encode_attribute(_users(), attribute, value)


def test_undeclared_attribute_is_schema_error() -> None:
    with pytest.raises(SchemaError, match='attribute "nickname" is not defined for table "users"'):
        encode_item({"userId": "u1", "date": 1, "nickname": "x"}, _users())


def test_encode_item_requires_mapping() -> None:
    with pytest.raises(ValidationError, match="item must be a map"):
        encode_item([("a", 1)])  # type: ignore[arg-type]


def test_schema_free_encoding_infers_tags() -> None:
    assert encode_value("s") == {"S": "s"}
    assert encode_value(1) == {"N": "1"}
    assert encode_value(Decimal("1.50")) == {"N": "1.50"}
    assert encode_value(False) == {"BOOL": False}
    assert encode_value(None) == {"NULL": True}
    assert encode_value(b"a") == {"B": b"a"}
    assert encode_value(Binary(b"a")) == {"B": b"a"}
    assert encode_value((1, "a")) == {"L": [{"N": "1"}, {"S": "a"}]}
    assert encode_value({"k": []}) == {"M": {"k": {"L": []}}}


def test_schema_free_encoding_rejects_sets_and_unknown_shapes() -> None:
    with pytest.raises(UnsupportedTypeError):
        encode_value({"a", "b"})
    with pytest.raises(UnsupportedTypeError):
        encode_value(object())
    with pytest.raises(UnsupportedTypeError, match="map keys must be strings"):
        encode_value({1: "a"})


def test_encode_number_formats() -> None:
    assert encode_number(10) == "10"
    assert encode_number(-3) == "-3"
    assert encode_number(0.1) == "0.1"
    assert encode_number(Decimal("1E+2")) == "100"

    with pytest.raises(UnsupportedTypeError):
        encode_number(float("nan"))
    with pytest.raises(UnsupportedTypeError):
        encode_number(float("inf"))


def test_decode_number_prefers_int_then_float_then_decimal() -> None:
    assert decode_number("42", path="n") == 42
    assert isinstance(decode_number("42", path="n"), int)
    assert decode_number("1.5", path="n") == 1.5
    assert isinstance(decode_number("1.5", path="n"), float)
    assert decode_number("1.50", path="n") == Decimal("1.50")
    assert isinstance(decode_number("1.50", path="n"), Decimal)

    with pytest.raises(DecodeError, match="numeric string"):
        decode_number("abc", path="n")


@pytest.mark.parametrize(
    ("wire", "match"),
    [
        ({"S": "a", "N": "1"}, "single-key map"),
        ({}, "single-key map"),
        ("S", "single-key map"),
        ({"S": 1}, "S value must be a string"),
        ({"BOOL": "true"}, "BOOL value must be a boolean"),
        ({"NULL": False}, "NULL value must be true"),
        ({"B": "abc"}, "B value must be bytes"),
        ({"SS": ["a", 1]}, "SS value must be a list of strings"),
        ({"NS": "1"}, "NS value must be a list"),
        ({"BS": ["a"]}, "BS value must be a list of bytes"),
        ({"L": {}}, "L value must be a list"),
        ({"M": []}, "M value must be a map"),
        ({"X": 1}, "unsupported attribute value type: X"),
    ],
)
def test_decode_rejects_malformed_wire_values(wire: object, match: str) -> None:
    with pytest.raises(DecodeError, match=match):
        decode_value(wire)


def test_set_tags_decode_in_wire_order_without_dedupe() -> None:
    assert decode_value({"SS": ["b", "a", "b"]}) == ["b", "a", "b"]
    assert decode_value({"NS": ["3", "1", "3"]}) == [3, 1, 3]
    assert decode_value({"BS": [b"y", b"x", b"y"]}) == [b"y", b"x", b"y"]

    item = decode_item({"tags": {"SS": ["z", "a"]}, "scores": {"NS": ["2.5", "1"]}})
    assert item == {"tags": ["z", "a"], "scores": [2.5, 1]}


def test_set_tags_accept_only_ordered_containers() -> None:
    assert encode_attribute(_users(), "tags", ("b", "a")) == {"SS": ["b", "a"]}
    with pytest.raises(TypeMismatchError) as exc:
        encode_attribute(_users(), "tags", {"a"})
    assert exc.value.actual == "set"


def test_decode_item_reports_attribute_path() -> None:
    with pytest.raises(DecodeError, match=r"profile\.age"):
        decode_item({"profile": {"M": {"age": {"N": "x"}}}})

    with pytest.raises(DecodeError, match="item must be a map"):
        decode_item([])


def _nested_list(levels: int) -> object:
    value: object = "leaf"
    for _ in range(levels):
        value = [value]
    return value


def _nested_wire(levels: int) -> dict:
    value: dict = {"S": "leaf"}
    for _ in range(levels):
        value = {"L": [value]}
    return value


def test_nesting_depth_is_bounded() -> None:
    assert decode_item(encode_item({"deep": _nested_list(5)})) == {"deep": _nested_list(5)}

    with pytest.raises(UnsupportedTypeError, match=f"maximum depth of {MAX_NESTED_DEPTH}"):
        encode_item({"deep": _nested_list(MAX_NESTED_DEPTH + 5)})

    with pytest.raises(DecodeError, match=f"maximum depth of {MAX_NESTED_DEPTH}"):
        decode_item({"deep": _nested_wire(MAX_NESTED_DEPTH + 5)})


def test_type_tag_parse() -> None:
    assert TypeTag.parse("s") is TypeTag.STRING
    assert TypeTag.parse(TypeTag.MAP) is TypeTag.MAP
    with pytest.raises(SchemaError, match="unsupported attribute type"):
        TypeTag.parse("DATE")
