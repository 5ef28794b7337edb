from __future__ import annotations

import math
import re
from collections.abc import Mapping
from decimal import Decimal, DecimalException, InvalidOperation
from typing import Any

from boto3.dynamodb.types import DYNAMODB_CONTEXT, Binary, TypeDeserializer, TypeSerializer

from .errors import DecodeError, SchemaError, TypeMismatchError, UnsupportedTypeError, ValidationError
from .schema import TableSchema, TypeTag

# Matches the store's own limit on document nesting.
MAX_NESTED_DEPTH = 32

type WireValue = dict[str, Any]
type WireItem = dict[str, WireValue]

_NUMBER_LITERAL = re.compile(r"^-?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")
_INT_LITERAL = re.compile(r"^-?\d+$")

_SET_CONTAINERS = (list, tuple)
_BINARY_TYPES = (bytes, bytearray, Binary)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def _is_binary(value: Any) -> bool:
    return isinstance(value, _BINARY_TYPES)


def _to_bytes(value: Any) -> bytes:
    if isinstance(value, Binary):
        return bytes(value.value)
    return bytes(value)


def encode_number(value: int | float | Decimal) -> str:
    if isinstance(value, float):
        if not math.isfinite(value):
            raise UnsupportedTypeError(f"number is not finite: {value!r}")
        raw: Any = repr(value)
    else:
        raw = value

    try:
        dec = DYNAMODB_CONTEXT.create_decimal(raw)
    except DecimalException as err:
        raise UnsupportedTypeError(f"number cannot be stored without loss: {value!r}") from err
    if not dec.is_finite():
        raise UnsupportedTypeError(f"number is not finite: {value!r}")
    return format(dec, "f")


def _check_number_literal(raw: Any, *, path: str) -> None:
    if not isinstance(raw, str) or _NUMBER_LITERAL.match(raw) is None:
        raise DecodeError(f"{path}: N value must be a numeric string (got {raw!r})")


def decode_number(raw: Any, *, path: str) -> int | float | Decimal:
    _check_number_literal(raw, path=path)

    if _INT_LITERAL.match(raw):
        return int(raw)

    try:
        dec = Decimal(raw)
    except InvalidOperation as err:  # pragma: no cover
        raise DecodeError(f"{path}: N value must be a numeric string (got {raw!r})") from err

    as_float = float(dec)
    if _float_round_trips(as_float, raw):
        return as_float
    return dec


def _float_round_trips(value: float, raw: str) -> bool:
    if not math.isfinite(value):
        return False
    try:
        return encode_number(value) == raw
    except UnsupportedTypeError:
        return False


class _WireSerializer(TypeSerializer):
    """``TypeSerializer`` that also stores floats and always emits ``bytes`` for B."""

    def _is_number(self, value: Any) -> bool:
        return _is_number(value)

    def _serialize_n(self, value: Any) -> str:
        return encode_number(value)

    def _serialize_b(self, value: Any) -> bytes:
        return _to_bytes(value)


class _WireDeserializer(TypeDeserializer):
    """``TypeDeserializer`` returning int/float where exact and sets as wire-ordered lists."""

    def _deserialize_n(self, value: Any) -> int | float | Decimal:
        return decode_number(value, path="N")

    def _deserialize_b(self, value: Any) -> bytes:
        return _to_bytes(value)

    def _deserialize_ss(self, value: Any) -> list[str]:
        return list(value)

    def _deserialize_ns(self, value: Any) -> list[int | float | Decimal]:
        return [self._deserialize_n(v) for v in value]

    def _deserialize_bs(self, value: Any) -> list[bytes]:
        return [_to_bytes(v) for v in value]


_serializer = _WireSerializer()
_deserializer = _WireDeserializer()


def _check_native(value: Any, *, path: str, depth: int) -> None:
    if depth > MAX_NESTED_DEPTH:
        raise UnsupportedTypeError(f"{path}: nesting exceeds maximum depth of {MAX_NESTED_DEPTH}")

    if value is None or isinstance(value, (bool, str)) or _is_number(value) or _is_binary(value):
        return
    if isinstance(value, (list, tuple)):
        for i, v in enumerate(value):
            _check_native(v, path=f"{path}[{i}]", depth=depth + 1)
        return
    if isinstance(value, Mapping):
        for k, v in value.items():
            if not isinstance(k, str):
                raise UnsupportedTypeError(f"{path}: map keys must be strings (got {type(k).__name__})")
            _check_native(v, path=f"{path}.{k}", depth=depth + 1)
        return

    raise UnsupportedTypeError(f"{path}: unsupported value type: {type(value).__name__}")


def encode_value(value: Any, *, path: str = "value", depth: int = 0) -> WireValue:
    """Encode a native value by inferring its wire tag from its runtime shape.

    Shapes and nesting are checked here; tagging is left to ``TypeSerializer``.
    Sets are rejected: without a schema there is no way to tell SS from L.
    """
    _check_native(value, path=path, depth=depth)
    return _serializer.serialize(value)


def encode_typed(value: Any, tag: TypeTag, *, table: str, attribute: str) -> WireValue:
    """Encode a value under its declared tag; the runtime shape must match exactly."""

    def mismatch(actual: str | None = None) -> TypeMismatchError:
        return TypeMismatchError(
            table=table,
            attribute=attribute,
            expected=tag.value,
            actual=actual or type(value).__name__,
        )

    def check_members(predicate: Any, what: str) -> list[Any]:
        if not isinstance(value, _SET_CONTAINERS):
            raise mismatch()
        members = list(value)
        for member in members:
            if not predicate(member):
                raise mismatch(f"{type(value).__name__} containing {type(member).__name__} (expected {what})")
        return members

    match tag:
        case TypeTag.STRING:
            if not isinstance(value, str):
                raise mismatch()
            return _serializer.serialize(value)
        case TypeTag.NUMBER:
            if not _is_number(value):
                raise mismatch()
            return _serializer.serialize(value)
        case TypeTag.BOOL:
            if not isinstance(value, bool):
                raise mismatch()
            return _serializer.serialize(value)
        case TypeTag.NULL:
            if value is not None:
                raise mismatch()
            return _serializer.serialize(value)
        case TypeTag.BINARY:
            if not _is_binary(value):
                raise mismatch()
            return _serializer.serialize(_to_bytes(value))
        case TypeTag.STRING_SET:
            return {"SS": check_members(lambda m: isinstance(m, str), "str")}
        case TypeTag.NUMBER_SET:
            return {"NS": [encode_number(m) for m in check_members(_is_number, "number")]}
        case TypeTag.BINARY_SET:
            return {"BS": [_to_bytes(m) for m in check_members(_is_binary, "bytes")]}
        case TypeTag.LIST:
            if not isinstance(value, (list, tuple)):
                raise mismatch()
            return encode_value(value, path=attribute, depth=1)
        case TypeTag.MAP:
            if not isinstance(value, Mapping):
                raise mismatch()
            return encode_value(value, path=attribute, depth=1)

    raise SchemaError(f"unsupported attribute type {tag!r} for {table}.{attribute}")  # pragma: no cover


def encode_attribute(schema: TableSchema, attribute: str, value: Any) -> WireValue:
    return encode_typed(value, schema.type_of(attribute), table=schema.logical_name, attribute=attribute)


def encode_item(item: Mapping[str, Any], schema: TableSchema | None = None) -> WireItem:
    if not isinstance(item, Mapping):
        raise ValidationError(f"item must be a map (got {type(item).__name__})")

    if schema is None:
        out: WireItem = {}
        for k, v in item.items():
            if not isinstance(k, str):
                raise UnsupportedTypeError(f"item: attribute names must be strings (got {type(k).__name__})")
            out[k] = encode_value(v, path=k, depth=1)
        return out

    return {str(k): encode_attribute(schema, str(k), v) for k, v in item.items()}


def _single_key(av: Any, *, path: str) -> tuple[str, Any]:
    if not isinstance(av, Mapping) or len(av) != 1:
        raise DecodeError(f"{path}: attribute value must be a single-key map")
    ((kind, payload),) = av.items()
    return str(kind), payload


def _check_wire(av: Any, *, path: str, depth: int) -> None:
    if depth > MAX_NESTED_DEPTH:
        raise DecodeError(f"{path}: nesting exceeds maximum depth of {MAX_NESTED_DEPTH}")

    kind, payload = _single_key(av, path=path)

    if kind == "S":
        if not isinstance(payload, str):
            raise DecodeError(f"{path}: S value must be a string")
    elif kind == "N":
        _check_number_literal(payload, path=path)
    elif kind == "BOOL":
        if not isinstance(payload, bool):
            raise DecodeError(f"{path}: BOOL value must be a boolean")
    elif kind == "NULL":
        if payload is not True:
            raise DecodeError(f"{path}: NULL value must be true")
    elif kind == "B":
        if not _is_binary(payload):
            raise DecodeError(f"{path}: B value must be bytes")
    elif kind == "SS":
        if not isinstance(payload, list) or not all(isinstance(v, str) for v in payload):
            raise DecodeError(f"{path}: SS value must be a list of strings")
    elif kind == "NS":
        if not isinstance(payload, list):
            raise DecodeError(f"{path}: NS value must be a list of numeric strings")
        for i, v in enumerate(payload):
            _check_number_literal(v, path=f"{path}[{i}]")
    elif kind == "BS":
        if not isinstance(payload, list) or not all(_is_binary(v) for v in payload):
            raise DecodeError(f"{path}: BS value must be a list of bytes")
    elif kind == "L":
        if not isinstance(payload, list):
            raise DecodeError(f"{path}: L value must be a list")
        for i, v in enumerate(payload):
            _check_wire(v, path=f"{path}[{i}]", depth=depth + 1)
    elif kind == "M":
        if not isinstance(payload, Mapping):
            raise DecodeError(f"{path}: M value must be a map")
        for k, v in payload.items():
            _check_wire(v, path=f"{path}.{k}", depth=depth + 1)
    else:
        raise DecodeError(f"{path}: unsupported attribute value type: {kind}")


def decode_value(av: Any, *, path: str = "value", depth: int = 0) -> Any:
    """Validate a wire value, then convert it with ``TypeDeserializer``."""
    _check_wire(av, path=path, depth=depth)
    return _deserializer.deserialize(av)


def decode_item(wire: Any) -> dict[str, Any]:
    if not isinstance(wire, Mapping):
        raise DecodeError("item must be a map")
    return {str(k): decode_value(v, path=str(k), depth=1) for k, v in wire.items()}

