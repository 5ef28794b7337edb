from __future__ import annotations

import re
from collections.abc import Callable, Container, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from .codec import WireValue, encode_value
from .errors import ValidationError

_PLACEHOLDER_UNSAFE = re.compile(r"[^A-Za-z0-9_]")

_COMPARISONS = {"gt": ">", "lt": "<", "ge": ">=", "le": "<="}

RANGE_OPERATIONS = ("between", "gt", "lt", "ge", "le", "begins_with", "equals")


@dataclass(frozen=True)
class RangeCondition:
    operation: str
    value: Any

    @staticmethod
    def between(low: Any, high: Any) -> RangeCondition:
        return RangeCondition(operation="between", value=(low, high))

    @staticmethod
    def gt(value: Any) -> RangeCondition:
        return RangeCondition(operation="gt", value=value)

    @staticmethod
    def lt(value: Any) -> RangeCondition:
        return RangeCondition(operation="lt", value=value)

    @staticmethod
    def ge(value: Any) -> RangeCondition:
        return RangeCondition(operation="ge", value=value)

    @staticmethod
    def le(value: Any) -> RangeCondition:
        return RangeCondition(operation="le", value=value)

    @staticmethod
    def begins_with(prefix: str) -> RangeCondition:
        return RangeCondition(operation="begins_with", value=prefix)

    @staticmethod
    def equals(value: Any) -> RangeCondition:
        return RangeCondition(operation="equals", value=value)

    @staticmethod
    def coerce(raw: RangeCondition | Mapping[str, Any]) -> RangeCondition:
        if isinstance(raw, RangeCondition):
            return raw
        if isinstance(raw, Mapping):
            if "operation" not in raw or "value" not in raw:
                raise ValidationError("range condition requires operation and value")
            return RangeCondition(operation=raw["operation"], value=raw["value"])
        raise ValidationError(f"invalid range condition: {type(raw).__name__}")


@dataclass(frozen=True)
class Projection:
    expression: str
    names: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class Expression:
    expression: str
    names: dict[str, str] = field(default_factory=dict)
    values: dict[str, WireValue] = field(default_factory=dict)


def _alias(
    attribute: str,
    prefix: str,
    taken: Mapping[str, str],
    taken_values: Container[str] = (),
) -> str:
    base = _PLACEHOLDER_UNSAFE.sub("_", attribute) or "_"
    candidate = base
    suffix = 1
    while True:
        existing = taken.get(prefix + candidate)
        if (existing is None or existing == attribute) and ":" + candidate not in taken_values:
            return candidate
        suffix += 1
        candidate = f"{base}_{suffix}"


def _split_fields(fields: str | Sequence[str]) -> list[str]:
    raw = fields.split(",") if isinstance(fields, str) else list(fields)
    out: list[str] = []
    for f in raw:
        if not isinstance(f, str):
            raise ValidationError(f"projection fields must be strings (got {type(f).__name__})")
        name = f.strip()
        if name and name not in out:
            out.append(name)
    return out


def build_projection(fields: str | Sequence[str], *, taken: Mapping[str, str] | None = None) -> Projection:
    """Alias every projected field to a ``#<field>`` placeholder.

    ``taken`` holds name placeholders already bound in the request; a field
    reuses a placeholder bound to itself and never shadows another binding.
    """
    names_in_use = dict(taken or {})
    refs: list[str] = []
    names: dict[str, str] = {}

    for attribute in _split_fields(fields):
        ref = "#" + _alias(attribute, "#", names_in_use)
        names_in_use[ref] = attribute
        names[ref] = attribute
        refs.append(ref)

    if not refs:
        raise ValidationError("projection requires at least one field")
    return Projection(expression=", ".join(refs), names=names)


def build_key_condition(
    hash_attr: str,
    hash_value: Any,
    range_condition: RangeCondition | Mapping[str, Any] | None = None,
    *,
    range_attr: str | None = None,
    encode: Callable[[str, Any], WireValue] | None = None,
) -> Expression:
    def enc(attribute: str, value: Any) -> WireValue:
        if encode is None:
            return encode_value(value, path=attribute)
        return encode(attribute, value)

    if hash_value is None:
        raise ValidationError("hash key value is required")

    expr = "#PK = :PartitionKey"
    names = {"#PK": hash_attr}
    values = {":PartitionKey": enc(hash_attr, hash_value)}

    if range_condition is None:
        return Expression(expression=expr, names=names, values=values)

    cond = RangeCondition.coerce(range_condition)
    if range_attr is None:
        raise ValidationError("table/index does not define a range key")

    op = cond.operation
    value = cond.value
    if value is None:
        raise ValidationError(f'range condition "{op}" requires a value')

    if op == "between":
        if not isinstance(value, (list, tuple)) or len(value) != 2:
            raise ValidationError(
                f'invalid range condition "between" with value {value!r}: value must be a list of 2 elements'
            )
        start, end = value
        values[":start"] = enc(range_attr, start)
        values[":end"] = enc(range_attr, end)
        expr += " AND #SK BETWEEN :start AND :end"
    elif op in _COMPARISONS:
        values[f":{op}"] = enc(range_attr, value)
        expr += f" AND #SK {_COMPARISONS[op]} :{op}"
    elif op == "begins_with":
        if not isinstance(value, str):
            raise ValidationError(f"begins_with requires a string value (got {type(value).__name__})")
        values[":begins_with"] = enc(range_attr, value)
        expr += " AND begins_with(#SK, :begins_with)"
    elif op == "equals":
        values[":equals"] = enc(range_attr, value)
        expr += " AND #SK = :equals"
    else:
        raise ValidationError(
            f'invalid range condition operation "{op}": must be one of {", ".join(RANGE_OPERATIONS)}'
        )

    names["#SK"] = range_attr
    return Expression(expression=expr, names=names, values=values)


def build_update(
    delta: Mapping[str, WireValue],
    *,
    taken: Mapping[str, str] | None = None,
    taken_values: Mapping[str, Any] | None = None,
) -> Expression:
    """Build a ``SET`` expression, one ``#a = :a`` pair per attribute.

    Aliases already bound in ``taken`` (names) or ``taken_values`` are skipped
    unless the name placeholder already targets the same attribute.
    """
    if not delta:
        raise ValidationError("no updates provided")

    names_in_use = dict(taken or {})
    values_in_use = set(taken_values or ())
    names: dict[str, str] = {}
    values: dict[str, WireValue] = {}
    assignments: list[str] = []

    for attribute, av in delta.items():
        alias = _alias(attribute, "#", names_in_use, values_in_use)
        names_in_use["#" + alias] = attribute
        values_in_use.add(":" + alias)
        names["#" + alias] = attribute
        values[":" + alias] = av
        assignments.append(f"#{alias} = :{alias}")

    return Expression(expression="SET " + ", ".join(assignments), names=names, values=values)


def merge_names(*maps: Mapping[str, str] | None) -> dict[str, str]:
    return _merge(maps, prefix="#", kind="name")


def merge_values(*maps: Mapping[str, WireValue] | None) -> dict[str, WireValue]:
    return _merge(maps, prefix=":", kind="value")


def _merge[V](maps: Sequence[Mapping[str, V] | None], *, prefix: str, kind: str) -> dict[str, V]:
    out: dict[str, V] = {}
    for m in maps:
        if not m:
            continue
        for k, v in m.items():
            if not isinstance(k, str) or not k.startswith(prefix) or len(k) < 2:
                raise ValidationError(f"expression attribute {kind} placeholder must start with {prefix!r}: {k!r}")
            if k in out and out[k] != v:
                raise ValidationError(f"expression attribute {kind} collision: {k}")
            out[k] = v
    return out
