from __future__ import annotations

from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType

from .errors import SchemaError


class TypeTag(Enum):
    STRING = "S"
    NUMBER = "N"
    BOOL = "BOOL"
    NULL = "NULL"
    STRING_SET = "SS"
    NUMBER_SET = "NS"
    BINARY_SET = "BS"
    LIST = "L"
    MAP = "M"
    BINARY = "B"

    @classmethod
    def parse(cls, raw: str | TypeTag) -> TypeTag:
        if isinstance(raw, TypeTag):
            return raw
        try:
            return cls(str(raw).strip().upper())
        except ValueError as err:
            raise SchemaError(f"unsupported attribute type: {raw!r}") from err


KEY_TYPES = frozenset({TypeTag.STRING, TypeTag.NUMBER, TypeTag.BINARY})


@dataclass(frozen=True)
class IndexSchema:
    name: str
    hash_key_attr: str
    range_key_attr: str | None = None


@dataclass(frozen=True)
class TableSchema:
    logical_name: str
    physical_name: str
    hash_key_attr: str
    range_key_attr: str | None = None
    attribute_types: Mapping[str, TypeTag] = field(default_factory=dict)
    indexes: Mapping[str, IndexSchema] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.logical_name:
            raise SchemaError("logical_name is required")
        if not self.physical_name:
            raise SchemaError(f"{self.logical_name}: physical_name is required")
        if not self.hash_key_attr:
            raise SchemaError(f"{self.logical_name}: hash_key_attr is required")

        types = {str(k): TypeTag.parse(v) for k, v in self.attribute_types.items()}
        object.__setattr__(self, "attribute_types", MappingProxyType(types))

        indexes: dict[str, IndexSchema] = {}
        for name, idx in self.indexes.items():
            if idx.name != name:
                raise SchemaError(f"{self.logical_name}: index name mismatch: {name} != {idx.name}")
            indexes[name] = idx
        object.__setattr__(self, "indexes", MappingProxyType(indexes))

        self._check_key_attr(self.hash_key_attr, where="hash key")
        if self.range_key_attr is not None:
            self._check_key_attr(self.range_key_attr, where="range key")
        for idx in indexes.values():
            self._check_key_attr(idx.hash_key_attr, where=f"index {idx.name} hash key")
            if idx.range_key_attr is not None:
                self._check_key_attr(idx.range_key_attr, where=f"index {idx.name} range key")

    def _check_key_attr(self, name: str, *, where: str) -> None:
        tag = self.attribute_types.get(name)
        if tag is None:
            raise SchemaError(f"{self.logical_name}: {where} is not declared: {name}")
        if tag not in KEY_TYPES:
            raise SchemaError(f"{self.logical_name}: {where} must be S/N/B: {name} (got {tag.value})")

    @property
    def key_attrs(self) -> tuple[str, ...]:
        if self.range_key_attr is None:
            return (self.hash_key_attr,)
        return (self.hash_key_attr, self.range_key_attr)

    def type_of(self, attribute: str) -> TypeTag:
        tag = self.attribute_types.get(attribute)
        if tag is None:
            raise SchemaError(f'attribute "{attribute}" is not defined for table "{self.logical_name}"')
        return tag

    def key_for_index(self, index_name: str | None) -> tuple[str, str | None]:
        if index_name is None:
            return self.hash_key_attr, self.range_key_attr
        idx = self.indexes.get(index_name)
        if idx is None:
            raise SchemaError(f"{self.logical_name}: unknown index: {index_name}")
        return idx.hash_key_attr, idx.range_key_attr


class SchemaRegistry:
    """Read-only lookup of table schemas by logical and physical name."""

    def __init__(self, tables: Sequence[TableSchema]) -> None:
        by_logical: dict[str, TableSchema] = {}
        by_physical: dict[str, str] = {}
        for table in tables:
            if table.logical_name in by_logical:
                raise SchemaError(f"duplicate table: {table.logical_name}")
            if table.physical_name in by_physical:
                raise SchemaError(
                    f"physical table {table.physical_name} is mapped by both "
                    f"{by_physical[table.physical_name]} and {table.logical_name}"
                )
            by_logical[table.logical_name] = table
            by_physical[table.physical_name] = table.logical_name

        self._tables: Mapping[str, TableSchema] = MappingProxyType(by_logical)
        self._logical_by_physical: Mapping[str, str] = MappingProxyType(by_physical)

    def __contains__(self, logical_name: object) -> bool:
        return logical_name in self._tables

    def __iter__(self) -> Iterator[TableSchema]:
        return iter(self._tables.values())

    def __len__(self) -> int:
        return len(self._tables)

    def table(self, logical_name: str) -> TableSchema:
        schema = self._tables.get(logical_name)
        if schema is None:
            raise SchemaError(f'table "{logical_name}" is not defined')
        return schema

    def physical_name(self, logical_name: str) -> str:
        return self.table(logical_name).physical_name

    def logical_name(self, physical_name: str) -> str:
        logical = self._logical_by_physical.get(physical_name)
        if logical is None:
            raise SchemaError(f'physical table "{physical_name}" is not registered')
        return logical
