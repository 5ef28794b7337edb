from __future__ import annotations

from collections.abc import Mapping
from os import PathLike
from pathlib import Path
from typing import Any

import yaml

from .errors import SchemaError
from .schema import IndexSchema, SchemaRegistry, TableSchema, TypeTag

_INDEX_SECTIONS = ("indexes", "global_secondary_index", "local_secondary_index")


def parse_schema_document(raw: str) -> SchemaRegistry:
    """Build a registry from a YAML/JSON schema document.

    The document is either the provisioning config (tables under a top-level
    ``dynamodb`` section) or a bare mapping of logical table name to table
    config. Table order follows the document.
    """
    try:
        parsed = yaml.safe_load(raw)
    except yaml.YAMLError as err:
        raise SchemaError("invalid schema YAML/JSON") from err

    if not isinstance(parsed, dict):
        raise SchemaError("schema document must be a map/object")

    tables = parsed.get("dynamodb", parsed)
    if not isinstance(tables, dict) or not tables:
        raise SchemaError("schema document must define at least one table")

    return SchemaRegistry([table_schema_from_config(str(name), cfg) for name, cfg in tables.items()])


def load_schema_file(path: str | PathLike[str]) -> SchemaRegistry:
    return parse_schema_document(Path(path).read_text(encoding="utf-8"))


def table_schema_from_config(logical_name: str, cfg: Any) -> TableSchema:
    if not isinstance(cfg, Mapping):
        raise SchemaError(f"table {logical_name}: config must be a map")

    physical_name = _require_str(cfg, "table_name", where=f"table {logical_name}")
    hash_key = _require_str(cfg, "hash_key", where=f"table {logical_name}")
    range_key = _optional_str(cfg, "range_key", where=f"table {logical_name}")

    attribute_types: dict[str, TypeTag] = {}
    for section in ("key_attributes", "attributes"):
        declared = cfg.get(section) or {}
        if not isinstance(declared, Mapping):
            raise SchemaError(f"table {logical_name}: {section} must be a map")
        for attr, tag in declared.items():
            parsed_tag = TypeTag.parse(tag)
            existing = attribute_types.get(str(attr))
            if existing is not None and existing is not parsed_tag:
                raise SchemaError(
                    f"table {logical_name}: conflicting types for {attr}: {existing.value} vs {parsed_tag.value}"
                )
            attribute_types[str(attr)] = parsed_tag

    indexes: dict[str, IndexSchema] = {}
    for section in _INDEX_SECTIONS:
        declared = cfg.get(section) or {}
        if not isinstance(declared, Mapping):
            raise SchemaError(f"table {logical_name}: {section} must be a map")
        for index_name, index_cfg in declared.items():
            where = f"table {logical_name}: index {index_name}"
            if not isinstance(index_cfg, Mapping):
                raise SchemaError(f"{where}: config must be a map")
            if str(index_name) in indexes:
                raise SchemaError(f"{where}: duplicate index name")
            index_hash = (
                hash_key if section == "local_secondary_index" else _require_str(index_cfg, "hash_key", where=where)
            )
            indexes[str(index_name)] = IndexSchema(
                name=str(index_name),
                hash_key_attr=index_hash,
                range_key_attr=_optional_str(index_cfg, "range_key", where=where),
            )

    return TableSchema(
        logical_name=logical_name,
        physical_name=physical_name,
        hash_key_attr=hash_key,
        range_key_attr=range_key,
        attribute_types=attribute_types,
        indexes=indexes,
    )


def _require_str(cfg: Mapping[str, Any], key: str, *, where: str) -> str:
    value = cfg.get(key)
    if not isinstance(value, str) or not value:
        raise SchemaError(f"{where}: missing {key}")
    return value


def _optional_str(cfg: Mapping[str, Any], key: str, *, where: str) -> str | None:
    value = cfg.get(key)
    if value is None:
        return None
    if not isinstance(value, str) or not value:
        raise SchemaError(f"{where}: {key} must be a non-empty string")
    return value
