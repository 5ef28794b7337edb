from __future__ import annotations

from pathlib import Path

import pytest

from schemadb_py.config import load_schema_file, parse_schema_document, table_schema_from_config
from schemadb_py.errors import SchemaError
from schemadb_py.schema import TypeTag

INFRASTRUCTURE_YAML = """
dynamodb:
  users:
    table_name: users-dev
    hash_key: userId
    range_key: date
    read_capacity: 5
    key_attributes:
      userId: S
      date: N
    attributes:
      email: S
      tags: SS
    global_secondary_index:
      byEmail:
        hash_key: email
        projection_type: ALL
    local_secondary_index:
      byEmailDate:
        range_key: email
  sessions:
    table_name: sessions-dev
    hash_key: token
    key_attributes:
      token: S
"""


def test_parse_provisioning_document() -> None:
    registry = parse_schema_document(INFRASTRUCTURE_YAML)

    assert [t.logical_name for t in registry] == ["users", "sessions"]
    users = registry.table("users")
    assert users.physical_name == "users-dev"
    assert users.key_attrs == ("userId", "date")
    assert users.type_of("tags") is TypeTag.STRING_SET
    assert users.key_for_index("byEmail") == ("email", None)
    assert users.key_for_index("byEmailDate") == ("userId", "email")
    assert registry.table("sessions").range_key_attr is None


def test_parse_bare_mapping_json() -> None:
    registry = parse_schema_document(
        '{"orders": {"table_name": "orders", "hash_key": "id", "attributes": {"id": "N"}}}'
    )
    assert registry.table("orders").type_of("id") is TypeTag.NUMBER


def test_load_schema_file(tmp_path: Path) -> None:
    path = tmp_path / "infrastructure.yml"
    path.write_text(INFRASTRUCTURE_YAML, encoding="utf-8")

    assert len(load_schema_file(path)) == 2


@pytest.mark.parametrize(
    ("raw", "match"),
    [
        ("dynamodb: [", "invalid schema YAML/JSON"),
        ("- a\n- b\n", "must be a map/object"),
        ("dynamodb: {}\n", "at least one table"),
        ("t:\n  hash_key: id\n", "table t: missing table_name"),
        ("t:\n  table_name: t\n", "table t: missing hash_key"),
        ("t:\n  table_name: t\n  hash_key: id\n  attributes:\n    id: DATE\n", "unsupported attribute type"),
        ("t: 3\n", "config must be a map"),
    ],
)
def test_parse_rejects_malformed_documents(raw: str, match: str) -> None:
    with pytest.raises(SchemaError, match=match):
        parse_schema_document(raw)


def test_conflicting_attribute_types() -> None:
    cfg = {
        "table_name": "t",
        "hash_key": "id",
        "key_attributes": {"id": "S"},
        "attributes": {"id": "N"},
    }
    with pytest.raises(SchemaError, match="conflicting types for id: S vs N"):
        table_schema_from_config("t", cfg)


def test_gsi_requires_hash_key() -> None:
    cfg = {
        "table_name": "t",
        "hash_key": "id",
        "attributes": {"id": "S"},
        "indexes": {"byX": {"range_key": "id"}},
    }
    with pytest.raises(SchemaError, match="index byX: missing hash_key"):
        table_schema_from_config("t", cfg)
