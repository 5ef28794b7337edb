from __future__ import annotations

import logging
import os
import uuid

from schemadb_py import KeyValueStoreClient, RangeCondition, create_dynamodb_client, parse_schema_document

SCHEMA = """
dynamodb:
  notes:
    table_name: {table_name}
    hash_key: pk
    range_key: sk
    key_attributes:
      pk: S
      sk: S
    attributes:
      value: N
"""


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    os.environ.setdefault("DYNAMODB_ENDPOINT", "http://localhost:8000")
    os.environ.setdefault("AWS_ACCESS_KEY_ID", "dummy")
    os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "dummy")

    client = create_dynamodb_client(region=os.environ.get("AWS_REGION", "us-east-1"))
    table_name = f"schemadb_py_example_{uuid.uuid4().hex[:12]}"

    client.create_table(
        TableName=table_name,
        KeySchema=[{"AttributeName": "pk", "KeyType": "HASH"}, {"AttributeName": "sk", "KeyType": "RANGE"}],
        AttributeDefinitions=[
            {"AttributeName": "pk", "AttributeType": "S"},
            {"AttributeName": "sk", "AttributeType": "S"},
        ],
        BillingMode="PAY_PER_REQUEST",
    )
    client.get_waiter("table_exists").wait(TableName=table_name)

    try:
        store = KeyValueStoreClient(parse_schema_document(SCHEMA.format(table_name=table_name)), client=client)

        store.batch_write({"notes": {"put": [{"pk": "A", "sk": sk, "value": int(sk)} for sk in ("001", "010", "100")]}})

        print("get:", store.get("notes", {"pk": "A", "sk": "010"}))
        print("query begins_with('0'):", store.query("notes", "A", range_condition=RangeCondition.begins_with("0")))
        print("update:", store.update("notes", {"pk": "A", "sk": "001"}, {"value": 2}, retryable=True))
    finally:
        client.delete_table(TableName=table_name)


if __name__ == "__main__":
    main()
