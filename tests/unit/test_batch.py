from __future__ import annotations

from typing import Any

import pytest

from schemadb_py.batch import (
    build_batch_get_request,
    build_batch_write_request,
    chunk_write_requests,
    count_write_requests,
    demux_batch_get_response,
    drain_unprocessed,
    partition_batch_write,
)
from schemadb_py.errors import BatchRetryExceededError, SchemaError, ValidationError
from schemadb_py.retry import RetryPolicy
from schemadb_py.schema import SchemaRegistry, TableSchema
from schemadb_py.testkit import SleepRecorder


def _registry() -> SchemaRegistry:
    return SchemaRegistry(
        [
            TableSchema("users", "users-dev", "userId", attribute_types={"userId": "S"}),
            TableSchema("orders", "orders-dev", "orderId", attribute_types={"orderId": "N"}),
        ]
    )


def test_chunk_write_requests() -> None:
    assert chunk_write_requests(list(range(7)), 3) == [[0, 1, 2], [3, 4, 5], [6]]
    assert chunk_write_requests([], 3) == []
    with pytest.raises(ValueError, match="size must be > 0"):
        chunk_write_requests([1], 0)


def test_partition_batch_write_splits_thirty_puts() -> None:
    puts = [{"userId": f"u{i}"} for i in range(30)]

    parts = partition_batch_write({"users": {"put": puts}})

    assert [len(p["users"]["put"]) for p in parts] == [25, 5]
    assert parts[0]["users"]["put"][0] == {"userId": "u0"}
    assert parts[1]["users"]["put"][-1] == {"userId": "u29"}


def test_partition_batch_write_keeps_table_and_kind_order() -> None:
    parts = partition_batch_write(
        {
            "users": {"put": [{"userId": "a"}, {"userId": "b"}], "delete": [{"userId": "c"}]},
            "orders": {"delete": [{"orderId": 1}]},
        },
        size=2,
    )

    assert parts == [
        {"users": {"put": [{"userId": "a"}, {"userId": "b"}]}},
        {"users": {"delete": [{"userId": "c"}]}, "orders": {"delete": [{"orderId": 1}]}},
    ]


def test_build_batch_write_request() -> None:
    items = build_batch_write_request(
        {"users-dev": [("put", {"userId": {"S": "a"}}), ("delete", {"userId": {"S": "b"}})]}
    )

    assert items == {
        "users-dev": [
            {"PutRequest": {"Item": {"userId": {"S": "a"}}}},
            {"DeleteRequest": {"Key": {"userId": {"S": "b"}}}},
        ]
    }
    assert count_write_requests(items) == 2

    with pytest.raises(ValidationError, match="no requests for table users-dev"):
        build_batch_write_request({"users-dev": []})


def test_build_batch_get_request_copies_options_per_table() -> None:
    names = {"#userId": "userId"}
    items = build_batch_get_request(
        {"users-dev": [{"userId": {"S": "a"}}], "orders-dev": [{"orderId": {"N": "1"}}]},
        {"ExpressionAttributeNames": names, "ConsistentRead": True},
    )

    assert items["users-dev"]["Keys"] == [{"userId": {"S": "a"}}]
    assert items["orders-dev"]["ConsistentRead"] is True
    assert items["users-dev"]["ExpressionAttributeNames"] == names
    assert items["users-dev"]["ExpressionAttributeNames"] is not items["orders-dev"]["ExpressionAttributeNames"]


def test_demux_maps_physical_to_logical_and_fills_missing_tables() -> None:
    out = demux_batch_get_response(
        {"users-dev": [{"userId": {"S": "a"}}]},
        _registry(),
        requested=["users", "orders"],
    )
    assert out == {"users": [{"userId": "a"}], "orders": []}

    with pytest.raises(SchemaError, match="not registered"):
        demux_batch_get_response({"other": []}, _registry())


def test_drain_unprocessed_resends_until_done() -> None:
    sleep = SleepRecorder()
    sent: list[dict[str, Any]] = []
    replies = [
        {"UnprocessedItems": {"users-dev": [{"PutRequest": {"Item": {"userId": {"S": "b"}}}}]}},
        {"UnprocessedItems": {}},
    ]

    def send(items: dict[str, Any]) -> dict[str, Any]:
        sent.append(items)
        return replies.pop(0)

    request = {"users-dev": [{"PutRequest": {"Item": {"userId": {"S": "a"}}}}]}
    responses = drain_unprocessed(send, request, operation="batch_write", policy=RetryPolicy(), sleep=sleep)

    assert len(responses) == 2
    assert sent[1] == {"users-dev": [{"PutRequest": {"Item": {"userId": {"S": "b"}}}}]}
    assert sleep.delays == [1.0]


def test_drain_unprocessed_gives_up_after_max_retries() -> None:
    sleep = SleepRecorder()

    def send(items: dict[str, Any]) -> dict[str, Any]:
        return {"Responses": {}, "UnprocessedKeys": items}

    request = {"users-dev": {"Keys": [{"userId": {"S": "a"}}, {"userId": {"S": "b"}}]}}
    with pytest.raises(BatchRetryExceededError) as exc:
        drain_unprocessed(
            send, request, operation="batch_get", policy=RetryPolicy(max_retries=2, base_delay=0.1), sleep=sleep
        )

    assert exc.value.operation == "batch_get"
    assert exc.value.unprocessed_count == 2
    assert sleep.delays == pytest.approx([0.1, 0.2])


def test_drain_unprocessed_requires_items() -> None:
    with pytest.raises(ValidationError, match="no request items"):
        drain_unprocessed(lambda _: {}, {}, operation="batch_get", policy=RetryPolicy())
