from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping, Sequence
from typing import Any, Literal

from .codec import WireItem, decode_item
from .errors import BatchRetryExceededError, ValidationError
from .retry import RetryPolicy
from .schema import SchemaRegistry

logger = logging.getLogger(__name__)

MAX_BATCH_WRITE_REQUESTS = 25

type WriteKind = Literal["put", "delete"]


def chunk_write_requests[T](requests: Sequence[T], size: int = MAX_BATCH_WRITE_REQUESTS) -> list[list[T]]:
    if size <= 0:
        raise ValueError("size must be > 0")
    return [list(requests[i : i + size]) for i in range(0, len(requests), size)]


def partition_batch_write(
    tables: Mapping[str, Mapping[str, Sequence[Any]]],
    size: int = MAX_BATCH_WRITE_REQUESTS,
) -> list[dict[str, dict[str, list[Any]]]]:
    """Split a multi-table batch write spec into specs of at most ``size`` requests.

    Order is preserved: tables in mapping order, puts before deletes within a
    table. Each returned spec can be passed to ``batch_write`` on its own.
    """
    flat: list[tuple[str, WriteKind, Any]] = []
    for logical, spec in tables.items():
        for kind in ("put", "delete"):
            flat.extend((logical, kind, entry) for entry in spec.get(kind) or ())

    out: list[dict[str, dict[str, list[Any]]]] = []
    for chunk in chunk_write_requests(flat, size):
        part: dict[str, dict[str, list[Any]]] = {}
        for logical, kind, entry in chunk:
            part.setdefault(logical, {}).setdefault(kind, []).append(entry)
        out.append(part)
    return out


def count_write_requests(request_items: Mapping[str, Sequence[Any]]) -> int:
    return sum(len(reqs) for reqs in request_items.values())


def count_get_keys(request_items: Mapping[str, Mapping[str, Any]]) -> int:
    return sum(len(entry.get("Keys") or ()) for entry in request_items.values())


def build_batch_get_request(
    keys_by_table: Mapping[str, Sequence[WireItem]],
    options: Mapping[str, Any] | None = None,
) -> dict[str, dict[str, Any]]:
    """Merge encoded keys per physical table into one ``RequestItems`` map.

    ``options`` (projection, names, consistent read) are copied into every table entry.
    """
    request_items: dict[str, dict[str, Any]] = {}
    for physical, keys in keys_by_table.items():
        if not keys:
            raise ValidationError(f"batch_get: no keys for table {physical}")
        entry: dict[str, Any] = {"Keys": list(keys)}
        for option, value in (options or {}).items():
            entry[option] = dict(value) if isinstance(value, Mapping) else value
        request_items[physical] = entry
    return request_items


def build_batch_write_request(
    requests_by_table: Mapping[str, Sequence[tuple[WriteKind, WireItem]]],
) -> dict[str, list[dict[str, Any]]]:
    request_items: dict[str, list[dict[str, Any]]] = {}
    for physical, requests in requests_by_table.items():
        if not requests:
            raise ValidationError(f"batch_write: no requests for table {physical}")
        out: list[dict[str, Any]] = []
        for kind, wire in requests:
            if kind == "put":
                out.append({"PutRequest": {"Item": wire}})
            elif kind == "delete":
                out.append({"DeleteRequest": {"Key": wire}})
            else:
                raise ValidationError(f"batch_write: unknown request kind {kind!r}")
        request_items[physical] = out
    return request_items


def unprocessed_keys(resp: Mapping[str, Any]) -> dict[str, Any]:
    return dict(resp.get("UnprocessedKeys") or {})


def unprocessed_items(resp: Mapping[str, Any]) -> dict[str, Any]:
    return dict(resp.get("UnprocessedItems") or {})


def demux_batch_get_response(
    responses: Mapping[str, Sequence[Mapping[str, Any]]],
    registry: SchemaRegistry,
    requested: Sequence[str] = (),
) -> dict[str, list[dict[str, Any]]]:
    """Map physical table names back to logical names and decode every item."""
    out: dict[str, list[dict[str, Any]]] = {logical: [] for logical in requested}
    for physical, items in responses.items():
        logical = registry.logical_name(physical)
        out.setdefault(logical, []).extend(decode_item(item) for item in items)
    return out


def drain_unprocessed(
    send: Callable[[dict[str, Any]], Mapping[str, Any]],
    request_items: dict[str, Any],
    *,
    operation: Literal["batch_get", "batch_write"],
    policy: RetryPolicy,
    sleep: Callable[[float], None] = time.sleep,
) -> list[Mapping[str, Any]]:
    """Send a batch request, re-sending unprocessed entries with backoff.

    Returns every store response in order.
    """
    if not request_items:
        raise ValidationError(f"{operation}: no request items")

    unprocessed = unprocessed_keys if operation == "batch_get" else unprocessed_items
    counter = count_get_keys if operation == "batch_get" else count_write_requests

    responses: list[Mapping[str, Any]] = []
    pending: dict[str, Any] = request_items
    attempts = 0
    while pending:
        resp = send(pending)
        responses.append(resp)

        pending = unprocessed(resp)
        if not pending:
            break

        remaining = counter(pending)
        if attempts >= policy.max_retries:
            raise BatchRetryExceededError(operation=operation, unprocessed_count=remaining, unprocessed=pending)

        delay = policy.delay_for(attempts)
        logger.warning(
            "%s left %d entries unprocessed; re-sending after %.3fs", operation, remaining, delay
        )
        if delay > 0:
            sleep(delay)
        attempts += 1

    return responses
