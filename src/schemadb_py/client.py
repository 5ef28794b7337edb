from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping, Sequence
from typing import Any

import boto3
from botocore.exceptions import ClientError

from .aws_errors import map_client_error
from .batch import (
    MAX_BATCH_WRITE_REQUESTS,
    WriteKind,
    build_batch_get_request,
    build_batch_write_request,
    count_write_requests,
    demux_batch_get_response,
    drain_unprocessed,
)
from .codec import WireItem, WireValue, decode_item, encode_attribute, encode_item, encode_value
from .errors import ValidationError
from .expressions import RangeCondition, build_key_condition, build_projection, build_update, merge_names, merge_values
from .retry import RetryPolicy, run_with_retry
from .schema import SchemaRegistry, TableSchema

logger = logging.getLogger(__name__)

_RESERVED_EXTRA = frozenset(
    {
        "TableName",
        "Key",
        "Item",
        "KeyConditionExpression",
        "UpdateExpression",
        "IndexName",
        "RequestItems",
    }
)


class KeyValueStoreClient:
    """Schema-aware facade over a low-level DynamoDB client.

    Callers address tables by logical name and pass native Python values;
    physical table names and wire-format attribute values never leave this
    class. Every operation takes ``retryable`` to run the store call under
    the configured ``RetryPolicy`` and ``extra`` for additional protocol
    parameters (``ReturnValues``, ``ConditionExpression``, ``ConsistentRead``,
    ...). Names in ``extra["ExpressionAttributeValues"]`` map to native values.
    """

    def __init__(
        self,
        registry: SchemaRegistry,
        *,
        client: Any | None = None,
        retry_policy: RetryPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._registry = registry
        self._client: Any = client or boto3.client("dynamodb")
        self._retry_policy = retry_policy or RetryPolicy()
        self._sleep = sleep

    @property
    def registry(self) -> SchemaRegistry:
        return self._registry

    def put(
        self,
        table: str,
        item: Mapping[str, Any],
        *,
        extra: Mapping[str, Any] | None = None,
        retryable: bool = False,
    ) -> dict[str, Any]:
        schema = self._registry.table(table)
        self._require_key_attrs(schema, item, what="item")

        req: dict[str, Any] = {"TableName": schema.physical_name, "Item": encode_item(item, schema)}
        self._apply_extra(req, extra)
        return dict(self._call("put_item", req, table=table, retryable=retryable))

    def get(
        self,
        table: str,
        key: Mapping[str, Any],
        *,
        projection: str | Sequence[str] | None = None,
        extra: Mapping[str, Any] | None = None,
        retryable: bool = False,
    ) -> dict[str, Any] | None:
        schema = self._registry.table(table)
        if projection is not None and extra and "ProjectionExpression" in extra:
            raise ValidationError("projection and extra ProjectionExpression are mutually exclusive")

        req: dict[str, Any] = {"TableName": schema.physical_name, "Key": self._encode_key(schema, key)}
        self._apply_extra(req, extra)
        if projection is not None:
            self._apply_projection(req, projection)

        resp = self._call("get_item", req, table=table, retryable=retryable)
        item = resp.get("Item")
        if not item:
            return None
        return decode_item(item)

    def query(
        self,
        table: str,
        hash_value: Any,
        *,
        range_condition: RangeCondition | Mapping[str, Any] | None = None,
        index_name: str | None = None,
        extra: Mapping[str, Any] | None = None,
        retryable: bool = False,
    ) -> list[dict[str, Any]]:
        schema = self._registry.table(table)
        hash_attr, range_attr = schema.key_for_index(index_name)

        cond = build_key_condition(
            hash_attr,
            hash_value,
            range_condition,
            range_attr=range_attr,
            encode=lambda attribute, value: encode_attribute(schema, attribute, value),
        )
        req: dict[str, Any] = {
            "TableName": schema.physical_name,
            "KeyConditionExpression": cond.expression,
            "ExpressionAttributeNames": dict(cond.names),
            "ExpressionAttributeValues": dict(cond.values),
        }
        if index_name is not None:
            req["IndexName"] = index_name
        self._apply_extra(req, extra)

        resp = self._call("query", req, table=table, retryable=retryable)
        return [decode_item(item) for item in resp.get("Items") or []]

    def scan(
        self,
        table: str,
        *,
        filter_expression: str | None = None,
        names: Mapping[str, str] | None = None,
        values: Mapping[str, Any] | None = None,
        extra: Mapping[str, Any] | None = None,
        retryable: bool = False,
    ) -> list[dict[str, Any]]:
        schema = self._registry.table(table)
        if filter_expression is not None and not isinstance(filter_expression, str):
            raise ValidationError("filter_expression must be a string")

        req: dict[str, Any] = {"TableName": schema.physical_name}
        if filter_expression:
            req["FilterExpression"] = filter_expression
        if names:
            req["ExpressionAttributeNames"] = merge_names(names)
        if values:
            req["ExpressionAttributeValues"] = merge_values(self._encode_values(values))
        self._apply_extra(req, extra)

        resp = self._call("scan", req, table=table, retryable=retryable)
        return [decode_item(item) for item in resp.get("Items") or []]

    def update(
        self,
        table: str,
        key: Mapping[str, Any],
        updates: Mapping[str, Any],
        *,
        extra: Mapping[str, Any] | None = None,
        retryable: bool = False,
    ) -> dict[str, Any]:
        schema = self._registry.table(table)
        encoded_key = self._encode_key(schema, key)

        if not isinstance(updates, Mapping):
            raise ValidationError("updates must be a map")
        for attr in schema.key_attrs:
            if attr in updates:
                raise ValidationError(f"cannot update key attribute: {attr}")

        req: dict[str, Any] = {
            "TableName": schema.physical_name,
            "Key": encoded_key,
            "ReturnValues": "ALL_NEW",
        }
        self._apply_extra(req, extra)

        expr = build_update(
            encode_item(updates, schema),
            taken=req.get("ExpressionAttributeNames"),
            taken_values=req.get("ExpressionAttributeValues"),
        )
        req["UpdateExpression"] = expr.expression
        req["ExpressionAttributeNames"] = merge_names(req.get("ExpressionAttributeNames"), expr.names)
        req["ExpressionAttributeValues"] = merge_values(req.get("ExpressionAttributeValues"), expr.values)

        resp = self._call("update_item", req, table=table, retryable=retryable)
        attrs = resp.get("Attributes")
        return decode_item(attrs) if attrs else {}

    def delete(
        self,
        table: str,
        key: Mapping[str, Any],
        *,
        extra: Mapping[str, Any] | None = None,
        retryable: bool = False,
    ) -> dict[str, Any]:
        schema = self._registry.table(table)
        req: dict[str, Any] = {
            "TableName": schema.physical_name,
            "Key": self._encode_key(schema, key),
            "ReturnValues": "NONE",
        }
        self._apply_extra(req, extra)

        resp = self._call("delete_item", req, table=table, retryable=retryable)
        attrs = resp.get("Attributes")
        return decode_item(attrs) if attrs else {}

    def batch_get(
        self,
        tables: Mapping[str, Sequence[Mapping[str, Any]] | Mapping[str, Any]],
        *,
        extra: Mapping[str, Any] | None = None,
        retryable: bool = False,
    ) -> dict[str, list[dict[str, Any]]]:
        """Fetch keys from several tables in one ``BatchGetItem`` call.

        ``tables`` maps logical name to a list of keys (or to ``{"keys": [...]}``).
        Keys are not chunked: callers keep the request within the store's
        per-call key limit. Unprocessed keys are re-sent with backoff.
        """
        if not isinstance(tables, Mapping) or not tables:
            raise ValidationError("batch_get requires at least one table")

        table_options, top_level = self._split_batch_get_extra(extra)

        keys_by_table: dict[str, list[WireItem]] = {}
        for logical, keys in tables.items():
            schema = self._registry.table(logical)
            if isinstance(keys, Mapping):
                keys = keys.get("keys")
            if not _is_non_empty_list(keys):
                raise ValidationError(f"Invalid keys for table {logical}. Expected a non-empty list.")

            keys_by_table[schema.physical_name] = [self._encode_key(schema, k) for k in keys]
        request_items = build_batch_get_request(keys_by_table, table_options)

        def send(items: dict[str, Any]) -> Mapping[str, Any]:
            return self._call(
                "batch_get_item",
                {"RequestItems": items, **top_level},
                table=",".join(tables),
                retryable=retryable,
            )

        responses = drain_unprocessed(
            send, request_items, operation="batch_get", policy=self._retry_policy, sleep=self._sleep
        )

        merged: dict[str, list[Any]] = {}
        for resp in responses:
            for physical, items in (resp.get("Responses") or {}).items():
                merged.setdefault(physical, []).extend(items)
        return demux_batch_get_response(merged, self._registry, requested=list(tables))

    def batch_write(
        self,
        tables: Mapping[str, Mapping[str, Sequence[Mapping[str, Any]]]],
        *,
        extra: Mapping[str, Any] | None = None,
        retryable: bool = False,
    ) -> None:
        """Put and delete items across tables in one ``BatchWriteItem`` call.

        Calls above the store's per-call limit are rejected rather than split;
        use ``batch.partition_batch_write`` to pre-chunk larger writes.
        """
        if not isinstance(tables, Mapping) or not tables:
            raise ValidationError("batch_write requires at least one table")

        requests_by_table: dict[str, list[tuple[WriteKind, WireItem]]] = {}
        for logical, spec in tables.items():
            schema = self._registry.table(logical)
            requests_by_table[schema.physical_name] = self._write_requests(schema, spec)
        request_items = build_batch_write_request(requests_by_table)

        total = count_write_requests(request_items)
        if total > MAX_BATCH_WRITE_REQUESTS:
            raise ValidationError(
                f"batch_write supports at most {MAX_BATCH_WRITE_REQUESTS} requests per call (got {total}); "
                "split the request with partition_batch_write"
            )

        top_level = self._top_level_extra(extra)

        def send(items: dict[str, Any]) -> Mapping[str, Any]:
            return self._call(
                "batch_write_item",
                {"RequestItems": items, **top_level},
                table=",".join(tables),
                retryable=retryable,
            )

        drain_unprocessed(
            send, dict(request_items), operation="batch_write", policy=self._retry_policy, sleep=self._sleep
        )

    def _write_requests(self, schema: TableSchema, spec: Any) -> list[tuple[WriteKind, WireItem]]:
        logical = schema.logical_name
        if not isinstance(spec, Mapping):
            raise ValidationError(f"Invalid batch_write entry for table {logical}. Expected a map.")
        unknown = sorted(set(spec) - {"put", "delete"})
        if unknown:
            raise ValidationError(f"Invalid batch_write entry for table {logical}: unknown fields {unknown}")

        puts = spec.get("put")
        deletes = spec.get("delete")
        if puts is None and deletes is None:
            raise ValidationError(f"Invalid parameter for table {logical}. Either 'put' or 'delete' must be provided.")

        requests: list[tuple[WriteKind, WireItem]] = []
        if puts is not None:
            if not _is_non_empty_list(puts):
                raise ValidationError(f"Invalid put parameter for table {logical}. Expected a non-empty list.")
            for item in puts:
                self._require_key_attrs(schema, item, what="item")
                requests.append(("put", encode_item(item, schema)))

        if deletes is not None:
            if not _is_non_empty_list(deletes):
                raise ValidationError(f"Invalid delete parameter for table {logical}. Expected a non-empty list.")
            for key in deletes:
                requests.append(("delete", self._encode_key(schema, key)))

        return requests

    def _call(self, method: str, req: dict[str, Any], *, table: str, retryable: bool) -> Mapping[str, Any]:
        fn = getattr(self._client, method)

        def operation() -> Mapping[str, Any]:
            logger.debug("%s table=%s", method, table)
            try:
                return fn(**req)
            except ClientError as err:
                raise map_client_error(err) from err

        if not retryable:
            return operation()
        return run_with_retry(operation, self._retry_policy, sleep=self._sleep, description=f"{method}({table})")

    def _require_key_attrs(self, schema: TableSchema, value: Any, *, what: str) -> None:
        if not isinstance(value, Mapping):
            raise ValidationError(f"The {what} parameter must be a map.")
        if schema.hash_key_attr not in value:
            raise ValidationError(f"The {what} parameter must include the hash key property: {schema.hash_key_attr}")
        if schema.range_key_attr is not None and schema.range_key_attr not in value:
            raise ValidationError(
                f"The {what} parameter must include the range key property: {schema.range_key_attr}"
            )

    def _encode_key(self, schema: TableSchema, key: Any) -> WireItem:
        self._require_key_attrs(schema, key, what="key")
        extra_attrs = sorted(set(key) - set(schema.key_attrs))
        if extra_attrs:
            raise ValidationError(f"The key parameter contains non-key attributes: {extra_attrs}")
        return {attr: encode_attribute(schema, attr, key[attr]) for attr in schema.key_attrs}

    def _encode_values(self, values: Any) -> dict[str, WireValue]:
        if not isinstance(values, Mapping):
            raise ValidationError("ExpressionAttributeValues must be a map")
        return {str(k): encode_value(v, path=str(k)) for k, v in values.items()}

    def _apply_projection(self, req: dict[str, Any], fields: str | Sequence[str]) -> None:
        proj = build_projection(fields, taken=req.get("ExpressionAttributeNames"))
        req["ExpressionAttributeNames"] = merge_names(req.get("ExpressionAttributeNames"), proj.names)
        req["ProjectionExpression"] = proj.expression

    def _apply_extra(self, req: dict[str, Any], extra: Mapping[str, Any] | None) -> None:
        others = self._top_level_extra(extra)
        projection = others.pop("ProjectionExpression", None)
        names = others.pop("ExpressionAttributeNames", None)
        values = others.pop("ExpressionAttributeValues", None)

        if names:
            req["ExpressionAttributeNames"] = merge_names(req.get("ExpressionAttributeNames"), names)
        if values:
            req["ExpressionAttributeValues"] = merge_values(
                req.get("ExpressionAttributeValues"), self._encode_values(values)
            )
        if projection:
            self._apply_projection(req, projection)
        req.update(others)

    def _top_level_extra(self, extra: Mapping[str, Any] | None) -> dict[str, Any]:
        if not extra:
            return {}
        if not isinstance(extra, Mapping):
            raise ValidationError("extra must be a map")
        reserved = sorted(_RESERVED_EXTRA.intersection(extra))
        if reserved:
            raise ValidationError(f"extra may not set {reserved}")
        return dict(extra)

    def _split_batch_get_extra(self, extra: Mapping[str, Any] | None) -> tuple[dict[str, Any], dict[str, Any]]:
        top_level = self._top_level_extra(extra)
        table_options: dict[str, Any] = {}

        names = top_level.pop("ExpressionAttributeNames", None)
        if names:
            table_options["ExpressionAttributeNames"] = merge_names(names)
        projection = top_level.pop("ProjectionExpression", None)
        if projection:
            self._apply_projection(table_options, projection)
        if "ConsistentRead" in top_level:
            table_options["ConsistentRead"] = top_level.pop("ConsistentRead")
        if "ExpressionAttributeValues" in top_level:
            raise ValidationError("batch_get does not accept ExpressionAttributeValues")

        return table_options, top_level


def _is_non_empty_list(value: Any) -> bool:
    return isinstance(value, (list, tuple)) and len(value) > 0
