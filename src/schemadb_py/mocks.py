from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from botocore.exceptions import ClientError


class _AnySentinel:
    def __repr__(self) -> str:  # pragma: no cover
        return "ANY"


ANY: Any = _AnySentinel()

type RequestCheck = Mapping[str, Any] | Callable[[Mapping[str, Any]], None]
type Response = Mapping[str, Any] | Callable[[Mapping[str, Any]], Mapping[str, Any]]

OPERATIONS = (
    "put_item",
    "get_item",
    "update_item",
    "delete_item",
    "query",
    "scan",
    "batch_get_item",
    "batch_write_item",
)


def client_error(code: str, message: str = "", *, operation: str = "DynamoDB") -> ClientError:
    """Build the ``ClientError`` a boto3 DynamoDB client raises for ``code``."""
    return ClientError({"Error": {"Code": code, "Message": message or code}}, operation)


def _assert_match(expected: Any, actual: Any, *, path: str) -> None:
    """Partial structural match: dict keys missing from ``expected`` are ignored."""
    if expected is ANY:
        return

    if isinstance(expected, Mapping):
        if not isinstance(actual, Mapping):
            raise AssertionError(f"{path}: expected map, got {type(actual).__name__}")
        for k, v in expected.items():
            if k not in actual:
                raise AssertionError(f"{path}: missing key {k!r}")
            _assert_match(v, actual[k], path=f"{path}.{k}")
        return

    if isinstance(expected, list):
        if not isinstance(actual, list):
            raise AssertionError(f"{path}: expected list, got {type(actual).__name__}")
        if len(expected) != len(actual):
            raise AssertionError(f"{path}: expected {len(expected)} entries, got {len(actual)}")
        for i, (e, a) in enumerate(zip(expected, actual, strict=True)):
            _assert_match(e, a, path=f"{path}[{i}]")
        return

    if expected != actual:
        raise AssertionError(f"{path}: expected {expected!r}, got {actual!r}")


@dataclass(frozen=True)
class ScriptedCall:
    method: str
    check: RequestCheck | None = None
    response: Response | None = None
    error: BaseException | None = None


class FakeDynamoDBClient:
    """Scripted stand-in for ``boto3.client("dynamodb")``.

    Calls must arrive in the order they were scripted with ``expect``; each
    request is recorded in ``calls`` before it is checked.
    """

    def __init__(self) -> None:
        self._script: list[ScriptedCall] = []
        self.calls: list[tuple[str, dict[str, Any]]] = []

    def expect(
        self,
        method: str,
        check: RequestCheck | None = None,
        *,
        response: Response | None = None,
        error: BaseException | None = None,
    ) -> None:
        if method not in OPERATIONS:
            raise ValueError(f"unsupported operation: {method}")
        self._script.append(ScriptedCall(method=method, check=check, response=response, error=error))

    def expect_error(self, method: str, code: str, *, times: int = 1, message: str = "") -> None:
        for _ in range(times):
            self.expect(method, error=client_error(code, message, operation=method))

    def assert_no_pending(self) -> None:
        if self._script:
            raise AssertionError(f"pending expected calls: {[c.method for c in self._script]}")

    def requests(self, method: str) -> list[dict[str, Any]]:
        return [req for name, req in self.calls if name == method]

    def _dispatch(self, method: str, req: dict[str, Any]) -> Mapping[str, Any]:
        self.calls.append((method, dict(req)))
        if not self._script:
            raise AssertionError(f"unexpected call: {method}")

        call = self._script.pop(0)
        if call.method != method:
            raise AssertionError(f"expected {call.method}, got {method}")

        if callable(call.check):
            call.check(req)
        elif call.check is not None:
            _assert_match(call.check, req, path=method)

        if call.error is not None:
            raise call.error
        if callable(call.response):
            return dict(call.response(req))
        return dict(call.response or {})

    def put_item(self, **kwargs: Any) -> Mapping[str, Any]:
        return self._dispatch("put_item", kwargs)

    def get_item(self, **kwargs: Any) -> Mapping[str, Any]:
        return self._dispatch("get_item", kwargs)

    def update_item(self, **kwargs: Any) -> Mapping[str, Any]:
        return self._dispatch("update_item", kwargs)

    def delete_item(self, **kwargs: Any) -> Mapping[str, Any]:
        return self._dispatch("delete_item", kwargs)

    def query(self, **kwargs: Any) -> Mapping[str, Any]:
        return self._dispatch("query", kwargs)

    def scan(self, **kwargs: Any) -> Mapping[str, Any]:
        return self._dispatch("scan", kwargs)

    def batch_get_item(self, **kwargs: Any) -> Mapping[str, Any]:
        return self._dispatch("batch_get_item", kwargs)

    def batch_write_item(self, **kwargs: Any) -> Mapping[str, Any]:
        return self._dispatch("batch_write_item", kwargs)
