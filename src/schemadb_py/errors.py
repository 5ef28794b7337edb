from __future__ import annotations

from typing import Any


class SchemadbPyError(Exception):
    pass


class ValidationError(SchemadbPyError):
    pass


class SchemaError(SchemadbPyError):
    pass


class TypeMismatchError(SchemaError):
    def __init__(self, *, table: str, attribute: str, expected: str, actual: str) -> None:
        super().__init__(f"{table}.{attribute}: expected {expected}, got {actual}")
        self.table = table
        self.attribute = attribute
        self.expected = expected
        self.actual = actual


class UnsupportedTypeError(SchemadbPyError):
    pass


class DecodeError(SchemadbPyError):
    pass


class StoreError(SchemadbPyError):
    def __init__(self, *, code: str, message: str) -> None:
        super().__init__(f"{code}: {message}")
        self.code = code
        self.message = message


class ConditionFailedError(StoreError):
    def __init__(self, message: str) -> None:
        super().__init__(code="ConditionalCheckFailedException", message=message)


class TableNotFoundError(StoreError):
    def __init__(self, message: str) -> None:
        super().__init__(code="ResourceNotFoundException", message=message)


class RetryExhaustedError(StoreError):
    def __init__(self, *, attempts: int, last_error: StoreError) -> None:
        super().__init__(
            code=last_error.code,
            message=f"retry limit exceeded after {attempts} attempts: {last_error.message}",
        )
        self.attempts = attempts
        self.last_error = last_error


class BatchRetryExceededError(StoreError):
    def __init__(self, *, operation: str, unprocessed_count: int, unprocessed: Any = None) -> None:
        super().__init__(
            code="UnprocessedItems",
            message=f"{operation}: retry limit exceeded (unprocessed={unprocessed_count})",
        )
        self.operation = operation
        self.unprocessed_count = unprocessed_count
        self.unprocessed = unprocessed
