from __future__ import annotations

import json
import re
from importlib.resources import files
from typing import TYPE_CHECKING, Any

from .errors import (
    BatchRetryExceededError,
    ConditionFailedError,
    DecodeError,
    RetryExhaustedError,
    SchemadbPyError,
    SchemaError,
    StoreError,
    TableNotFoundError,
    TypeMismatchError,
    UnsupportedTypeError,
    ValidationError,
)
from .expressions import RangeCondition
from .retry import RetryExecutor, RetryPolicy
from .schema import IndexSchema, SchemaRegistry, TableSchema, TypeTag

if TYPE_CHECKING:
    from .batch import partition_batch_write
    from .client import KeyValueStoreClient
    from .config import load_schema_file, parse_schema_document
    from .runtime import StoreCallMetric, create_client_config, create_dynamodb_client, instrument_client


def _read_repo_version() -> str:
    try:
        data = json.loads(files(__package__).joinpath("version.json").read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return "0.0.0"

    version = data.get("version")
    return version if isinstance(version, str) and version else "0.0.0"


def _normalize_repo_version(repo_version: str) -> str:
    match = re.match(r"^(\d+\.\d+\.\d+)-rc\.?([0-9]+)$", repo_version)
    if match:
        return f"{match.group(1)}rc{match.group(2)}"
    return repo_version


__repo_version__ = _read_repo_version()
__version__ = _normalize_repo_version(__repo_version__)


def __getattr__(name: str) -> Any:
    if name == "KeyValueStoreClient":
        from .client import KeyValueStoreClient

        return KeyValueStoreClient
    if name in {"load_schema_file", "parse_schema_document"}:
        from . import config

        return getattr(config, name)
    if name == "partition_batch_write":
        from .batch import partition_batch_write

        return partition_batch_write
    if name in {"StoreCallMetric", "create_client_config", "create_dynamodb_client", "instrument_client"}:
        from . import runtime

        return getattr(runtime, name)
    raise AttributeError(name)


__all__ = [
    "BatchRetryExceededError",
    "ConditionFailedError",
    "DecodeError",
    "IndexSchema",
    "KeyValueStoreClient",
    "RangeCondition",
    "RetryExecutor",
    "RetryExhaustedError",
    "RetryPolicy",
    "SchemaError",
    "SchemaRegistry",
    "SchemadbPyError",
    "StoreCallMetric",
    "StoreError",
    "TableNotFoundError",
    "TableSchema",
    "TypeMismatchError",
    "TypeTag",
    "UnsupportedTypeError",
    "ValidationError",
    "create_client_config",
    "create_dynamodb_client",
    "instrument_client",
    "load_schema_file",
    "parse_schema_document",
    "partition_batch_write",
    "__version__",
]
