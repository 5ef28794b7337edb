from __future__ import annotations

import os
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, cast

import boto3
from botocore.config import Config


@dataclass(frozen=True)
class StoreCallMetric:
    operation: str
    seconds: float
    ok: bool


def create_client_config(
    *,
    connect_timeout: float = 1.0,
    read_timeout: float = 3.0,
    max_attempts: int = 1,
) -> Config:
    # Throttling retries belong to RetryExecutor; botocore only gets the first attempt by default.
    return Config(
        connect_timeout=connect_timeout,
        read_timeout=read_timeout,
        retries={"max_attempts": max_attempts, "mode": "standard"},
    )


def create_dynamodb_client(
    *,
    region: str | None = None,
    endpoint_url: str | None = None,
    config: Config | None = None,
    session: Any | None = None,
    environ: Mapping[str, str] = os.environ,
) -> Any:
    region = region or environ.get("AWS_REGION") or environ.get("AWS_DEFAULT_REGION")
    endpoint_url = endpoint_url or environ.get("DYNAMODB_ENDPOINT") or None

    sess = session or boto3.session.Session(region_name=region)
    return cast(Any, sess).client(
        "dynamodb",
        region_name=region,
        endpoint_url=endpoint_url,
        config=config or create_client_config(),
    )


class _InstrumentedClient:
    def __init__(self, client: Any, on_call: Callable[[StoreCallMetric], None]) -> None:
        self._client = client
        self._on_call = on_call

    def __getattr__(self, name: str) -> Any:
        attr = getattr(self._client, name)
        if name.startswith("_") or not callable(attr):
            return attr

        def wrapped(*args: Any, **kwargs: Any) -> Any:
            start = time.monotonic()
            ok = False
            try:
                out = attr(*args, **kwargs)
                ok = True
                return out
            finally:
                self._on_call(StoreCallMetric(operation=name, seconds=time.monotonic() - start, ok=ok))

        return wrapped


def instrument_client(client: Any, *, on_call: Callable[[StoreCallMetric], None]) -> Any:
    return _InstrumentedClient(client, on_call)
