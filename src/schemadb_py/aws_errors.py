from __future__ import annotations

from botocore.exceptions import ClientError

from .errors import ConditionFailedError, StoreError, TableNotFoundError


def client_error_code(err: ClientError) -> str:
    return str(err.response.get("Error", {}).get("Code", ""))


def map_client_error(err: ClientError) -> StoreError:
    code = client_error_code(err)
    message = str(err.response.get("Error", {}).get("Message", ""))

    if code == "ConditionalCheckFailedException":
        return ConditionFailedError(message or "conditional check failed")
    if code == "ResourceNotFoundException":
        return TableNotFoundError(message or "resource not found")

    return StoreError(code=code or "UnknownError", message=message or str(err))
