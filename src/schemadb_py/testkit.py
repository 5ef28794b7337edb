from __future__ import annotations

from .mocks import ANY, FakeDynamoDBClient, client_error


def no_sleep(_: float) -> None:
    return None


class SleepRecorder:
    """Drop-in ``sleep`` that records requested delays instead of waiting."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    def __call__(self, seconds: float) -> None:
        if seconds < 0:
            raise ValueError("seconds must be >= 0")
        self.delays.append(seconds)

    @property
    def total(self) -> float:
        return sum(self.delays)


__all__ = [
    "ANY",
    "FakeDynamoDBClient",
    "SleepRecorder",
    "client_error",
    "no_sleep",
]
