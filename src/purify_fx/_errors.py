"""purify_fx._errors
====================
Коды статуса и исключения.

Низкоуровневый `purify` возвращает `Status`, высокоуровневый
`purify_tensor` превращает неуспешный статус в исключение.
"""

from __future__ import annotations

from enum import IntEnum

__all__ = [
    "Status",
    "PurifyError",
    "InvalidArgumentError",
    "ResourceExhaustedError",
    "check_status",
]


class Status(IntEnum):
    SUCCESS = 0
    INVALID_ARGUMENT = 1
    RESOURCE_EXHAUSTED = 2


class PurifyError(Exception):
    """Базовое исключение purify_fx."""

    status = Status.SUCCESS


class InvalidArgumentError(PurifyError, ValueError):
    status = Status.INVALID_ARGUMENT


class ResourceExhaustedError(PurifyError, MemoryError):
    status = Status.RESOURCE_EXHAUSTED


def check_status(status: Status, message: str = "purify failed") -> None:
    """Бросает исключение, соответствующее неуспешному статусу."""
    if status == Status.SUCCESS:
        return
    if status == Status.INVALID_ARGUMENT:
        raise InvalidArgumentError(f"{message}: {status.name}")
    if status == Status.RESOURCE_EXHAUSTED:
        raise ResourceExhaustedError(f"{message}: {status.name}")
    raise PurifyError(f"{message}: unknown status {status!r}")
