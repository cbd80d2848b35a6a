"""PURIFY-FX — очистка (purification) взвешенных тензоров очков.

Раскладывает плотный тензор очков на intercept, маргиналы по каждому
измерению и «чистое» взаимодействие, у которого взвешенное среднее
вдоль любой линии близко к нулю.

Низкоуровневый `purify` работает на буферах вызывающего и возвращает
`Status`; `purify_tensor` — удобная обёртка с исключениями.
"""

import torch
import warnings

# Все накопления ведутся в float64, поэтому делаем его дефолтным dtype
if torch.get_default_dtype() != torch.float64:
    warnings.warn(
        "PURIFY-FX: Принудительно устанавливаю torch.set_default_dtype(torch.float64). "
        "Все новые тензоры будут float64.",
        stacklevel=2
    )
    torch.set_default_dtype(torch.float64)

from ._config import INDEX_MAX, MAX_DIMENSIONS, PurifyConfig  # noqa: F401
from ._core import checked_mul, to_index  # noqa: F401
from ._engine import PurifyReport, StopReason, line_means, max_impurity, purify_inplace  # noqa: F401
from ._errors import (  # noqa: F401
    InvalidArgumentError,
    PurifyError,
    ResourceExhaustedError,
    Status,
    check_status,
)
from ._shape import Shape  # noqa: F401
from ._tensor import PurifiedTensor, purify_tensor  # noqa: F401
from ._validate import purify, validate_arguments  # noqa: F401

__all__ = [
    "purify",
    "purify_inplace",
    "purify_tensor",
    "validate_arguments",
    "line_means",
    "max_impurity",
    "checked_mul",
    "to_index",
    "Shape",
    "Status",
    "StopReason",
    "PurifyReport",
    "PurifyConfig",
    "PurifiedTensor",
    "PurifyError",
    "InvalidArgumentError",
    "ResourceExhaustedError",
    "check_status",
    "MAX_DIMENSIONS",
    "INDEX_MAX",
]
