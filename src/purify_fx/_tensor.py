"""purify_fx._tensor
===================
Высокоуровневая обёртка: `purify_tensor` и класс результата `PurifiedTensor`.

В отличие от `purify`, обёртка сама выделяет буферы, не трогает входные
данные и принимает тензор в естественном порядке осей `(n0, ..., n_{k-1})`:
ось i соответствует измерению i движка.
"""

from __future__ import annotations

import math
from typing import Optional, Sequence, Tuple

import numpy as np
import torch

from ._config import PurifyConfig
from ._engine import PurifyReport, max_impurity, purify_inplace
from ._errors import InvalidArgumentError, check_status
from ._shape import Shape
from ._validate import validate_arguments

__all__ = ["PurifiedTensor", "purify_tensor"]


def _as_float64(data, name: str) -> torch.Tensor:
    if isinstance(data, torch.Tensor):
        if data.dtype != torch.float64:
            data = data.to(torch.float64)
        return data.detach()
    if not isinstance(data, (list, tuple, np.ndarray)) and not np.isscalar(data):
        raise InvalidArgumentError(f"{name} must be a tensor, an ndarray or a nested list")
    return torch.as_tensor(np.asarray(data, dtype=np.float64))


class PurifiedTensor:
    """Результат очистки: intercept + маргиналы по осям + остаток.

    `marginal(axis)` — накопленные средние, вынутые вдоль оси `axis`;
    форма совпадает с формой входа без этой оси.
    """

    def __init__(
        self,
        dims: Tuple[int, ...],
        shape: Optional[Shape],
        scores: torch.Tensor,
        weights: torch.Tensor,
        marginals: torch.Tensor,
        intercept: float,
        report: Optional[PurifyReport],
    ):
        self.dims = dims
        self.shape = shape
        self.marginals = marginals
        self.intercept = intercept
        self.report = report
        # плоские буферы в порядке движка (измерение 0 быстрее всех)
        self._scores = scores
        self._weights = weights

        self._counts = tuple(
            math.prod(dims[:axis] + dims[axis + 1:]) for axis in range(len(dims))
        )

    @property
    def ndim(self) -> int:
        return len(self.dims)

    @property
    def residual(self) -> torch.Tensor:
        """Чистое взаимодействие в форме входа."""
        perm = tuple(reversed(range(self.ndim)))
        return self._scores.view(tuple(reversed(self.dims))).permute(perm)

    def marginal(self, axis: int) -> torch.Tensor:
        if axis < 0:
            axis += self.ndim
        if not 0 <= axis < self.ndim:
            raise IndexError(f"axis {axis} out of range for {self.ndim} dimensions")
        offset = sum(self._counts[:axis])
        block = self.marginals.narrow(0, offset, self._counts[axis])
        others = self.dims[:axis] + self.dims[axis + 1:]
        perm = tuple(reversed(range(len(others))))
        return block.view(tuple(reversed(others))).permute(perm)

    def reconstruct(self) -> torch.Tensor:
        """intercept + сумма маргиналов + остаток; совпадает с исходными очками."""
        total = self.residual + self.intercept
        for axis in range(self.ndim):
            total = total + self.marginal(axis).unsqueeze(axis)
        return total

    def value_at(self, coords: Sequence[int]) -> float:
        """То же, что `reconstruct()[coords]`, но для одной ячейки через кодек формы."""
        if self.shape is None:
            raise IndexError("cannot index an empty tensor")
        coords = tuple(coords)
        value = self.intercept + self._scores[self.shape.encode(coords)].item()
        for dim in range(self.shape.rank):
            value += self.marginals[self.shape.marginal_slot(dim, coords)].item()
        return value

    def max_impurity(self) -> float:
        """Максимальный |взвешенный mean| по всем линиям остатка."""
        if self.shape is None:
            return 0.0
        return max_impurity(self.shape, self._weights, self._scores)

    def __repr__(self) -> str:
        reason = self.report.stop_reason.value if self.report is not None else "empty"
        return (
            f"PurifiedTensor(dims={self.dims}, intercept={self.intercept:g}, "
            f"stop={reason})"
        )


def purify_tensor(scores, weights=None, config: Optional[PurifyConfig] = None) -> PurifiedTensor:
    """Очищает копию `scores` и возвращает `PurifiedTensor`.

    Args:
        scores: torch.Tensor, np.ndarray или вложенный список.
        weights: веса той же формы; по умолчанию единицы.
        config: `PurifyConfig`; по умолчанию tolerance=0 и с intercept.

    Raises:
        InvalidArgumentError, ResourceExhaustedError: если проверка не прошла.
    """
    if config is None:
        config = PurifyConfig()

    s = _as_float64(scores, "scores")
    w = torch.ones_like(s) if weights is None else _as_float64(weights, "weights")
    if tuple(w.shape) != tuple(s.shape):
        raise InvalidArgumentError(
            f"weights shape {tuple(w.shape)} does not match scores shape {tuple(s.shape)}"
        )

    dims = tuple(s.shape)
    perm = tuple(reversed(range(len(dims))))
    work = s.permute(perm).clone(memory_format=torch.contiguous_format).view(-1)
    w_flat = w.permute(perm).reshape(-1)
    marginal_size = sum(math.prod(dims[:i] + dims[i + 1:]) for i in range(len(dims)))
    marginals = torch.zeros(marginal_size, dtype=torch.float64, device=s.device)
    intercept_out = (
        torch.zeros((), dtype=torch.float64, device=s.device) if config.extract_intercept else None
    )

    status, shape = validate_arguments(len(dims), dims, w_flat, work, marginals, intercept_out)
    check_status(status, "purify_tensor")

    report = None
    if shape is not None:
        report = purify_inplace(
            shape, config.tolerance, w_flat, work, marginals, intercept_out, config.max_passes
        )

    intercept = intercept_out.item() if intercept_out is not None else 0.0
    return PurifiedTensor(dims, shape, work, w_flat, marginals, intercept, report)
