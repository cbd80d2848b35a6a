"""purify_fx._engine
====================
Итеративная очистка (purification) тензора очков.

* purify_inplace — раскладывает очки на intercept, маргиналы по каждому
  измерению и «чистое» взаимодействие, изменяя буферы вызывающего на месте.
* line_means — взвешенные средние всех линий (диагностика, без мутаций).
* max_impurity — максимальный |line mean| по всем измерениям.

Все буферы — плоские `torch.float64` тензоры. Плоский буфер очков виден
как тензор формы `shape.torch_shape`, так что все линии одного измерения
обрабатываются одной редукцией по соответствующей оси. Линии одного
измерения не пересекаются, поэтому результат совпадает с поочерёдным
обходом линий в порядке их нумерации.
"""

from __future__ import annotations

import logging
import math
from enum import Enum
from typing import List, NamedTuple, Optional, Tuple

import torch

from ._core import safe_mean, weighted_totals
from ._shape import Shape

__all__ = [
    "StopReason",
    "PurifyReport",
    "purify_inplace",
    "line_means",
    "max_impurity",
]

logger = logging.getLogger(__name__)


class StopReason(Enum):
    ZERO_WEIGHT = "zero_weight"
    CONVERGED = "converged"
    PLATEAU = "plateau"
    MAX_PASSES = "max_passes"


class PurifyReport(NamedTuple):
    stop_reason: StopReason
    passes: int
    threshold: float
    intercept: float
    # сумма |mean| за последний проход
    impurity: float


def _sweep(
    shape: Shape,
    dim: int,
    weights: torch.Tensor,
    scores: torch.Tensor,
    weight_total: torch.Tensor,
    block: torch.Tensor,
    threshold: float,
) -> Tuple[bool, float]:
    """Центрирует все линии измерения `dim` и копит средние в `block`.

    `weight_total` — веса линий, посчитанные один раз до проходов.
    Возвращает (была ли линия с |mean| > threshold, сумма |mean|).
    """
    axis = shape.axis(dim)
    # временный тензор s*w полного размера живёт только внутри свёртки
    impurity = (scores * weights).sum(dim=axis)
    mean = safe_mean(impurity, weight_total)

    block.add_(mean.reshape(-1))
    scores.sub_(mean.unsqueeze(axis))

    abs_mean = mean.abs()
    return bool((abs_mean > threshold).any()), abs_mean.sum().item()


@torch.no_grad()
def purify_inplace(
    shape: Shape,
    tolerance: float,
    weights: torch.Tensor,
    scores: torch.Tensor,
    marginals: torch.Tensor,
    intercept_out: Optional[torch.Tensor] = None,
    max_passes: Optional[int] = None,
) -> PurifyReport:
    """Очищает `scores` на месте. Аргументы должны быть уже проверены.

    1. Агрегатный проход: sum(w), sum(s*w), sum(|s*w|).
    2. Если суммарный вес равен нулю — ничего не трогаем.
    3. threshold = sum(|s*w|) * tolerance / sum(w).
    4. Если передан `intercept_out`, вычитаем глобальное взвешенное среднее.
    5. Обнуляем маргиналы и повторяем проходы по всем линиям всех
       измерений, пока какая-то линия превышает threshold и сумма |mean|
       за проход строго уменьшается.

    Движок не бывает неуспешным: при нулевом весе линии её среднее равно 0.
    """
    w_view = weights.reshape(shape.torch_shape)
    s_view = scores.view(shape.torch_shape)
    flat_scores = scores.view(-1)
    flat_marginals = marginals.view(-1)

    weight_total, impurity_total, impurity_max = weighted_totals(w_view, s_view)

    if weight_total == 0.0:
        logger.debug("purify: total weight is zero, nothing to purify")
        return PurifyReport(StopReason.ZERO_WEIGHT, 0, 0.0, 0.0, 0.0)

    threshold = impurity_max * tolerance / weight_total

    intercept = 0.0
    if intercept_out is not None:
        # Intercept вынимается до очистки по осям.
        intercept = impurity_total / weight_total
        intercept_out.fill_(intercept)
        flat_scores.sub_(intercept)

    flat_marginals.zero_()
    blocks = [
        flat_marginals.narrow(0, offset, count)
        for offset, count in zip(shape.offsets, shape.line_counts)
    ]

    # веса не меняются, поэтому их суммы по линиям считаются один раз
    line_weights = [w_view.sum(dim=shape.axis(dim)) for dim in range(shape.rank)]

    impurity_prev = math.inf
    impurity_cur = 0.0
    passes = 0
    while True:
        impurity_cur = 0.0
        retry = False
        passes += 1

        for dim in range(shape.rank):
            exceeded, total = _sweep(
                shape, dim, w_view, s_view, line_weights[dim], blocks[dim], threshold
            )
            retry |= exceeded
            impurity_cur += total

        if not retry:
            reason = StopReason.CONVERGED
            break
        # сумма |mean| не уменьшилась: дальше только шум плавающей точки
        if impurity_prev <= impurity_cur:
            reason = StopReason.PLATEAU
            break
        if max_passes is not None and passes >= max_passes:
            reason = StopReason.MAX_PASSES
            break
        impurity_prev = impurity_cur

    logger.debug(
        "purify: stopped (%s) after %d passes, threshold=%g, impurity=%g",
        reason.value, passes, threshold, impurity_cur,
    )
    return PurifyReport(reason, passes, threshold, intercept, impurity_cur)


def line_means(shape: Shape, weights: torch.Tensor, scores: torch.Tensor) -> List[torch.Tensor]:
    """Взвешенные средние всех линий, по одному 1D тензору на измерение.

    Порядок внутри тензора совпадает с порядком блока маргиналов.
    """
    w_view = weights.reshape(shape.torch_shape)
    s_view = scores.reshape(shape.torch_shape)
    means = []
    for dim in range(shape.rank):
        axis = shape.axis(dim)
        impurity = (s_view * w_view).sum(dim=axis)
        means.append(safe_mean(impurity, w_view.sum(dim=axis)).reshape(-1))
    return means


def max_impurity(shape: Shape, weights: torch.Tensor, scores: torch.Tensor) -> float:
    return max(m.abs().max().item() for m in line_means(shape, weights, scores))
