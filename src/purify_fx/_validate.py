"""purify_fx._validate
======================
Граница вызова: проверка аргументов перед запуском движка.

Все проверки выполняются до того, как тронут хоть один буфер, кроме
`intercept_out` (он обнуляется первым, даже если дальше будет ошибка).
"""

from __future__ import annotations

import logging
import operator
from typing import Optional, Sequence, Tuple

import torch

from ._config import MAX_DIMENSIONS
from ._core import checked_mul, to_index
from ._engine import purify_inplace
from ._errors import Status
from ._shape import Shape

__all__ = ["validate_arguments", "purify"]

logger = logging.getLogger(__name__)


def _describe(t) -> str:
    if isinstance(t, torch.Tensor):
        return f"Tensor(shape={tuple(t.shape)}, dtype={t.dtype})"
    return type(t).__name__


def _check_buffer(name: str, t, numel: int, contiguous: bool, writable: bool = True, device=None) -> bool:
    if t is None:
        logger.error("ERROR purify %s is None", name)
        return False
    if not isinstance(t, torch.Tensor) or t.dtype != torch.float64:
        logger.error("ERROR purify %s must be a torch.float64 tensor, got %s", name, _describe(t))
        return False
    if t.numel() != numel:
        logger.error("ERROR purify %s has %d elements, expected %d", name, t.numel(), numel)
        return False
    if contiguous and not t.is_contiguous():
        logger.error("ERROR purify %s must be contiguous", name)
        return False
    # in-place запись в тензор с автоградом сломала бы граф вычислений
    if writable and t.requires_grad:
        logger.error("ERROR purify %s must not require grad", name)
        return False
    if device is not None and t.device != device:
        logger.error("ERROR purify %s is on %s, expected %s", name, t.device, device)
        return False
    return True


def validate_arguments(
    dimension_count: int,
    dimension_lengths: Optional[Sequence[int]],
    weights: Optional[torch.Tensor],
    scores: Optional[torch.Tensor],
    marginals: Optional[torch.Tensor],
    intercept_out: Optional[torch.Tensor] = None,
) -> Tuple[Status, Optional[Shape]]:
    """Проверяет аргументы `purify`.

    Возвращает `(status, shape)`. `shape is None` означает, что движок
    запускать не нужно: либо ошибка, либо успешный no-op (ноль измерений
    или пустой тензор). Побочный эффект: `intercept_out` обнуляется.
    """
    # intercept обнуляется первым и безусловно; его форма проверяется позже
    if isinstance(intercept_out, torch.Tensor):
        with torch.no_grad():
            intercept_out.fill_(0.0)

    try:
        dimension_count = operator.index(dimension_count)
    except TypeError:
        logger.error("ERROR purify dimension_count must be an integer, got %r", dimension_count)
        return Status.INVALID_ARGUMENT, None

    if dimension_count <= 0:
        if dimension_count == 0:
            logger.info("INFO purify zero dimensions")
            return Status.SUCCESS, None
        logger.error("ERROR purify dimension_count must be positive")
        return Status.INVALID_ARGUMENT, None
    if dimension_count > MAX_DIMENSIONS:
        logger.warning("WARNING purify dimension_count too large and would cause out of memory condition")
        return Status.RESOURCE_EXHAUSTED, None

    if dimension_lengths is None:
        logger.error("ERROR purify dimension_lengths is None")
        return Status.INVALID_ARGUMENT, None
    if len(dimension_lengths) < dimension_count:
        logger.error(
            "ERROR purify dimension_lengths has %d entries, expected %d",
            len(dimension_lengths), dimension_count,
        )
        return Status.INVALID_ARGUMENT, None

    # Один проход: отрицательная длина сразу ошибка, ноль — только флаг.
    lengths = []
    has_zero = False
    for length in dimension_lengths[:dimension_count]:
        try:
            length = operator.index(length)
        except TypeError:
            logger.error("ERROR purify dimension length must be an integer, got %r", length)
            return Status.INVALID_ARGUMENT, None
        if length <= 0:
            if length < 0:
                logger.error("ERROR purify dimension length cannot be negative")
                return Status.INVALID_ARGUMENT, None
            has_zero = True
        lengths.append(length)
    if has_zero:
        logger.info("INFO purify empty tensor")
        return Status.SUCCESS, None

    tensor_bins = 1
    for length in lengths:
        bins = to_index(length)
        if bins is None:
            # тензор с таким числом ячеек не может существовать
            logger.error("ERROR purify dimension length %d does not fit the index type", length)
            return Status.RESOURCE_EXHAUSTED, None
        product = checked_mul(tensor_bins, bins)
        if product is None:
            logger.error("ERROR purify tensor bin count overflows the index type")
            return Status.RESOURCE_EXHAUSTED, None
        tensor_bins = product

    shape = Shape(lengths)
    if not _check_buffer("weights", weights, tensor_bins, contiguous=False, writable=False):
        return Status.INVALID_ARGUMENT, None
    if not _check_buffer("scores", scores, tensor_bins, contiguous=True):
        return Status.INVALID_ARGUMENT, None
    # все буферы должны лежать на устройстве очков
    device = scores.device
    if weights.device != device:
        logger.error("ERROR purify weights is on %s, expected %s", weights.device, device)
        return Status.INVALID_ARGUMENT, None
    if not _check_buffer("marginals", marginals, shape.marginal_size, contiguous=True, device=device):
        return Status.INVALID_ARGUMENT, None
    if intercept_out is not None and not _check_buffer(
        "intercept_out", intercept_out, 1, contiguous=False, device=device
    ):
        return Status.INVALID_ARGUMENT, None

    return Status.SUCCESS, shape


def purify(
    tolerance: float,
    dimension_count: int,
    dimension_lengths: Optional[Sequence[int]],
    weights: Optional[torch.Tensor],
    scores: Optional[torch.Tensor],
    marginals: Optional[torch.Tensor],
    intercept_out: Optional[torch.Tensor] = None,
    *,
    max_passes: Optional[int] = None,
) -> Status:
    """Очищает тензор очков на месте.

    Args:
        tolerance: допуск сходимости (доля от sum(|s*w|) / sum(w)).
        dimension_count: число измерений; 0 — успешный no-op.
        dimension_lengths: длины измерений, измерение 0 меняется быстрее всех.
        weights: веса ячеек (только чтение).
        scores: очки; после вызова содержат чистое взаимодействие.
        marginals: выход, sum(size / length[d]) значений по блокам измерений.
        intercept_out: необязательный выход из одного элемента.
        max_passes: необязательный предохранитель числа проходов.

    Returns:
        `Status`. Буферы меняются только при `Status.SUCCESS`.
    """
    logger.debug(
        "Entered purify: tolerance=%r, dimension_count=%r, dimension_lengths=%r, "
        "weights=%s, scores=%s, marginals=%s, intercept_out=%s",
        tolerance, dimension_count, dimension_lengths,
        _describe(weights), _describe(scores), _describe(marginals), _describe(intercept_out),
    )

    status, shape = validate_arguments(
        dimension_count, dimension_lengths, weights, scores, marginals, intercept_out
    )
    if shape is None:
        return status

    try:
        tolerance = float(tolerance)
    except (TypeError, ValueError):
        logger.error("ERROR purify tolerance must be a real number, got %r", tolerance)
        return Status.INVALID_ARGUMENT

    purify_inplace(shape, tolerance, weights, scores, marginals, intercept_out, max_passes)

    logger.debug("Exited purify")
    return Status.SUCCESS
