from __future__ import annotations

"""purify_fx._core
==================
Числовые примитивы, используемые во всём пакете purify_fx.

* to_index — проверенное сужение целого в индексный диапазон
* checked_mul — умножение с контролем переполнения
* weighted_totals — агрегатный проход по тензору
* safe_mean — взвешенное среднее с нулём при нулевом весе

Целочисленные функции работают с Python int и никогда не полагаются
на wraparound: вместо этого возвращается `None`.
"""

import operator
from typing import Optional, Tuple

import torch

from ._config import INDEX_MAX

__all__ = ["to_index", "checked_mul", "weighted_totals", "safe_mean"]


def to_index(value) -> Optional[int]:
    """Конвертирует целое без потерь в диапазон `[0, INDEX_MAX]`.

    Возвращает `None`, если значение не помещается в индексный тип.
    Для нецелых значений (float, str, ...) бросает `TypeError`
    из `operator.index`.
    """
    v = operator.index(value)
    if v < 0 or v > INDEX_MAX:
        return None
    return v


def checked_mul(a: int, b: int, limit: int = INDEX_MAX) -> Optional[int]:
    """Произведение `a * b` или `None`, если оно превысит `limit`.

    Проверка делается до умножения, как это сделал бы код
    с фиксированной разрядностью.
    """
    if a < 0 or b < 0:
        raise ValueError("checked_mul expects non-negative operands")
    if a != 0 and b > limit // a:
        return None
    return a * b


def weighted_totals(weights: torch.Tensor, scores: torch.Tensor) -> Tuple[float, float, float]:
    """Один линейный проход: (sum(w), sum(s*w), sum(|s*w|))."""
    impurity = scores * weights
    weight_total = weights.sum().item()
    impurity_total = impurity.sum().item()
    impurity_max = impurity.abs().sum().item()
    return weight_total, impurity_total, impurity_max


def safe_mean(numerator: torch.Tensor, denominator: torch.Tensor) -> torch.Tensor:
    """Покомпонентное `numerator / denominator`, где нулевой вес даёт 0.

    Никогда не возвращает NaN из-за деления 0/0.
    """
    zero = denominator == 0.0
    safe = torch.where(zero, torch.ones_like(denominator), denominator)
    return torch.where(zero, torch.zeros_like(numerator), numerator / safe)
