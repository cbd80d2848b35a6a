"""purify_fx._config
====================
Константы и параметры очистки (purification).

* MAX_DIMENSIONS — максимальный поддерживаемый ранг тензора
* INDEX_MAX — верхняя граница индексного типа (ширина адресации платформы)
* PurifyConfig — параметры высокоуровневого вызова `purify_tensor`
"""

from __future__ import annotations

import math
import sys
from dataclasses import dataclass
from typing import Optional

__all__ = ["MAX_DIMENSIONS", "INDEX_MAX", "PurifyConfig"]

# Тензоры большего ранга не поддерживаются (и не влезли бы в память).
MAX_DIMENSIONS = 30

INDEX_MAX = sys.maxsize


@dataclass(frozen=True)
class PurifyConfig:
    """Параметры очистки.

    tolerance — допуск сходимости как доля от sum(|score*weight|) / sum(weight).
    extract_intercept — извлекать ли глобальное среднее до очистки по осям.
    max_passes — необязательный предохранитель числа проходов (None = без лимита).
    """

    tolerance: float = 0.0
    extract_intercept: bool = True
    max_passes: Optional[int] = None

    def __post_init__(self):
        if math.isnan(self.tolerance) or self.tolerance < 0.0:
            raise ValueError(f"tolerance must be non-negative, got {self.tolerance}")
        if self.max_passes is not None and self.max_passes < 1:
            raise ValueError(f"max_passes must be positive, got {self.max_passes}")
