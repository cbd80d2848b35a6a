import math
from typing import List, Optional, Sequence, Tuple

import torch
from mpmath import mp

from purify_fx import Shape

mp.dps = 100  # Повысим точность для надежности


def make_buffers(
    lengths: Sequence[int],
    scores: Sequence[float],
    weights: Optional[Sequence[float]] = None,
    intercept: bool = True,
) -> Tuple[torch.Tensor, torch.Tensor, torch.Tensor, Optional[torch.Tensor]]:
    """Создаёт (scores, weights, marginals, intercept_out) для вызова `purify`."""
    s = torch.tensor(scores, dtype=torch.float64)
    w = torch.ones_like(s) if weights is None else torch.tensor(weights, dtype=torch.float64)
    m = torch.full((Shape(lengths).marginal_size,), 123.0, dtype=torch.float64)
    i = torch.full((1,), 7.0, dtype=torch.float64) if intercept else None
    return s, w, m, i


def mp_weighted_mean(values: Sequence[float], weights: Sequence[float]) -> mp.mpf:
    """Точное взвешенное среднее через mpmath (0 при нулевом весе)."""
    num = mp.fsum(mp.mpf(v) * mp.mpf(w) for v, w in zip(values, weights))
    den = mp.fsum(mp.mpf(w) for w in weights)
    if den == 0:
        return mp.mpf(0)
    return num / den


def mp_line_means(shape: Shape, weights: torch.Tensor, scores: torch.Tensor, dim: int) -> List[mp.mpf]:
    """Эталонные средние всех линий измерения `dim`, линия за линией."""
    w = weights.reshape(-1).tolist()
    s = scores.reshape(-1).tolist()
    result = []
    for line in range(shape.line_counts[dim]):
        cells = shape.line_cells(dim, line)
        result.append(mp_weighted_mean([s[c] for c in cells], [w[c] for c in cells]))
    return result


def reference_purify(
    lengths: Sequence[int],
    weights: Sequence[float],
    scores: Sequence[float],
    tolerance: float,
    intercept: bool = True,
    max_passes: Optional[int] = None,
):
    """Поячеечная эталонная очистка: линии обходятся строго по одной.

    Возвращает (scores, marginals, intercept, passes) как списки/числа.
    """
    shape = Shape(lengths)
    s = list(scores)
    w = list(weights)

    weight_total = math.fsum(w)
    if weight_total == 0.0:
        return s, [0.0] * shape.marginal_size, 0.0, 0

    threshold = math.fsum(abs(x * y) for x, y in zip(s, w)) * tolerance / weight_total
    b0 = 0.0
    if intercept:
        b0 = math.fsum(x * y for x, y in zip(s, w)) / weight_total
        s = [x - b0 for x in s]

    marginals = [0.0] * shape.marginal_size
    prev = math.inf
    passes = 0
    while True:
        passes += 1
        cur = 0.0
        retry = False
        for dim in range(shape.rank):
            for line in range(shape.line_counts[dim]):
                cells = shape.line_cells(dim, line)
                num = math.fsum(s[c] * w[c] for c in cells)
                den = math.fsum(w[c] for c in cells)
                mean = 0.0 if den == 0.0 else num / den
                retry |= abs(mean) > threshold
                cur += abs(mean)
                marginals[shape.offsets[dim] + line] += mean
                for c in cells:
                    s[c] -= mean
        if not retry or prev <= cur:
            break
        if max_passes is not None and passes >= max_passes:
            break
        prev = cur
    return s, marginals, b0, passes
