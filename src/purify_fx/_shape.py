"""purify_fx._shape
===================
Форма тензора и смешанно-основная (mixed-radix) индексация.

Измерение 0 меняется быстрее всех: stride[d] равен произведению длин
всех предшествующих измерений. Поэтому плоский буфер очков
соответствует torch-тензору формы `reversed(lengths)` в C-порядке.

«Линия» измерения d — набор ячеек, у которых зафиксированы все координаты,
кроме d. Линии каждого измерения нумеруются смешанно-основным индексом
остальных измерений (младшее измерение — быстрее всех).
"""

from __future__ import annotations

import operator
from typing import Sequence, Tuple

__all__ = ["Shape"]


class Shape:
    """Длины измерений + предвычисленные strides и смещения блоков маргиналов.

    Кодек координат (encode/decode/line_index/line_origin) работает
    только на целочисленной арифметике и не трогает буферы.
    """

    __slots__ = ("lengths", "strides", "size", "line_counts", "offsets", "marginal_size")

    def __init__(self, lengths: Sequence[int]):
        lengths = tuple(operator.index(n) for n in lengths)
        if not lengths:
            raise ValueError("Shape requires at least one dimension")
        if any(n < 1 for n in lengths):
            raise ValueError(f"Shape lengths must be positive, got {lengths}")

        strides = []
        size = 1
        for n in lengths:
            strides.append(size)
            size *= n

        line_counts = tuple(size // n for n in lengths)
        offsets = []
        total = 0
        for count in line_counts:
            offsets.append(total)
            total += count

        self.lengths: Tuple[int, ...] = lengths
        self.strides: Tuple[int, ...] = tuple(strides)
        self.size: int = size
        self.line_counts: Tuple[int, ...] = line_counts
        self.offsets: Tuple[int, ...] = tuple(offsets)
        self.marginal_size: int = total

    @property
    def rank(self) -> int:
        return len(self.lengths)

    @property
    def torch_shape(self) -> Tuple[int, ...]:
        """Форма C-порядка, в которой плоский буфер виден как тензор."""
        return tuple(reversed(self.lengths))

    def axis(self, dim: int) -> int:
        """Ось `torch_shape`, соответствующая измерению `dim`."""
        return self.rank - 1 - dim

    def encode(self, coords: Sequence[int]) -> int:
        if len(coords) != self.rank:
            raise ValueError(f"expected {self.rank} coordinates, got {len(coords)}")
        index = 0
        for c, n, stride in zip(coords, self.lengths, self.strides):
            if not 0 <= c < n:
                raise IndexError(f"coordinate {c} out of range for length {n}")
            index += c * stride
        return index

    def decode(self, index: int) -> Tuple[int, ...]:
        if not 0 <= index < self.size:
            raise IndexError(f"cell index {index} out of range for size {self.size}")
        coords = []
        for n in self.lengths:
            coords.append(index % n)
            index //= n
        return tuple(coords)

    def line_index(self, dim: int, coords: Sequence[int]) -> int:
        """Номер линии измерения `dim`, проходящей через ячейку `coords`."""
        index = 0
        multiple = 1
        for d, (c, n) in enumerate(zip(coords, self.lengths)):
            if d == dim:
                continue
            index += c * multiple
            multiple *= n
        return index

    def line_origin(self, dim: int, line: int) -> int:
        """Плоский индекс первой ячейки линии `line` измерения `dim`."""
        if not 0 <= line < self.line_counts[dim]:
            raise IndexError(f"line {line} out of range for dimension {dim}")
        origin = 0
        for d, (n, stride) in enumerate(zip(self.lengths, self.strides)):
            if d == dim:
                continue
            origin += (line % n) * stride
            line //= n
        return origin

    def line_cells(self, dim: int, line: int) -> range:
        """Плоские индексы всех ячеек линии, по возрастанию координаты `dim`."""
        origin = self.line_origin(dim, line)
        stride = self.strides[dim]
        return range(origin, origin + stride * self.lengths[dim], stride)

    def marginal_slot(self, dim: int, coords: Sequence[int]) -> int:
        """Позиция в буфере маргиналов для линии измерения `dim` через `coords`."""
        return self.offsets[dim] + self.line_index(dim, coords)

    def __eq__(self, other):
        if not isinstance(other, Shape):
            return NotImplemented
        return self.lengths == other.lengths

    def __hash__(self):
        return hash(self.lengths)

    def __repr__(self) -> str:
        return f"Shape{self.lengths}"
