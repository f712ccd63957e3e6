"""
Particionado de secuencias en batches de tamaño fijo.
"""
from __future__ import annotations

from typing import Iterator, Sequence, TypeVar

T = TypeVar("T")


def chunk(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    """
    Divide `items` en slices consecutivos de `size` elementos.

    El último batch puede ser más chico. El orden de origen se preserva,
    lo que importa cuando un mismo PK reaparece en batches posteriores.
    """
    if size <= 0:
        raise ValueError("El tamaño de batch debe ser mayor que 0")

    for start in range(0, len(items), size):
        yield items[start:start + size]


def batch_count(total: int, size: int) -> int:
    """Cantidad de batches que produce `chunk` para `total` elementos."""
    if size <= 0:
        raise ValueError("El tamaño de batch debe ser mayor que 0")
    return -(-total // size)
