"""
functions.py
============

Separable scalar functions used to describe a problem in graph form

    minimize  sum_i f_i(y_i) + sum_j g_j(x_j)   subject to  y = A x

Each f_i / g_j is a :class:`FunctionDescriptor`: a kind ``h`` together with a
positive ``scale`` and an ``offset``, evaluated as ``scale * h(v - offset)``.

For the Lasso the rows carry ``Square`` losses centred on the observations and
the columns carry ``Abs`` penalties whose scale is the current lambda.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import List, Sequence, Tuple

import numpy as np


class FunctionKind(Enum):
    ZERO = "zero"
    SQUARE = "square"      # h(u) = u^2 / 2
    ABS = "abs"            # h(u) = |u|
    IND_GE0 = "ind_ge0"    # h(u) = 0 if u >= 0 else +inf


KIND_CODES = {kind: code for code, kind in enumerate(FunctionKind)}


@dataclass
class FunctionDescriptor:
    """One separable term ``scale * h(v - offset)``.

    ``scale`` is the only field the path driver mutates (once per lambda step).
    """

    kind: FunctionKind
    scale: float = 1.0
    offset: float = 0.0

    def __post_init__(self):
        if not isinstance(self.kind, FunctionKind):
            self.kind = FunctionKind(self.kind)
        if not self.scale > 0:
            raise ValueError(f"scale must be positive, got {self.scale!r}")

    def evaluate(self, v: float) -> float:
        kinds, scales, offsets = as_arrays([self])
        return float(evaluate(kinds, scales, offsets, np.array([v], dtype=float))[0])

    def prox(self, v: float, rho: float) -> float:
        kinds, scales, offsets = as_arrays([self])
        return float(prox(kinds, scales, offsets, np.array([v], dtype=float), rho)[0])


def as_arrays(descriptors: Sequence[FunctionDescriptor]) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Return (kind codes, scales, offsets) as flat arrays for vectorised evaluation."""
    kinds = np.fromiter((KIND_CODES[d.kind] for d in descriptors), dtype=np.int8, count=len(descriptors))
    scales = np.fromiter((d.scale for d in descriptors), dtype=float, count=len(descriptors))
    offsets = np.fromiter((d.offset for d in descriptors), dtype=float, count=len(descriptors))
    return kinds, scales, offsets


def evaluate(kinds: np.ndarray, scales: np.ndarray, offsets: np.ndarray, v: np.ndarray) -> np.ndarray:
    """Elementwise ``scale * h(v - offset)``."""
    u = v - offsets
    out = np.zeros_like(u)

    mask = kinds == KIND_CODES[FunctionKind.SQUARE]
    out[mask] = 0.5 * scales[mask] * u[mask] ** 2

    mask = kinds == KIND_CODES[FunctionKind.ABS]
    out[mask] = scales[mask] * np.abs(u[mask])

    mask = kinds == KIND_CODES[FunctionKind.IND_GE0]
    out[mask] = np.where(u[mask] >= 0, 0.0, np.inf)
    return out


def prox(kinds: np.ndarray, scales: np.ndarray, offsets: np.ndarray, v: np.ndarray, rho: float) -> np.ndarray:
    """Elementwise ``argmin_u scale * h(u - offset) + rho / 2 * (u - v)^2``."""
    out = v.copy()

    mask = kinds == KIND_CODES[FunctionKind.SQUARE]
    c = scales[mask]
    out[mask] = (c * offsets[mask] + rho * v[mask]) / (c + rho)

    mask = kinds == KIND_CODES[FunctionKind.ABS]
    u = v[mask] - offsets[mask]
    out[mask] = offsets[mask] + np.sign(u) * np.maximum(np.abs(u) - scales[mask] / rho, 0.0)

    mask = kinds == KIND_CODES[FunctionKind.IND_GE0]
    out[mask] = np.maximum(v[mask], offsets[mask])
    return out


# -----------------------------------------------------------------------------
# Lasso descriptors
# -----------------------------------------------------------------------------

def build_descriptors(b: np.ndarray, n: int) -> Tuple[List[FunctionDescriptor], List[FunctionDescriptor]]:
    """Row losses ``(1/2)(y_i - b_i)^2`` and column penalties ``|x_j|``.

    The penalty scale is a placeholder; :func:`set_penalty` overwrites it.
    """
    b = np.asarray(b, dtype=float)
    f = [FunctionDescriptor(FunctionKind.SQUARE, 1.0, float(b_row)) for b_row in b]
    g = [FunctionDescriptor(FunctionKind.ABS, 1.0, 0.0) for _ in range(n)]
    return f, g


def set_penalty(g: Sequence[FunctionDescriptor], lam: float) -> None:
    """Overwrite the scale of every column descriptor with ``lam``."""
    if not lam > 0:
        raise ValueError(f"lambda must be positive, got {lam!r}")
    for descriptor in g:
        descriptor.scale = float(lam)
