# structsvm/model/updater.py
from __future__ import annotations

import math
from typing import Optional

import numpy as np

from structsvm.model.parameters import ParameterBlock


class AdaptiveWeightUpdater:
    """
    AdaGrad per-coordinate update with optional proximal L1
    (truncated gradient on the dual average u).

    Per coordinate i at step t:
        G_i += g^2
        u_i += g                      (l1 > 0 only)
        G_i == 0  -> no-op
        l1 == 0   -> w_i -= g * n / sqrt(G_i)
        l1 > 0    -> w_i = 0                                   if |u_i|/t <= l1
                     w_i = -sign(u_i) * (t*n/sqrt(G_i)) * (|u_i|/t - l1)  otherwise

    L2 is folded into g by the caller.
    """

    def __init__(self, l1: float = 0.0, n: float = 1.0):
        self.l1 = float(l1)
        self.n = float(n)

    def apply_gradient(self, block: ParameterBlock, index: int, g: float, t: int) -> None:
        block.G[index] += g * g
        if self.l1 > 0:
            block.u[index] += g

        G = block.G[index]
        if G == 0:
            return

        if self.l1 == 0:
            block.w[index] -= g * self.n / math.sqrt(G)
            return

        u = block.u[index]
        if abs(u) / t <= self.l1:
            block.w[index] = 0.0
        else:
            block.w[index] = -math.copysign(1.0, u) * (t * self.n / math.sqrt(G)) * (abs(u) / t - self.l1)

    def apply(
        self,
        block: ParameterBlock,
        g: np.ndarray,
        t: int,
        indices: Optional[np.ndarray] = None,
    ) -> None:
        """
        Vectorized apply_gradient.

        indices=None means g covers every coordinate of the block.
        indices must not contain duplicates.
        """
        sel = slice(None) if indices is None else indices

        G = block.G[sel] + g * g
        block.G[sel] = G
        if self.l1 > 0:
            block.u[sel] = block.u[sel] + g

        live = G != 0
        w = block.w[sel]

        if self.l1 == 0:
            w[live] = w[live] - g[live] * self.n / np.sqrt(G[live])
        else:
            u = block.u[sel]
            ratio = np.abs(u) / t
            prune = live & (ratio <= self.l1)
            keep = live & (ratio > self.l1)
            w[prune] = 0.0
            w[keep] = -np.sign(u[keep]) * (t * self.n / np.sqrt(G[keep])) * (ratio[keep] - self.l1)

        block.w[sel] = w
