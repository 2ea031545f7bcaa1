# structsvm/model/simplex.py
from __future__ import annotations

from functools import cmp_to_key
from typing import Optional

import numpy as np

from structsvm.utils.logger import logs

_TOL = 1e-9


class SimplexProjector:
    """
    Projection onto {v : v >= 0, sum(v) = 1}.

    Weighted form minimizes sum_i G_i (v_i - raw_i)^2 for a diagonal
    metric G (the AdaGrad accumulators of the cost coordinates).
    Coordinates with G_i == 0 are pinned to 0.
    """

    @staticmethod
    def project(raw: np.ndarray, weights: Optional[np.ndarray] = None) -> np.ndarray:
        raw = np.asarray(raw, dtype=np.float64)
        if raw.size == 0:
            return raw.copy()
        if weights is None:
            return SimplexProjector._project_unweighted(raw)
        return SimplexProjector._project_weighted(raw, np.asarray(weights, dtype=np.float64))

    # ---------------- internal ----------------

    @staticmethod
    def _project_unweighted(raw: np.ndarray) -> np.ndarray:
        order = sorted(range(raw.size), key=lambda i: -raw[i])

        sum_v = 0.0
        theta = 0.0
        for p, i in enumerate(order):
            sum_v += raw[i]
            prev_theta = theta
            theta = (sum_v - 1.0) / (p + 1)
            if raw[i] - theta <= 0:
                theta = prev_theta
                break

        return np.maximum(0.0, raw - theta)

    @staticmethod
    def _project_weighted(raw: np.ndarray, G: np.ndarray) -> np.ndarray:
        def compare(i1: int, i2: int) -> int:
            # nonzero metric first, then descending G*(2v-1)
            if G[i1] != 0 and G[i2] == 0:
                return -1
            if G[i1] == 0 and G[i2] != 0:
                return 1
            k1 = G[i1] * (2.0 * raw[i1] - 1.0)
            k2 = G[i2] * (2.0 * raw[i2] - 1.0)
            return -1 if k1 > k2 else (1 if k1 < k2 else 0)

        order = sorted(range(raw.size), key=cmp_to_key(compare))

        sum_v = 0.0
        harmonic = 0.0
        theta = 0.0
        for i in order:
            if G[i] != 0:
                sum_v += raw[i]
                harmonic += 1.0 / G[i]
            prev_theta = theta
            if G[i] == 0:
                theta = prev_theta
                break
            theta = (sum_v - 1.0) / harmonic
            if raw[i] - theta / G[i] <= 0:
                theta = prev_theta
                break

        out = SimplexProjector._threshold(raw, G, theta)
        if out.size and G.any() and not SimplexProjector._on_simplex(out):
            # scan order disagreed with the exact G*raw threshold order
            logs.debug("[SimplexProjector] prefix scan off simplex, refining support")
            out = SimplexProjector._refine(raw, G)
        return out

    @staticmethod
    def _threshold(raw: np.ndarray, G: np.ndarray, theta: float) -> np.ndarray:
        out = np.zeros_like(raw)
        live = G != 0
        out[live] = np.maximum(0.0, raw[live] - theta / G[live])
        return out

    @staticmethod
    def _refine(raw: np.ndarray, G: np.ndarray) -> np.ndarray:
        # shrink the support until every member stays strictly positive
        support = G != 0
        while True:
            theta = (raw[support].sum() - 1.0) / (1.0 / G[support]).sum()
            keep = support & (raw - np.divide(theta, G, where=G != 0, out=np.zeros_like(G)) > 0)
            if keep.sum() == support.sum() or not keep.any():
                break
            support = keep
        return SimplexProjector._threshold(raw, np.where(support, G, 0.0), theta)

    @staticmethod
    def _on_simplex(v: np.ndarray) -> bool:
        return bool((v >= 0).all() and abs(v.sum() - 1.0) <= 1e-7 + _TOL * v.size)
