# structsvm/model/sparse.py
from __future__ import annotations

from typing import Dict, Mapping, Tuple

import numpy as np

SparseVector = Mapping[int, float]


class SparseVectorOps:
    """
    Arithmetic over {feature_index: value} mappings.

    Dense parameter arrays are indexed with an optional label offset
    (label_index * num_features), so one flat array holds all labels.
    """

    @staticmethod
    def to_arrays(x: SparseVector, offset: int = 0) -> Tuple[np.ndarray, np.ndarray]:
        if not x:
            return np.empty(0, dtype=np.int64), np.empty(0, dtype=np.float64)
        idx = np.fromiter(x.keys(), dtype=np.int64, count=len(x)) + offset
        val = np.fromiter(x.values(), dtype=np.float64, count=len(x))
        return idx, val

    @staticmethod
    def dot(weights: np.ndarray, x: SparseVector, offset: int = 0) -> float:
        idx, val = SparseVectorOps.to_arrays(x, offset)
        if idx.size == 0:
            return 0.0
        return float(weights[idx] @ val)

    @staticmethod
    def add_scaled(
        target: Dict[int, float],
        x: SparseVector,
        scale: float = 1.0,
        offset: int = 0,
    ) -> Dict[int, float]:
        """target += scale * x (in place, keys shifted by offset)."""
        for key, value in x.items():
            k = key + offset
            target[k] = target.get(k, 0.0) + scale * value
        return target

    @staticmethod
    def densify(x: SparseVector, size: int) -> np.ndarray:
        out = np.zeros(size, dtype=np.float64)
        idx, val = SparseVectorOps.to_arrays(x)
        np.add.at(out, idx, val)
        return out
