# structsvm/model/parameters.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict

import numpy as np


@dataclass
class ParameterBlock:
    """
    One group of learned coordinates with their AdaGrad state.

    w : value (weight / bias / cost weight)
    G : running sum of squared subgradients (non-decreasing)
    u : running sum of subgradients (only moved when l1 > 0)
    """

    w: np.ndarray
    G: np.ndarray
    u: np.ndarray

    @classmethod
    def zeros(cls, size: int) -> "ParameterBlock":
        return cls(
            w=np.zeros(size, dtype=np.float64),
            G=np.zeros(size, dtype=np.float64),
            u=np.zeros(size, dtype=np.float64),
        )

    def copy(self) -> "ParameterBlock":
        return ParameterBlock(w=self.w.copy(), G=self.G.copy(), u=self.u.copy())

    def __len__(self) -> int:
        return int(self.w.shape[0])


@dataclass
class WeightArena:
    """
    WeightArena（FINAL / FROZEN）

    Semantics:
    - Owned by exactly one model instance, never shared
    - features is a flat (num_labels * num_features) block,
      index = label_index * num_features + feature_index
    - s is the lazy weight scale (1.0 except for the Pegasos variant);
      effective weights are s * features.w
    - t is the global step counter, starts at 1
    """

    num_labels: int
    num_features: int
    num_costs: int = 0

    features: ParameterBlock = field(init=False)
    bias: ParameterBlock = field(init=False)
    costs: ParameterBlock = field(init=False)

    t: int = 1
    s: float = 1.0
    feature_names: Dict[int, str] = field(default_factory=dict)

    def __post_init__(self):
        self.features = ParameterBlock.zeros(self.num_labels * self.num_features)
        self.bias = ParameterBlock.zeros(self.num_labels)
        self.costs = ParameterBlock.zeros(self.num_costs)

    # -------------------------
    # Indexing
    # -------------------------
    def weight_index(self, label_index: int, feature_index: int) -> int:
        return label_index * self.num_features + feature_index

    def label_of(self, weight_index: int) -> int:
        return weight_index // self.num_features

    def feature_of(self, weight_index: int) -> int:
        return weight_index % self.num_features

    def offset(self, label_index: int) -> int:
        return label_index * self.num_features

    # -------------------------
    # Views
    # -------------------------
    def effective_weights(self) -> np.ndarray:
        if self.s == 1.0:
            return self.features.w
        return self.s * self.features.w

    def weight_matrix(self) -> np.ndarray:
        """(num_labels, num_features) view of the effective weights."""
        return self.effective_weights().reshape(self.num_labels, self.num_features)

    def l1_norm(self) -> float:
        return float(np.abs(self.effective_weights()).sum())

    def l2_norm_sq(self) -> float:
        w = self.effective_weights()
        return float(w @ w)

    # -------------------------
    # Ownership
    # -------------------------
    def clone(self) -> "WeightArena":
        other = WeightArena(
            num_labels=self.num_labels,
            num_features=self.num_features,
            num_costs=self.num_costs,
            t=self.t,
            s=self.s,
            feature_names=dict(self.feature_names),
        )
        other.features = self.features.copy()
        other.bias = self.bias.copy()
        other.costs = self.costs.copy()
        return other
