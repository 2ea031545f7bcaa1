# structsvm/model/scorer.py
from __future__ import annotations

from typing import Hashable, Mapping, Optional

import numpy as np

from structsvm.model.cost import CostModel
from structsvm.model.label_index import LabelIndex
from structsvm.model.parameters import WeightArena
from structsvm.model.sparse import SparseVectorOps
from structsvm.utils.errors import CollaboratorFailure


class LinearScorer:
    """
    score(x, label) = s * w[label] . x + b[label]  (+ cost(x, label) . v)

    Read-only over the arena: safe to share between threads as long as
    nobody is training the same arena concurrently.
    """

    def __init__(
        self,
        arena: WeightArena,
        labels: LabelIndex,
        cost_model: Optional[CostModel] = None,
    ):
        self.arena = arena
        self.labels = labels
        self.cost_model = cost_model

    def scores(self, x: Mapping[int, float], example=None, include_cost: bool = False) -> np.ndarray:
        """Scores of every label, in label-index order."""
        arena = self.arena
        idx, val = SparseVectorOps.to_arrays(x)
        if idx.size and idx.max() >= arena.num_features:
            raise CollaboratorFailure(
                f"feature index {int(idx.max())} outside vocabulary of size {arena.num_features}"
            )

        W = arena.features.w.reshape(arena.num_labels, arena.num_features)
        out = arena.bias.w.copy()
        if idx.size:
            out += arena.s * (W[:, idx] @ val)

        if include_cost and self.cost_model is not None:
            for k, label in enumerate(self.labels):
                out[k] += self.cost_term(example, label)
        return out

    def score(
        self,
        x: Mapping[int, float],
        example,
        label_index: int,
        include_cost: bool = False,
    ) -> float:
        arena = self.arena
        value = arena.s * SparseVectorOps.dot(arena.features.w, x, arena.offset(label_index))
        value += arena.bias.w[label_index]
        if include_cost and self.cost_model is not None:
            value += self.cost_term(example, self.labels.label(label_index))
        return float(value)

    # ---------------- cost ----------------

    def cost_vector(self, example, label: Hashable):
        vector = self.cost_model.cost_vector(example, label)
        if vector is None:
            raise CollaboratorFailure(
                f"cost model {self.cost_model.name!r} returned no vector for example {getattr(example, 'id', example)}"
            )
        return vector

    def cost_weights(self) -> np.ndarray:
        if self.cost_model.learned:
            return self.arena.costs.w
        return self.cost_model.fixed_weights()

    def cost_term(self, example, label: Hashable) -> float:
        vector = self.cost_vector(example, label)
        if not vector:
            return 0.0
        return SparseVectorOps.dot(self.cost_weights(), vector)
