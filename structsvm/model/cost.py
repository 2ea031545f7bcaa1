# structsvm/model/cost.py
from __future__ import annotations

import math
from abc import ABC, abstractmethod
from typing import Callable, ClassVar, Dict, Hashable, List, Optional

import numpy as np

from structsvm.utils.errors import ConfigurationError

# example -> gold label mapped onto the valid label set (None when unmappable)
GoldOf = Callable[[object], Optional[Hashable]]


class CostModel(ABC):
    """
    Cost model collaborator.

    cost_vector(example, label) -> {cost_index: value}
    An empty vector means "no cost" (prediction == gold).

    learned=True  : weights live in the model's cost block (simplex-projected)
    learned=False : fixed_weights() is used as-is
    """

    name: ClassVar[str]
    learned: ClassVar[bool] = True

    def __init__(self, c: float = 1.0):
        self.c = float(c)
        self.labels: List[Hashable] = []
        self._gold_of: Optional[GoldOf] = None

    def init(self, labels, dataset, gold_of: GoldOf) -> bool:
        self.labels = list(labels)
        self._gold_of = gold_of
        return len(self.labels) > 0

    def gold(self, example) -> Optional[Hashable]:
        if self._gold_of is None:
            raise ConfigurationError(f"cost model {self.name!r} used before init()")
        return self._gold_of(example)

    @abstractmethod
    def vocabulary_size(self) -> int:
        ...

    @abstractmethod
    def cost_vector(self, example, label: Hashable) -> Dict[int, float]:
        ...

    @abstractmethod
    def term(self, index: int) -> str:
        ...

    def fixed_weights(self) -> np.ndarray:
        return np.ones(self.vocabulary_size(), dtype=np.float64)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(c={self.c})"


class HammingCost(CostModel):
    """Unit margin: +c whenever label != gold. Not learned."""

    name = "hamming"
    learned = False

    def vocabulary_size(self) -> int:
        return 1

    def cost_vector(self, example, label):
        actual = self.gold(example)
        if actual is None or label == actual:
            return {}
        return {0: self.c}

    def term(self, index):
        return "hamming"


class ConstantCost(CostModel):
    name = "constant"

    def vocabulary_size(self) -> int:
        return 1

    def cost_vector(self, example, label):
        actual = self.gold(example)
        if actual is None or label == actual:
            return {}
        return {0: self.c}

    def term(self, index):
        return "constant"


class LabelCost(CostModel):
    """One factor per label, indexed by the actual or the predicted label."""

    name = "label"

    def __init__(self, c: float = 1.0, factor_mode: str = "actual"):
        super().__init__(c)
        if factor_mode not in ("actual", "predicted"):
            raise ConfigurationError(f"unknown factor_mode {factor_mode!r}")
        self.factor_mode = factor_mode

    def vocabulary_size(self) -> int:
        return len(self.labels)

    def cost_vector(self, example, label):
        actual = self.gold(example)
        if actual is None or label == actual:
            return {}
        key = actual if self.factor_mode == "actual" else label
        return {self.labels.index(key): self.c}

    def term(self, index):
        return str(self.labels[index])


class LabelPairCost(CostModel):
    """Ordered (actual, predicted) pairs, K*(K-1) factors."""

    name = "label_pair"

    def vocabulary_size(self) -> int:
        k = len(self.labels)
        return k * (k - 1)

    def cost_vector(self, example, label):
        actual = self.gold(example)
        if actual is None or label == actual:
            return {}
        a = self.labels.index(actual)
        p = self.labels.index(label)
        return {self._index(a, p): self.c}

    def _index(self, a: int, p: int) -> int:
        k = len(self.labels)
        return a * (k - 1) + (p - 1 if p > a else p)

    def term(self, index):
        k = len(self.labels)
        a, rest = divmod(index, k - 1)
        p = rest + 1 if rest >= a else rest
        return f"A_{self.labels[a]} P_{self.labels[p]}"


class LabelPairUnorderedCost(CostModel):
    """
    Unordered {a, b} pairs, K*(K-1)/2 factors.
    Triangular index: col*(col-1)/2 + row with row < col.
    """

    name = "label_pair_unordered"

    def vocabulary_size(self) -> int:
        k = len(self.labels)
        return k * (k - 1) // 2

    def cost_vector(self, example, label):
        actual = self.gold(example)
        if actual is None or label == actual:
            return {}
        a = self.labels.index(actual)
        p = self.labels.index(label)
        row, col = min(a, p), max(a, p)
        return {col * (col - 1) // 2 + row: self.c}

    def term(self, index):
        col = int(math.floor((1 + math.sqrt(8 * index + 1)) / 2))
        # guard float rounding at exact triangular numbers
        while col * (col - 1) // 2 > index:
            col -= 1
        while (col + 1) * col // 2 <= index:
            col += 1
        row = index - col * (col - 1) // 2
        return f"{self.labels[row]}_{self.labels[col]}"


# ---------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------
_COST_REGISTRY: Dict[str, Callable[..., CostModel]] = {
    "hamming": lambda c, factor_mode: HammingCost(c),
    "constant": lambda c, factor_mode: ConstantCost(c),
    "label": lambda c, factor_mode: LabelCost(c, factor_mode),
    "label_pair": lambda c, factor_mode: LabelPairCost(c),
    "label_pair_unordered": lambda c, factor_mode: LabelPairUnorderedCost(c),
}


def resolve_cost_model(name: str, *, c: float = 1.0, factor_mode: str = "actual") -> CostModel:
    if name not in _COST_REGISTRY:
        available = ", ".join(_COST_REGISTRY)
        raise ConfigurationError(f"No cost model {name!r}. Available: {available}")
    return _COST_REGISTRY[name](c, factor_mode)
