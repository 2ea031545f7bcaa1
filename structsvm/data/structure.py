# structsvm/data/structure.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import (
    Callable,
    Dict,
    Hashable,
    Iterator,
    List,
    Mapping,
    Optional,
    Protocol,
    Sequence,
)

from structsvm.data.dataset import Dataset, Example
from structsvm.utils.errors import ConfigurationError

# example_id -> {label: score}
ScoreTable = Mapping[int, Mapping[Hashable, float]]
LabelMapping = Optional[Callable[[Hashable], Optional[Hashable]]]


# ---------------------------------------------------------------------
# Groups
# ---------------------------------------------------------------------
@dataclass
class ExampleGroup:
    """
    Examples labeled jointly ("datum structure").
    """

    key: Hashable
    examples: List[Example] = field(default_factory=list)

    def __iter__(self) -> Iterator[Example]:
        return iter(self.examples)

    def __len__(self) -> int:
        return len(self.examples)


class GroupCollection:
    """Ordered, indexable collection of ExampleGroup."""

    def __init__(self, groups: Sequence[ExampleGroup]):
        self._groups = list(groups)

    @classmethod
    def by_key(cls, dataset: Dataset, key: Callable[[Example], Hashable]) -> "GroupCollection":
        buckets: Dict[Hashable, ExampleGroup] = {}
        for ex in dataset:
            k = key(ex)
            if k not in buckets:
                buckets[k] = ExampleGroup(key=k)
            buckets[k].examples.append(ex)
        return cls(list(buckets.values()))

    @classmethod
    def singletons(cls, dataset: Dataset) -> "GroupCollection":
        return cls([ExampleGroup(key=ex.id, examples=[ex]) for ex in dataset])

    def __iter__(self) -> Iterator[ExampleGroup]:
        return iter(self._groups)

    def __len__(self) -> int:
        return len(self._groups)

    def __getitem__(self, i: int) -> ExampleGroup:
        return self._groups[i]


def _by_group(dataset: Dataset) -> GroupCollection:
    # examples without a group key stay on their own
    return GroupCollection.by_key(
        dataset, lambda ex: ("g", ex.group) if ex.group is not None else ("id", ex.id)
    )


_COLLECTION_REGISTRY: Dict[str, Callable[[Dataset], GroupCollection]] = {
    "singletons": GroupCollection.singletons,
    "by_group": _by_group,
}


def register_group_collection(name: str, builder: Callable[[Dataset], GroupCollection]) -> None:
    _COLLECTION_REGISTRY[name] = builder


def resolve_group_collection(name: str) -> Callable[[Dataset], GroupCollection]:
    if name not in _COLLECTION_REGISTRY:
        available = ", ".join(_COLLECTION_REGISTRY)
        raise ConfigurationError(f"No group collection {name!r}. Available: {available}")
    return _COLLECTION_REGISTRY[name]


# ---------------------------------------------------------------------
# Structured decoder collaborators
# ---------------------------------------------------------------------
class StructureOptimizer(Protocol):
    """
    Returns *some* feasible joint labeling for the examples in scores.
    May be heuristic; may omit examples (callers decide what that means).
    """

    def optimize(
        self,
        scores: ScoreTable,
        fixed_labels: Mapping[int, Hashable],
        valid_labels: Sequence[Hashable],
        label_mapping: LabelMapping,
    ) -> Dict[int, Hashable]: ...


def _fixed(example_id, fixed_labels, valid_labels, label_mapping):
    if example_id not in fixed_labels:
        return None
    label = fixed_labels[example_id]
    if label_mapping is not None:
        label = label_mapping(label)
    return label if label in valid_labels else None


class IndependentOptimizer:
    """Per-example argmax (first label wins ties); fixed labels override."""

    def optimize(self, scores, fixed_labels, valid_labels, label_mapping):
        out: Dict[int, Hashable] = {}
        for example_id, label_scores in scores.items():
            fixed = _fixed(example_id, fixed_labels, valid_labels, label_mapping)
            if fixed is not None:
                out[example_id] = fixed
                continue

            best, best_score = None, float("-inf")
            for label in valid_labels:
                s = label_scores[label]
                if s > best_score:
                    best, best_score = label, s
            out[example_id] = best
        return out


class AgreeOptimizer:
    """
    Whole group shares one label: the one maximizing the summed score.
    If any member is fixed, candidates are restricted to the fixed labels;
    fixed members always keep their own label.
    """

    def optimize(self, scores, fixed_labels, valid_labels, label_mapping):
        fixed = {
            example_id: _fixed(example_id, fixed_labels, valid_labels, label_mapping)
            for example_id in scores
        }
        fixed = {k: v for k, v in fixed.items() if v is not None}

        candidates = [lb for lb in valid_labels if not fixed or lb in fixed.values()]

        best, best_score = None, float("-inf")
        for label in candidates:
            s = sum(label_scores[label] for label_scores in scores.values())
            if s > best_score:
                best, best_score = label, s

        return {example_id: fixed.get(example_id, best) for example_id in scores}


_OPTIMIZER_REGISTRY: Dict[str, Callable[[], StructureOptimizer]] = {
    "independent": IndependentOptimizer,
    "agree": AgreeOptimizer,
}


def register_structure_optimizer(name: str, factory: Callable[[], StructureOptimizer]) -> None:
    _OPTIMIZER_REGISTRY[name] = factory


def resolve_structure_optimizer(name: str) -> StructureOptimizer:
    if name not in _OPTIMIZER_REGISTRY:
        available = ", ".join(_OPTIMIZER_REGISTRY)
        raise ConfigurationError(f"No structure optimizer {name!r}. Available: {available}")
    return _OPTIMIZER_REGISTRY[name]()


def optimize(
    optimizer_name: str,
    scores: ScoreTable,
    fixed_labels: Mapping[int, Hashable],
    valid_labels: Sequence[Hashable],
    label_mapping: LabelMapping = None,
) -> Dict[int, Hashable]:
    return resolve_structure_optimizer(optimizer_name).optimize(
        scores, fixed_labels, valid_labels, label_mapping
    )
