# structsvm/data/dataset.py
from __future__ import annotations

from dataclasses import dataclass, replace
from typing import (
    Dict,
    Hashable,
    Iterable,
    Iterator,
    List,
    Mapping,
    Optional,
    Protocol,
    Sequence,
    Tuple,
    runtime_checkable,
)

import numpy as np

from structsvm.utils.errors import CollaboratorFailure
from structsvm.utils.logger import logs


@dataclass(frozen=True)
class Example:
    """
    One datum. Features live in the dataset, keyed by id.

    group: optional key used by the "by_group" structure collection
    (svmlight qid when loaded from file).
    """

    id: int
    label: Optional[Hashable] = None
    group: Optional[Hashable] = None


@runtime_checkable
class Dataset(Protocol):
    """
    Dataset collaborator (read-only).
    """

    def __len__(self) -> int: ...

    def __iter__(self) -> Iterator[Example]: ...

    def example(self, example_id: int) -> Example: ...

    def feature_vocabulary_size(self) -> int: ...

    def sparse_features(self, example: Example) -> Mapping[int, float]: ...

    def feature_names(self, indices: Iterable[int]) -> Dict[int, str]: ...


class InMemoryDataset:
    """
    InMemoryDataset（FINAL）

    Semantics:
    - ids are 0..N-1 in insertion order, stable for the dataset lifetime
    - feature maps are stored as given (explicit zeros included)
    """

    def __init__(
        self,
        examples: Sequence[Example],
        features: Sequence[Mapping[int, float]],
        *,
        num_features: Optional[int] = None,
        names: Optional[Sequence[str]] = None,
    ):
        if len(examples) != len(features):
            raise ValueError("examples and features must have the same length")

        self._examples: List[Example] = list(examples)
        self._features: List[Dict[int, float]] = [dict(f) for f in features]
        self._by_id: Dict[int, int] = {ex.id: i for i, ex in enumerate(self._examples)}

        observed = max((max(f) + 1 for f in self._features if f), default=0)
        self._num_features = observed if num_features is None else int(num_features)
        if self._num_features < observed:
            raise ValueError(
                f"num_features={self._num_features} smaller than observed index {observed - 1}"
            )
        self._names = list(names) if names is not None else None

    # -------------------------
    # Constructors
    # -------------------------
    @classmethod
    def from_rows(
        cls,
        rows: Iterable[Tuple[Mapping[int, float], Hashable]],
        *,
        groups: Optional[Sequence[Hashable]] = None,
        num_features: Optional[int] = None,
        names: Optional[Sequence[str]] = None,
    ) -> "InMemoryDataset":
        examples, features = [], []
        for i, (x, label) in enumerate(rows):
            group = groups[i] if groups is not None else None
            examples.append(Example(id=i, label=label, group=group))
            features.append(x)
        return cls(examples, features, num_features=num_features, names=names)

    @classmethod
    def from_svmlight(
        cls,
        path: str,
        *,
        num_features: Optional[int] = None,
        zero_based: bool = True,
    ) -> "InMemoryDataset":
        """
        svmlight / libsvm text. qid (if present) becomes Example.group.
        Labels become strings ("1", "-1", "2.5").
        """
        from sklearn.datasets import load_svmlight_file

        X, y, qid = load_svmlight_file(
            path,
            n_features=num_features,
            zero_based=zero_based,
            query_id=True,
        )
        X = X.tocsr()

        features: List[Dict[int, float]] = []
        for r in range(X.shape[0]):
            start, end = X.indptr[r], X.indptr[r + 1]
            features.append(
                {int(j): float(v) for j, v in zip(X.indices[start:end], X.data[start:end])}
            )

        has_qid = qid.size and np.any(qid != 0)
        examples = [
            Example(
                id=i,
                label=_label_text(y[i]),
                group=int(qid[i]) if has_qid else None,
            )
            for i in range(len(features))
        ]

        logs.info(
            f"[Dataset] loaded {path} examples={len(examples)} features={X.shape[1]}"
        )
        return cls(examples, features, num_features=X.shape[1])

    # -------------------------
    # Dataset protocol
    # -------------------------
    def __len__(self) -> int:
        return len(self._examples)

    def __iter__(self) -> Iterator[Example]:
        return iter(self._examples)

    def example(self, example_id: int) -> Example:
        try:
            return self._examples[self._by_id[example_id]]
        except KeyError:
            raise CollaboratorFailure(f"unknown example id {example_id}") from None

    def feature_vocabulary_size(self) -> int:
        return self._num_features

    def sparse_features(self, example: Example) -> Dict[int, float]:
        try:
            return self._features[self._by_id[example.id]]
        except KeyError:
            raise CollaboratorFailure(f"no features for example id {example.id}") from None

    def feature_names(self, indices: Iterable[int]) -> Dict[int, str]:
        if self._names is None:
            return {i: f"f{i}" for i in indices}
        return {i: self._names[i] for i in indices}

    # -------------------------
    # Helpers
    # -------------------------
    def labels(self) -> List[Hashable]:
        """Distinct labels in first-seen order."""
        seen: Dict[Hashable, None] = {}
        for ex in self._examples:
            if ex.label is not None:
                seen.setdefault(ex.label, None)
        return list(seen)

    def relabel(self, fn) -> "InMemoryDataset":
        """Copy with every label replaced by fn(label); features are shared."""
        out = InMemoryDataset.__new__(InMemoryDataset)
        out._examples = [replace(ex, label=fn(ex.label)) for ex in self._examples]
        out._features = self._features
        out._by_id = self._by_id
        out._num_features = self._num_features
        out._names = self._names
        return out


def _label_text(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)
