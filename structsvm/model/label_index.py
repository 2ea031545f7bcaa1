# structsvm/model/label_index.py
from __future__ import annotations

from typing import Dict, Hashable, Iterable, Iterator, List

from structsvm.utils.errors import ConfigurationError


class LabelIndex:
    """
    Immutable bijection label <-> 0..K-1, built once per training run.
    """

    def __init__(self, labels: Iterable[Hashable]):
        self._labels: List[Hashable] = list(labels)
        self._index: Dict[Hashable, int] = {}
        for i, label in enumerate(self._labels):
            if label in self._index:
                raise ConfigurationError(f"duplicate label in label set: {label!r}")
            self._index[label] = i

        if not self._labels:
            raise ConfigurationError("label set is empty")

    def index(self, label: Hashable) -> int:
        try:
            return self._index[label]
        except KeyError:
            raise ConfigurationError(f"label {label!r} is not a valid label") from None

    def label(self, index: int) -> Hashable:
        return self._labels[index]

    def get(self, label: Hashable, default=None):
        return self._index.get(label, default)

    @property
    def labels(self) -> List[Hashable]:
        return list(self._labels)

    def __contains__(self, label: object) -> bool:
        return label in self._index

    def __iter__(self) -> Iterator[Hashable]:
        return iter(self._labels)

    def __len__(self) -> int:
        return len(self._labels)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, LabelIndex) and self._labels == other._labels

    def __repr__(self) -> str:
        return f"LabelIndex({self._labels!r})"
