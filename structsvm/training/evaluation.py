# structsvm/training/evaluation.py
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Dict, Hashable, List, Mapping, Optional

from sklearn.metrics import accuracy_score, fbeta_score, precision_score, recall_score

from structsvm.data.dataset import Dataset
from structsvm.utils.errors import ConfigurationError

_AVERAGES = {
    "macro": "macro",
    "macro_weighted": "weighted",
    "weighted": "weighted",
    "micro": "micro",
}


@dataclass(frozen=True)
class Metric:
    """
    Named evaluation over (gold, predicted) label lists.

    kind   : accuracy | f | precision | recall
    mode   : macro | macro_weighted | micro
    label  : restrict to one label (mode ignored)
    """

    name: str
    kind: str
    mode: str = "macro"
    beta: float = 1.0
    label: Optional[Hashable] = None

    def compute(self, gold: List[Hashable], predicted: List[Hashable]) -> float:
        if not gold:
            return 0.0
        if self.kind == "accuracy":
            return float(accuracy_score(gold, predicted))

        kwargs = dict(zero_division=1.0)
        if self.label is not None:
            kwargs.update(labels=[self.label], average="macro")
        else:
            kwargs.update(average=_AVERAGES[self.mode])

        if self.kind == "f":
            return float(fbeta_score(gold, predicted, beta=self.beta, **kwargs))
        if self.kind == "precision":
            return float(precision_score(gold, predicted, **kwargs))
        return float(recall_score(gold, predicted, **kwargs))


_NAME = re.compile(
    r"^(?P<kind>accuracy|f(?P<beta>[0-9.]+)?|precision|recall)"
    r"(?:_(?P<mode>macro_weighted|macro|weighted|micro))?"
    r"(?:@(?P<label>.+))?$"
)


def resolve_metric(name: str) -> Metric:
    """
    "accuracy", "f1_macro", "f0.5_micro", "precision_macro_weighted",
    "f1@positive" (single label)
    """
    m = _NAME.match(name)
    if m is None:
        raise ConfigurationError(f"unknown metric {name!r}")

    kind = m.group("kind")
    beta = 1.0
    if kind.startswith("f"):
        beta = float(m.group("beta") or 1.0)
        kind = "f"
    return Metric(
        name=name,
        kind=kind,
        mode=m.group("mode") or "macro",
        beta=beta,
        label=m.group("label"),
    )


def evaluate(
    dataset: Dataset,
    predictions: Mapping[int, Hashable],
    metrics: List[Metric],
    map_label: Callable[[Hashable], Optional[Hashable]],
) -> Dict[str, float]:
    """Examples whose gold label does not map onto the valid set are skipped."""
    gold, predicted = [], []
    for ex in dataset:
        g = map_label(ex.label)
        if g is None or ex.id not in predictions:
            continue
        gold.append(g)
        predicted.append(predictions[ex.id])
    return {m.name: m.compute(gold, predicted) for m in metrics}
