# structsvm/model/decoder.py
from __future__ import annotations

from typing import Dict, Hashable, Mapping, Optional

import numpy as np

from structsvm.data.structure import ExampleGroup, LabelMapping, resolve_structure_optimizer
from structsvm.model.scorer import LinearScorer
from structsvm.utils.errors import CollaboratorFailure, ConfigurationError


class CostAugmentedDecoder:
    """
    Picks the training target (or prediction) from per-label scores.

    tie_break:
    - "first": strict ">" scan, lowest label index wins exact ties
    - "last" : ">=" scan, highest label index wins exact ties
    """

    def __init__(self, scorer: LinearScorer, tie_break: str = "first"):
        if tie_break not in ("first", "last"):
            raise ConfigurationError(f"unknown tie_break {tie_break!r}")
        self.scorer = scorer
        self.tie_break = tie_break

    def argmax(self, scores: np.ndarray) -> int:
        return self.pick(scores, self.tie_break)

    @staticmethod
    def pick(scores: np.ndarray, tie_break: str = "first") -> int:
        if tie_break == "first":
            return int(np.argmax(scores))
        return int(len(scores) - 1 - np.argmax(scores[::-1]))

    def decode(self, x: Mapping[int, float], example, include_cost: bool = True) -> int:
        return self.argmax(self.scorer.scores(x, example, include_cost))

    # -------------------------
    # Structured
    # -------------------------
    def group_scores(
        self,
        group: ExampleGroup,
        features: Mapping[int, Mapping[int, float]],
        include_cost: bool,
    ) -> Dict[int, Dict[Hashable, float]]:
        labels = self.scorer.labels
        table: Dict[int, Dict[Hashable, float]] = {}
        for ex in group:
            s = self.scorer.scores(features[ex.id], ex, include_cost)
            table[ex.id] = {label: float(s[k]) for k, label in enumerate(labels)}
        return table

    def decode_group(
        self,
        group: ExampleGroup,
        features: Mapping[int, Mapping[int, float]],
        *,
        optimizer: str,
        include_cost: bool,
        fixed_labels: Mapping[int, Hashable],
        label_mapping: LabelMapping = None,
        strict: bool = True,
        score_table: Optional[Mapping[int, Mapping[Hashable, float]]] = None,
    ) -> Dict[int, int]:
        """
        Delegates to the named structure optimizer; returns label indices.

        strict=True: an omitted example or an unknown label is a CollaboratorFailure.
        strict=False: such examples are left out of the result.
        """
        labels = self.scorer.labels
        table = score_table if score_table is not None else self.group_scores(group, features, include_cost)

        assignment = resolve_structure_optimizer(optimizer).optimize(
            table, fixed_labels, labels.labels, label_mapping
        )
        if assignment is None:
            raise CollaboratorFailure(f"structure optimizer {optimizer!r} returned nothing")

        out: Dict[int, int] = {}
        for ex in group:
            label = assignment.get(ex.id)
            index = labels.get(label) if label is not None else None
            if index is None:
                if strict:
                    raise CollaboratorFailure(
                        f"structure optimizer {optimizer!r} gave no valid label for example {ex.id}"
                    )
                continue
            out[ex.id] = index
        return out

    def structure_score(
        self,
        group: ExampleGroup,
        features: Mapping[int, Mapping[int, float]],
        assignment: Mapping[int, int],
        include_cost: bool,
    ) -> float:
        """sum_i w[y_i] . x_i + sum_k b_k * count_k (+ cost)."""
        return sum(
            self.scorer.score(features[ex.id], ex, assignment[ex.id], include_cost)
            for ex in group
        )

    def best_group_labels(
        self,
        group: ExampleGroup,
        features: Mapping[int, Mapping[int, float]],
        gold: Mapping[int, int],
        *,
        optimizer: str,
        fixed_labels: Mapping[int, Hashable],
        label_mapping: LabelMapping = None,
    ) -> Dict[int, int]:
        """
        Cost-augmented decode of a group. Falls back to the gold labeling
        when the (heuristic) optimizer returns something scoring below gold.
        """
        best = self.decode_group(
            group,
            features,
            optimizer=optimizer,
            include_cost=True,
            fixed_labels=fixed_labels,
            label_mapping=label_mapping,
        )
        gold_score = self.structure_score(group, features, gold, include_cost=False)
        best_score = self.structure_score(group, features, best, include_cost=True)
        if gold_score > best_score:
            return dict(gold)
        return best
