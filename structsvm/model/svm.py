# structsvm/model/svm.py
from __future__ import annotations

import copy
from pathlib import Path
from typing import Dict, Hashable, Mapping, Optional, Sequence, Union

import numpy as np

from structsvm.data.dataset import Dataset, Example
from structsvm.data.structure import resolve_group_collection
from structsvm.model import checkpoint
from structsvm.model.cost import CostModel, resolve_cost_model
from structsvm.model.decoder import CostAugmentedDecoder
from structsvm.model.label_index import LabelIndex
from structsvm.model.parameters import WeightArena
from structsvm.model.scorer import LinearScorer
from structsvm.utils.errors import CollaboratorFailure, ConfigurationError
from structsvm.utils.logger import logs


class SVMModel:
    """
    SVMModel（FINAL）

    Semantics:
    - Owns one WeightArena (allocated lazily by the training loop)
    - Labels are fixed for the lifetime of the model
    - classify / posterior never use the cost term
    - Structured models decode whole groups through the named optimizer
    """

    def __init__(
        self,
        *,
        labels: Sequence[Hashable],
        variant: str = "svm_dense",
        cost_model: Optional[CostModel] = None,
        fit_bias: bool = True,
        tie_break: str = "first",
        structured: bool = False,
        include_structured_training: bool = True,
        structure_optimizer: str = "independent",
        structure_collection: str = "singletons",
        label_mapping: Optional[Mapping[Hashable, Hashable]] = None,
        fixed_labels: Optional[Mapping[int, Hashable]] = None,
    ):
        self.labels = LabelIndex(labels)
        self.variant = variant
        self.cost_model = cost_model
        self.fit_bias = fit_bias
        self.tie_break = tie_break
        self.structured = structured
        self.include_structured_training = include_structured_training
        self.structure_optimizer = structure_optimizer
        self.structure_collection = structure_collection
        self.label_mapping: Dict[Hashable, Hashable] = dict(label_mapping or {})
        self.fixed_labels: Dict[int, Hashable] = dict(fixed_labels or {})

        self.arena: Optional[WeightArena] = None

    # -------------------------
    # Arena lifecycle
    # -------------------------
    def allocate(self, num_features: int) -> WeightArena:
        num_costs = 0
        if self.cost_model is not None and self.cost_model.learned:
            num_costs = self.cost_model.vocabulary_size()

        if self.arena is None:
            self.arena = WeightArena(
                num_labels=len(self.labels),
                num_features=num_features,
                num_costs=num_costs,
            )
            return self.arena

        if self.arena.num_features != num_features or self.arena.num_costs != num_costs:
            raise ConfigurationError(
                f"warm restart shape mismatch: arena features={self.arena.num_features} "
                f"costs={self.arena.num_costs}, data features={num_features} costs={num_costs}"
            )
        return self.arena

    @property
    def trained(self) -> bool:
        return self.arena is not None

    def scorer(self) -> LinearScorer:
        if self.arena is None:
            raise ConfigurationError("model has no weights yet (train or load first)")
        return LinearScorer(self.arena, self.labels, self.cost_model)

    def decoder(self) -> CostAugmentedDecoder:
        return CostAugmentedDecoder(self.scorer(), self.tie_break)

    # -------------------------
    # Labels
    # -------------------------
    def map_valid_label(self, label: Hashable) -> Optional[Hashable]:
        if label is None:
            return None
        mapped = self.label_mapping.get(label, label)
        return mapped if mapped in self.labels else None

    def gold_label(self, example: Example) -> Optional[Hashable]:
        return self.map_valid_label(example.label)

    def _mapping_fn(self):
        return self.map_valid_label if self.label_mapping else None

    # -------------------------
    # Inference
    # -------------------------
    def features_of(self, dataset: Dataset, example: Example) -> Dict[int, float]:
        """Sparse features restricted to the trained vocabulary."""
        x = dataset.sparse_features(example)
        if x is None:
            raise CollaboratorFailure(f"dataset returned no features for example {example.id}")
        F = self.arena.num_features
        return {k: v for k, v in x.items() if k < F}

    def scores(self, dataset: Dataset, example: Example, include_cost: bool = False) -> np.ndarray:
        return self.scorer().scores(self.features_of(dataset, example), example, include_cost)

    def posterior_example(self, dataset: Dataset, example: Example) -> Dict[Hashable, float]:
        s = self.scores(dataset, example)
        p = np.exp(s - s.max())
        p /= p.sum()
        return {label: float(p[k]) for k, label in enumerate(self.labels)}

    def classify_example(self, dataset: Dataset, example: Example) -> Hashable:
        fixed = self.map_valid_label(self.fixed_labels.get(example.id))
        if fixed is not None:
            return fixed
        return self.labels.label(self.decoder().argmax(self.scores(dataset, example)))

    def classify(self, dataset: Dataset) -> Dict[int, Hashable]:
        if not self.structured:
            return {ex.id: self.classify_example(dataset, ex) for ex in dataset}

        posteriors = self.posterior(dataset)
        return {ex.id: self.argmax_label(posteriors[ex.id]) for ex in dataset}

    def argmax_label(self, p: Mapping[Hashable, float]) -> Hashable:
        """Best label of a posterior row, breaking ties like the decoder does."""
        row = np.array([p[label] for label in self.labels], dtype=np.float64)
        return self.labels.label(CostAugmentedDecoder.pick(row, self.tie_break))

    def posterior(self, dataset: Dataset) -> Dict[int, Dict[Hashable, float]]:
        if not self.structured:
            return {ex.id: self._fixed_or(dataset, ex) for ex in dataset}
        if self.include_structured_training:
            return self._posterior_from_structure_scores(dataset)
        return self._posterior_from_example_scores(dataset)

    def _fixed_or(self, dataset: Dataset, example: Example) -> Dict[Hashable, float]:
        fixed = self.map_valid_label(self.fixed_labels.get(example.id))
        if fixed is None:
            return self.posterior_example(dataset, example)
        return {label: 1.0 if label == fixed else 0.0 for label in self.labels}

    def _one_hot(self, label: Optional[Hashable]) -> Dict[Hashable, float]:
        if label is None:
            p = 1.0 / len(self.labels)
            return {lb: p for lb in self.labels}
        return {lb: 1.0 if lb == label else 0.0 for lb in self.labels}

    def _posterior_from_structure_scores(self, dataset: Dataset):
        decoder = self.decoder()
        groups = resolve_group_collection(self.structure_collection)(dataset)

        best: Dict[int, Hashable] = {}
        for group in groups:
            feats = {ex.id: self.features_of(dataset, ex) for ex in group}
            assignment = decoder.decode_group(
                group,
                feats,
                optimizer=self.structure_optimizer,
                include_cost=False,
                fixed_labels=self.fixed_labels,
                label_mapping=self._mapping_fn(),
                strict=False,
            )
            for example_id, index in assignment.items():
                best[example_id] = self.labels.label(index)

        out = {}
        for ex in dataset:
            if ex.id not in best:
                logs.warning(f"[SVMModel] optimizer returned no label for example {ex.id}")
            out[ex.id] = self._one_hot(best.get(ex.id))
        return out

    def _posterior_from_example_scores(self, dataset: Dataset):
        decoder = self.decoder()
        groups = resolve_group_collection(self.structure_collection)(dataset)

        out = {}
        for group in groups:
            table = {ex.id: self.posterior_example(dataset, ex) for ex in group}
            assignment = decoder.decode_group(
                group,
                {},
                optimizer=self.structure_optimizer,
                include_cost=False,
                fixed_labels=self.fixed_labels,
                label_mapping=self._mapping_fn(),
                strict=False,
                score_table=table,
            )
            for ex in group:
                index = assignment.get(ex.id)
                out[ex.id] = self._one_hot(None if index is None else self.labels.label(index))
        return out

    # -------------------------
    # Ownership
    # -------------------------
    def clone(self, shallow: bool = False) -> "SVMModel":
        """
        shallow=True shares only the immutable label set; weights are not copied.
        The cost model is always copied: init() rebinds it to one model's gold labels.
        """
        other = SVMModel.__new__(SVMModel)
        other.__dict__.update(self.__dict__)
        other.label_mapping = dict(self.label_mapping)
        other.fixed_labels = dict(self.fixed_labels)
        # memo maps self -> other, so a bound gold_label follows the copy
        other.cost_model = copy.deepcopy(self.cost_model, {id(self): other})
        other.arena = None if shallow or self.arena is None else self.arena.clone()
        return other

    # -------------------------
    # Persistence
    # -------------------------
    def save(self, path: Union[str, Path]) -> Path:
        if self.arena is None:
            raise ConfigurationError("cannot save an untrained model")
        return checkpoint.save(
            path,
            self.arena,
            variant=self.variant,
            labels=self.labels.labels,
            cost=self.cost_model,
        )

    def dumps(self) -> str:
        return checkpoint.dumps(
            self.arena,
            variant=self.variant,
            labels=self.labels.labels,
            cost=self.cost_model,
        )

    @classmethod
    def from_checkpoint(cls, ckpt: checkpoint.Checkpoint, **kwargs) -> "SVMModel":
        header = ckpt.header
        cost = None
        if header.cost_model is not None:
            cost = resolve_cost_model(
                header.cost_model, c=header.cost_c, factor_mode=header.cost_factor_mode
            )
            cost.labels = list(header.labels)
        kwargs.setdefault("variant", header.variant)
        model = cls(labels=header.labels, cost_model=cost, **kwargs)
        model.arena = ckpt.arena
        return model

    @classmethod
    def load(cls, path: Union[str, Path], **kwargs) -> "SVMModel":
        return cls.from_checkpoint(checkpoint.read(path), **kwargs)

    @classmethod
    def loads(cls, text: str, **kwargs) -> "SVMModel":
        return cls.from_checkpoint(checkpoint.loads(text), **kwargs)
