# structsvm/training/one_vs_rest.py
from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Hashable, List, Mapping, Optional, Union

from structsvm.config.training_config import TrainingConfig
from structsvm.data.dataset import Dataset, InMemoryDataset
from structsvm.model import checkpoint
from structsvm.model.svm import SVMModel
from structsvm.pipeline.parallel.executor import ParallelExecutor
from structsvm.pipeline.parallel.types import ParallelKind
from structsvm.training.context import TrainingState
from structsvm.training.evaluation import evaluate, resolve_metric
from structsvm.training.registry import build_model, build_training_loop, load_model
from structsvm.training.result import TrainResult
from structsvm.utils.errors import CheckpointFormatError, ConfigurationError, StructSVMError
from structsvm.utils.logger import logs

BINARY_LABELS = [False, True]
INDEX_FILE = "one_vs_rest.json"


# ---------------------------------------------------------------------
# Worker side (must stay module-level for pickling)
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class _Indicator:
    positive: Hashable
    mapping: Mapping[Hashable, Hashable]

    def __call__(self, label: Hashable) -> bool:
        return self.mapping.get(label, label) == self.positive


@dataclass(frozen=True)
class BinaryTask:
    positive: Hashable
    cfg: TrainingConfig
    dataset: InMemoryDataset
    dev: Optional[InMemoryDataset] = None


def _train_binary(task: BinaryTask) -> TrainResult:
    indicator = _Indicator(task.positive, dict(task.cfg.label_mapping))
    cfg = task.cfg.model_copy(update={"valid_labels": None, "label_mapping": {}})
    data = task.dataset.relabel(indicator)
    dev = task.dev.relabel(indicator) if task.dev is not None else None

    try:
        model = build_model(cfg, BINARY_LABELS)
        loop = build_training_loop(cfg, model)
    except StructSVMError as e:
        return TrainResult(
            model=None,
            state=TrainingState.FAILED,
            iterations=0,
            error=f"{type(e).__name__}: {e}",
        )

    logs.info(f"[OneVsRest] training indicator for label={task.positive!r}")
    return loop.train(data, dev=dev)


# ---------------------------------------------------------------------
# Composite model
# ---------------------------------------------------------------------
class OneVsRestModel:
    """
    One binary SVMModel per label. posterior() returns, per example, the
    positive-class probability of every indicator (not normalized);
    classify() picks the label with the highest one (first label wins ties).
    """

    def __init__(
        self,
        labels: List[Hashable],
        binary_models: Mapping[Hashable, SVMModel],
        label_mapping: Optional[Mapping[Hashable, Hashable]] = None,
    ):
        self.labels = list(labels)
        self.binary_models: Dict[Hashable, SVMModel] = dict(binary_models)
        self.label_mapping = dict(label_mapping or {})

    def map_valid_label(self, label: Hashable) -> Optional[Hashable]:
        if label is None:
            return None
        mapped = self.label_mapping.get(label, label)
        return mapped if mapped in self.labels else None

    def posterior(self, dataset: Dataset) -> Dict[int, Dict[Hashable, float]]:
        per_label = {
            label: self.binary_models[label].posterior(dataset) for label in self.labels
        }
        return {
            ex.id: {label: per_label[label][ex.id][True] for label in self.labels}
            for ex in dataset
        }

    def classify(self, dataset: Dataset) -> Dict[int, Hashable]:
        out: Dict[int, Hashable] = {}
        for example_id, p in self.posterior(dataset).items():
            out[example_id] = max(self.labels, key=lambda lb: p[lb])
        return out

    # -------------------------
    # Persistence: a directory with one checkpoint per label
    # -------------------------
    def save(self, path: Union[str, Path]) -> Path:
        root = Path(path)
        index = {
            "labels": self.labels,
            "label_mapping": [[k, v] for k, v in self.label_mapping.items()],
            "models": [f"label_{i}.ckpt" for i in range(len(self.labels))],
        }
        text = checkpoint.encode_labels(index)

        root.mkdir(parents=True, exist_ok=True)
        for label, name in zip(self.labels, index["models"]):
            self.binary_models[label].save(root / name)
        (root / INDEX_FILE).write_text(text, encoding="utf-8")
        logs.info(f"[OneVsRest] saved {len(self.labels)} binary models to {root}")
        return root

    @classmethod
    def load(cls, path: Union[str, Path], cfg: Optional[TrainingConfig] = None) -> "OneVsRestModel":
        root = Path(path)
        index_path = root / INDEX_FILE
        if not index_path.exists():
            raise CheckpointFormatError(f"no {INDEX_FILE} in {root}")
        try:
            index = json.loads(index_path.read_text(encoding="utf-8"))
            labels = index["labels"]
            names = index["models"]
            mapping = {k: v for k, v in index.get("label_mapping", [])}
        except (ValueError, KeyError, TypeError) as e:
            raise CheckpointFormatError(f"bad one-vs-rest index {index_path}: {e}") from e
        if len(names) != len(labels):
            raise CheckpointFormatError(f"{index_path}: {len(labels)} labels but {len(names)} models")

        binary_cfg = None
        if cfg is not None:
            binary_cfg = cfg.model_copy(update={"valid_labels": None, "label_mapping": {}})
        models = {label: load_model(root / name, binary_cfg) for label, name in zip(labels, names)}
        return cls(labels, models, mapping)


# ---------------------------------------------------------------------
# Trainer
# ---------------------------------------------------------------------
class OneVsRestTrainer:
    """
    OneVsRestTrainer（FINAL）

    Semantics:
    - One independent TrainingLoop per label, run on the process pool
    - Sub-problems own disjoint weights; results are joined before returning
    - Any FAILED sub-result makes the composite FAILED
    """

    def __init__(self, cfg: TrainingConfig, *, max_workers: Optional[int] = None):
        self.cfg = cfg
        self.max_workers = max_workers

    def train(self, dataset: InMemoryDataset, *, dev: Optional[InMemoryDataset] = None) -> TrainResult:
        try:
            labels = self._labels(dataset)
        except ConfigurationError as e:
            logs.error(f"[OneVsRest] {e}")
            return TrainResult(
                model=None,
                state=TrainingState.FAILED,
                iterations=0,
                error=f"{type(e).__name__}: {e}",
            )

        tasks = [BinaryTask(positive=lb, cfg=self.cfg, dataset=dataset, dev=dev) for lb in labels]
        results: List[TrainResult] = ParallelExecutor.run(
            kind=ParallelKind.LABEL,
            items=tasks,
            handler=_train_binary,
            max_workers=self.max_workers,
        )
        return self._combine(labels, results, dataset, dev)

    # -------------------------
    # internal
    # -------------------------
    def _labels(self, dataset: Dataset) -> List[Hashable]:
        if self.cfg.valid_labels:
            labels = list(self.cfg.valid_labels)
        else:
            seen: Dict[Hashable, None] = {}
            for ex in dataset:
                if ex.label is not None:
                    seen.setdefault(self.cfg.label_mapping.get(ex.label, ex.label), None)
            labels = list(seen)
        if len(labels) < 2:
            raise ConfigurationError(f"one-vs-rest needs at least two labels, got {labels}")
        return labels

    def _combine(self, labels, results: List[TrainResult], dataset, dev) -> TrainResult:
        history, timings, errors = [], {}, []
        for label, r in zip(labels, results):
            history.extend({"label": label, **row} for row in r.history)
            timings.update({f"{label}/{k}": v for k, v in r.timings.items()})
            if r.state == TrainingState.FAILED:
                errors.append(f"{label}: {r.error}")

        iterations = max(r.iterations for r in results)

        if errors:
            logs.error(f"[OneVsRest] {len(errors)}/{len(labels)} sub-problems failed")
            return TrainResult(
                model=None,
                state=TrainingState.FAILED,
                iterations=iterations,
                history=history,
                timings=timings,
                error="; ".join(errors),
            )

        model = OneVsRestModel(
            labels,
            {label: r.model for label, r in zip(labels, results)},
            self.cfg.label_mapping,
        )

        if all(r.state == TrainingState.CONVERGED for r in results):
            state = TrainingState.CONVERGED
        else:
            state = TrainingState.MAX_ITERATIONS_REACHED

        objectives = [r.objective for r in results]
        objective = None if any(o is None for o in objectives) else float(sum(objectives))

        target = dev if dev is not None else dataset
        metrics = evaluate(
            target,
            model.classify(target),
            [resolve_metric(name) for name in self.cfg.metrics],
            model.map_valid_label,
        )
        logs.info(
            f"[OneVsRest] DONE labels={len(labels)} state={state.value} "
            + " ".join(f"{k}={v:.4f}" for k, v in metrics.items())
        )

        return TrainResult(
            model=model,
            state=state,
            iterations=iterations,
            objective=objective,
            metrics=metrics,
            history=history,
            timings=timings,
        )
