# structsvm/training/registry.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Hashable, Mapping, Optional, Sequence

import numpy as np

from structsvm.config.training_config import TrainingConfig
from structsvm.model import checkpoint
from structsvm.model.cost import resolve_cost_model
from structsvm.model.svm import SVMModel
from structsvm.observability.instrumentation import Instrumentation
from structsvm.training.convergence import ConvergenceMonitor
from structsvm.training.evaluation import resolve_metric
from structsvm.training.loop import TrainingLoop
from structsvm.training.regularizer import resolve_update_policy
from structsvm.training.context import TrainingState
from structsvm.training.result import TrainResult
from structsvm.utils.errors import ConfigurationError, StructSVMError
from structsvm.utils.logger import logs


@dataclass(frozen=True)
class VariantSpec:
    """
    A model variant = composition of strategies, not a subclass.
    """

    name: str
    policy: str
    structured: bool
    fit_bias: bool
    cost: str  # "hamming" | "factored" (learned) | "any"
    check_every: int


_VARIANTS: Dict[str, VariantSpec] = {
    "svm": VariantSpec("svm", "occasional_l2", False, True, "hamming", 5),
    "svm_dense": VariantSpec("svm_dense", "dense", False, True, "any", 5),
    "svm_cost_learner": VariantSpec("svm_cost_learner", "dense", False, False, "factored", 5),
    "svm_structured": VariantSpec("svm_structured", "occasional_l2", True, True, "hamming", 1),
    "structured_svmc": VariantSpec("structured_svmc", "dense", True, True, "factored", 1),
    "svm_pegasos": VariantSpec("svm_pegasos", "pegasos", True, True, "hamming", 1),
}


def resolve_variant(name: str) -> VariantSpec:
    if name not in _VARIANTS:
        available = ", ".join(_VARIANTS)
        raise ConfigurationError(f"No model variant {name!r}. Available: {available}")
    return _VARIANTS[name]


def build_model(
    cfg: TrainingConfig,
    labels: Sequence[Hashable],
    *,
    fixed_labels: Optional[Mapping[int, Hashable]] = None,
) -> SVMModel:
    spec = resolve_variant(cfg.variant)

    cost_name = cfg.cost.name
    if spec.cost == "hamming" and cost_name != "hamming":
        raise ConfigurationError(f"variant {spec.name!r} only supports the hamming cost")
    if spec.cost == "factored" and cost_name == "hamming":
        raise ConfigurationError(f"variant {spec.name!r} requires a factored cost model")

    valid = list(cfg.valid_labels) if cfg.valid_labels else list(labels)

    return SVMModel(
        labels=valid,
        variant=spec.name,
        cost_model=resolve_cost_model(cost_name, c=cfg.cost.c, factor_mode=cfg.cost.factor_mode),
        fit_bias=spec.fit_bias if cfg.fit_bias is None else cfg.fit_bias,
        tie_break=cfg.tie_break,
        structured=spec.structured,
        include_structured_training=cfg.include_structured_training,
        structure_optimizer=cfg.structure_optimizer,
        structure_collection=cfg.structure_collection,
        label_mapping=cfg.label_mapping,
        fixed_labels=fixed_labels,
    )


def build_training_loop(
    cfg: TrainingConfig,
    model: SVMModel,
    *,
    rng: Optional[np.random.Generator] = None,
    inst: Optional[Instrumentation] = None,
) -> TrainingLoop:
    spec = resolve_variant(cfg.variant)

    policy = resolve_update_policy(
        spec.policy,
        l1=cfg.l1,
        l2=cfg.l2,
        n=cfg.n,
        fit_bias=model.fit_bias,
        learn_costs=model.cost_model is not None and model.cost_model.learned,
    )
    monitor = ConvergenceMonitor(
        epsilon=cfg.epsilon,
        min_iterations=cfg.min_iterations,
        check_every=cfg.check_every or spec.check_every,
        early_stop_if_no_label_change=cfg.early_stop_if_no_label_change,
    )
    return TrainingLoop(
        model,
        policy,
        monitor,
        iterations=cfg.iterations,
        shuffle=cfg.shuffle,
        rng=rng,
        seed=cfg.seed,
        metrics=[resolve_metric(name) for name in cfg.metrics],
        inst=inst,
    )


def load_model(path, cfg: Optional[TrainingConfig] = None) -> SVMModel:
    """
    Rebuild a model from a checkpoint. Structural flags come from cfg when
    given, otherwise from the variant recorded in the checkpoint.
    """
    ckpt = checkpoint.read(path)
    spec = resolve_variant(cfg.variant if cfg is not None else ckpt.header.variant)

    kwargs = dict(structured=spec.structured, fit_bias=spec.fit_bias)
    if cfg is not None:
        kwargs.update(
            tie_break=cfg.tie_break,
            include_structured_training=cfg.include_structured_training,
            structure_optimizer=cfg.structure_optimizer,
            structure_collection=cfg.structure_collection,
            label_mapping=cfg.label_mapping,
        )
        if cfg.fit_bias is not None:
            kwargs["fit_bias"] = cfg.fit_bias
    return SVMModel.from_checkpoint(ckpt, variant=spec.name, **kwargs)


def train_model(
    cfg: TrainingConfig,
    dataset,
    *,
    dev=None,
    cancel=None,
    fixed_labels: Optional[Mapping[int, Hashable]] = None,
    model: Optional[SVMModel] = None,
) -> TrainResult:
    """
    Build (or warm-restart) a model for cfg and run one TrainingLoop.
    Label order: cfg.valid_labels, else first-seen order in dataset.
    """
    try:
        if model is None:
            seen: Dict[Hashable, None] = {}
            for ex in dataset:
                if ex.label is not None:
                    seen.setdefault(cfg.label_mapping.get(ex.label, ex.label), None)
            model = build_model(cfg, list(seen), fixed_labels=fixed_labels)
        loop = build_training_loop(cfg, model)
    except StructSVMError as e:
        logs.error(f"[TrainingLoop] cannot build variant={cfg.variant}: {e}")
        return TrainResult(
            model=model,
            state=TrainingState.FAILED,
            iterations=0,
            error=f"{type(e).__name__}: {e}",
        )
    return loop.train(dataset, dev=dev, cancel=cancel)
