# structsvm/training/loop.py
from __future__ import annotations

from typing import Dict, Hashable, List, Optional, Sequence

import numpy as np

from structsvm.data.dataset import Dataset, Example
from structsvm.data.structure import ExampleGroup, resolve_group_collection
from structsvm.model.sparse import SparseVectorOps
from structsvm.model.svm import SVMModel
from structsvm.observability.instrumentation import Instrumentation
from structsvm.training.context import CancellationToken, TrainingContext, TrainingState
from structsvm.training.convergence import ConvergenceMonitor
from structsvm.training.evaluation import Metric, evaluate
from structsvm.training.regularizer import StepGradient, UpdatePolicy
from structsvm.training.result import TrainResult
from structsvm.utils.errors import CollaboratorFailure, ConfigurationError, StructSVMError
from structsvm.utils.logger import logs


class TrainingLoop:
    """
    TrainingLoop（FINAL）

    Semantics:
    - Single-threaded; mutates only self.model.arena
    - One epoch = one pass over a permutation of examples (or groups)
    - Per element: score -> cost-augmented decode -> subgradient -> policy.apply
    - Every collaborator call of a step happens before its first write,
      so a failure leaves the arena at the last fully applied step
    - StructSVMError never escapes train(); it becomes state=FAILED
    """

    def __init__(
        self,
        model: SVMModel,
        policy: UpdatePolicy,
        monitor: ConvergenceMonitor,
        *,
        iterations: int,
        shuffle: bool = True,
        rng: Optional[np.random.Generator] = None,
        seed: int = 1,
        metrics: Sequence[Metric] = (),
        inst: Optional[Instrumentation] = None,
    ):
        self.model = model
        self.policy = policy
        self.monitor = monitor
        self.iterations = iterations
        self.shuffle = shuffle
        self.rng = rng if rng is not None else np.random.default_rng(seed)
        self.metrics: List[Metric] = list(metrics)
        self.inst = inst

        self._gold: Dict[int, int] = {}
        self._elements: List = []
        self._structured = False

    # =========================================================
    # Public
    # =========================================================
    def train(
        self,
        dataset: Dataset,
        *,
        dev: Optional[Dataset] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> TrainResult:
        ctx = TrainingContext()
        inst = self.inst if self.inst is not None else Instrumentation()

        logs.info(
            f"[TrainingLoop] START variant={self.model.variant} policy={self.policy.name} "
            f"examples={len(dataset)} labels={len(self.model.labels)} "
            f"iterations={self.iterations}"
        )

        try:
            self._initialize(dataset, ctx)
            self._iterate(dataset, dev, ctx, cancel, inst)
        except StructSVMError as e:
            ctx.error = f"{type(e).__name__}: {e}"
            ctx.transition(TrainingState.FAILED)
            logs.error(f"[TrainingLoop] FAILED after {ctx.epochs_completed} epochs: {ctx.error}")

        inst.report(f"{self.model.variant} training")
        logs.info(
            f"[TrainingLoop] DONE state={ctx.state.value} epochs={ctx.epochs_completed} "
            f"t={self.model.arena.t if self.model.arena is not None else 0}"
        )

        return TrainResult(
            model=self.model,
            state=ctx.state,
            iterations=ctx.epochs_completed,
            objective=ctx.objective,
            metrics=dict(ctx.metrics),
            history=list(ctx.history),
            timings=dict(inst.timeline),
            error=ctx.error,
        )

    # =========================================================
    # Lifecycle
    # =========================================================
    def _initialize(self, dataset: Dataset, ctx: TrainingContext) -> None:
        model = self.model
        if len(model.labels) < 2:
            raise ConfigurationError(f"need at least two valid labels, got {model.labels.labels}")

        self._gold = {}
        for ex in dataset:
            gold = model.gold_label(ex)
            if gold is None:
                raise ConfigurationError(
                    f"example {ex.id} has label {ex.label!r} outside the valid label set"
                )
            self._gold[ex.id] = model.labels.index(gold)

        num_features = dataset.feature_vocabulary_size()
        if num_features is None or num_features < 0:
            raise CollaboratorFailure("dataset reported no feature vocabulary size")

        if model.cost_model is not None:
            if not model.cost_model.init(model.labels, dataset, model.gold_label):
                raise ConfigurationError(f"cost model {model.cost_model.name!r} failed to initialize")

        model.allocate(num_features)

        self._structured = model.structured and model.include_structured_training
        if self._structured:
            groups = resolve_group_collection(model.structure_collection)(dataset)
            self._elements = [g for g in groups if len(g) > 0]
        else:
            self._elements = list(dataset)

        ctx.transition(TrainingState.INITIALIZED)

    def _iterate(
        self,
        dataset: Dataset,
        dev: Optional[Dataset],
        ctx: TrainingContext,
        cancel: Optional[CancellationToken],
        inst: Instrumentation,
    ) -> None:
        prev_objective = self._objective(dataset)
        prev_predictions = self._quick_predictions(dataset)
        ctx.objective = prev_objective
        ctx.predictions = prev_predictions

        ctx.transition(TrainingState.ITERATING)
        for iteration in range(self.iterations):
            if cancel is not None and cancel.cancelled:
                logs.warning(f"[TrainingLoop] cancelled before iteration {iteration}")
                ctx.transition(TrainingState.CANCELLED)
                return

            ctx.iteration = iteration
            due = self.monitor.due(iteration)
            before = self.model.arena.effective_weights().copy() if due else None

            with inst.timer(f"epoch_{iteration}"):
                self._epoch(iteration, dataset)
            ctx.epochs_completed += 1

            if not due:
                logs.debug(f"[TrainingLoop] {self._hyper()} finished iteration {iteration}")
                continue

            change = np.abs(self.model.arena.effective_weights() - before)
            objective = self._objective(dataset)
            predictions = self._quick_predictions(dataset)
            decision = self.monitor.observe(
                iteration, objective, prev_objective, predictions, prev_predictions
            )
            metrics = self._evaluate(dataset, dev, predictions)

            row = {
                "iteration": iteration,
                "t": self.model.arena.t,
                "objective": objective,
                "objective_diff": decision.objective_diff,
                "label_changes": decision.label_changes,
                "total": decision.total,
                "seconds": inst.timeline.get(f"epoch_{iteration}", 0.0),
                "avg_change": float(change.mean()) if change.size else 0.0,
                "max_change": float(change.max()) if change.size else 0.0,
            }
            if self.model.arena.num_costs:
                row["v_sum"] = float(self.model.arena.costs.w.sum())
            row.update(metrics)
            ctx.history.append(row)

            logs.info(
                f"[TrainingLoop] {self._hyper()} finished iteration {iteration} "
                f"objective={objective:.6f} diff={decision.objective_diff:.3e} "
                f"prediction-diff={decision.label_changes}/{decision.total}"
                + (f" v-sum={row['v_sum']:.4f}" if "v_sum" in row else "")
                + "".join(f" {k}={v:.4f}" for k, v in metrics.items())
            )

            ctx.objective = objective
            ctx.predictions = predictions
            ctx.metrics = metrics
            prev_objective, prev_predictions = objective, predictions

            if decision.stop:
                ctx.transition(TrainingState.CONVERGED)
                return

        ctx.transition(TrainingState.MAX_ITERATIONS_REACHED)

    # =========================================================
    # One epoch
    # =========================================================
    def _epoch(self, iteration: int, dataset: Dataset) -> None:
        n = len(self._elements)
        order = self.rng.permutation(n) if self.shuffle else np.arange(n)
        for pos in order:
            element = self._elements[int(pos)]
            if self._structured:
                step = self._group_step(iteration, dataset, element)
            else:
                step = self._example_step(iteration, dataset, element)
            self.policy.apply(self.model.arena, step, n)
            self.model.arena.t += 1

    def _example_step(self, iteration: int, dataset: Dataset, ex: Example) -> StepGradient:
        arena = self.model.arena
        decoder = self.model.decoder()

        x = self._features(dataset, ex, cache_names=iteration == 0)
        gold = self._gold[ex.id]
        best = decoder.decode(x, ex, include_cost=True)

        loss: Dict[int, float] = {}
        bias = np.zeros(len(self.model.labels))
        if best != gold:
            SparseVectorOps.add_scaled(loss, x, -1.0, arena.offset(gold))
            SparseVectorOps.add_scaled(loss, x, 1.0, arena.offset(best))
            bias[gold] -= 1.0
            bias[best] += 1.0

        costs = None
        if self.policy.learn_costs:
            costs = dict(decoder.scorer.cost_vector(ex, self.model.labels.label(best)))

        return StepGradient(loss=loss, bias=bias, costs=costs, gold_is_best=best == gold)

    def _group_step(self, iteration: int, dataset: Dataset, group: ExampleGroup) -> StepGradient:
        model = self.model
        arena = model.arena
        decoder = model.decoder()
        K = len(model.labels)

        feats = {ex.id: self._features(dataset, ex, cache_names=iteration == 0) for ex in group}
        gold = {ex.id: self._gold[ex.id] for ex in group}
        best = decoder.best_group_labels(
            group,
            feats,
            gold,
            optimizer=model.structure_optimizer,
            fixed_labels=model.fixed_labels,
            label_mapping=model._mapping_fn(),
        )

        loss: Dict[int, float] = {}
        costs: Optional[Dict[int, float]] = {} if self.policy.learn_costs else None
        for ex in group:
            SparseVectorOps.add_scaled(loss, feats[ex.id], -1.0, arena.offset(gold[ex.id]))
            SparseVectorOps.add_scaled(loss, feats[ex.id], 1.0, arena.offset(best[ex.id]))
            if costs is not None:
                SparseVectorOps.add_scaled(
                    costs, decoder.scorer.cost_vector(ex, model.labels.label(best[ex.id]))
                )

        bias = (
            np.bincount(list(best.values()), minlength=K)
            - np.bincount(list(gold.values()), minlength=K)
        ).astype(np.float64)

        return StepGradient(
            loss={k: v for k, v in loss.items() if v != 0.0},
            bias=bias,
            costs=costs,
            gold_is_best=best == gold,
        )

    # =========================================================
    # Monitor helpers
    # =========================================================
    def _objective(self, dataset: Dataset) -> float:
        """
        sum(best_with_cost - gold) + l1 * ||w||_1 + 0.5 * l2 * ||w||^2
        """
        model = self.model
        decoder = model.decoder()
        value = 0.0

        if self._structured:
            for group in self._elements:
                feats = {ex.id: model.features_of(dataset, ex) for ex in group}
                gold = {ex.id: self._gold[ex.id] for ex in group}
                best = decoder.best_group_labels(
                    group,
                    feats,
                    gold,
                    optimizer=model.structure_optimizer,
                    fixed_labels=model.fixed_labels,
                    label_mapping=model._mapping_fn(),
                )
                value += decoder.structure_score(group, feats, best, include_cost=True)
                value -= decoder.structure_score(group, feats, gold, include_cost=False)
        else:
            scorer = decoder.scorer
            for ex in dataset:
                x = model.features_of(dataset, ex)
                value += float(scorer.scores(x, ex, include_cost=True).max())
                value -= scorer.score(x, ex, self._gold[ex.id], include_cost=False)

        arena = model.arena
        if self.policy.l1 > 0:
            value += self.policy.l1 * arena.l1_norm()
        if self.policy.l2 > 0:
            value += 0.5 * self.policy.l2 * arena.l2_norm_sq()
        return value

    def _quick_predictions(self, dataset: Dataset) -> Dict[int, Hashable]:
        decoder = self.model.decoder()
        labels = self.model.labels
        return {
            ex.id: labels.label(decoder.decode(self.model.features_of(dataset, ex), ex, include_cost=False))
            for ex in dataset
        }

    def _evaluate(self, dataset: Dataset, dev: Optional[Dataset], predictions) -> Dict[str, float]:
        if not self.metrics:
            return {}
        if dev is None:
            return evaluate(dataset, predictions, self.metrics, self.model.map_valid_label)
        return evaluate(dev, self.model.classify(dev), self.metrics, self.model.map_valid_label)

    # =========================================================
    # Dataset access
    # =========================================================
    def _features(self, dataset: Dataset, ex: Example, *, cache_names: bool) -> Dict[int, float]:
        x = dataset.sparse_features(ex)
        if x is None:
            raise CollaboratorFailure(f"dataset returned no features for example {ex.id}")

        if cache_names:
            names = self.model.arena.feature_names
            missing = [k for k in x if k not in names]
            if missing:
                found = dataset.feature_names(missing)
                if found is None:
                    raise CollaboratorFailure("dataset returned no feature names")
                names.update(found)
        return x

    def _hyper(self) -> str:
        parts = []
        cost = self.model.cost_model
        if cost is not None:
            parts.append(f"c={cost.c}")
        parts.append(f"l1={self.policy.l1}")
        parts.append(f"l2={self.policy.l2}")
        parts.append(f"n={self.policy.n}")
        return "(" + ", ".join(parts) + ")"
