# structsvm/training/regularizer.py
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Optional

import numpy as np

from structsvm.model.parameters import WeightArena
from structsvm.model.simplex import SimplexProjector
from structsvm.model.sparse import SparseVectorOps
from structsvm.model.updater import AdaptiveWeightUpdater
from structsvm.utils.errors import ConfigurationError


@dataclass
class StepGradient:
    """
    Loss subgradient of one training element (example or group),
    fully computed before any parameter is written.

    loss  : flat feature index -> (decoded - gold) feature value
    bias  : per label, decoded count - gold count
    costs : cost vector of the decoded labeling (learned costs only)
    """

    loss: Dict[int, float]
    bias: np.ndarray
    costs: Optional[Dict[int, float]] = None
    gold_is_best: bool = False


class UpdatePolicy(ABC):
    """
    How one StepGradient (plus regularization) turns into parameter writes.
    """

    name: str = ""

    def __init__(
        self,
        *,
        l1: float = 0.0,
        l2: float = 0.0,
        n: float = 1.0,
        fit_bias: bool = True,
        learn_costs: bool = False,
    ):
        self.l1 = l1
        self.l2 = l2
        self.n = n
        self.fit_bias = fit_bias
        self.learn_costs = learn_costs

        self.feature_updater = AdaptiveWeightUpdater(l1=l1, n=n)
        # bias and cost weights never take the L1 path
        self.plain_updater = AdaptiveWeightUpdater(l1=0.0, n=n)

    def validate(self) -> None:
        """Raise ConfigurationError for unsupported hyper-parameter combos."""

    @abstractmethod
    def apply(self, arena: WeightArena, step: StepGradient, num_elements: int) -> None:
        ...

    # ---------------- shared ----------------

    def _apply_bias(self, arena: WeightArena, step: StepGradient) -> None:
        if self.fit_bias:
            self.plain_updater.apply(arena.bias, step.bias.astype(np.float64), arena.t)

    def _apply_costs(self, arena: WeightArena, step: StepGradient) -> None:
        if not self.learn_costs or arena.num_costs == 0:
            return
        g = SparseVectorOps.densify(step.costs or {}, arena.num_costs)
        self.plain_updater.apply(arena.costs, g, arena.t)
        arena.costs.w[:] = SimplexProjector.project(arena.costs.w, arena.costs.G)


class DenseRegularizer(UpdatePolicy):
    """
    L2 folded into every step: g = l2 * w + loss gradient, optional
    proximal L1 across all coordinates.
    """

    name = "dense"

    def apply(self, arena, step, num_elements):
        block = arena.features
        g = self.l2 * block.w
        idx, val = SparseVectorOps.to_arrays(step.loss)
        np.add.at(g, idx, val)

        if self.l1 == 0:
            # zero-gradient coordinates cannot move without L1
            touched = np.flatnonzero(g)
            self.feature_updater.apply(block, g[touched], arena.t, touched)
        else:
            self.feature_updater.apply(block, g, arena.t)

        self._apply_bias(arena, step)
        self._apply_costs(arena, step)


class OccasionalL2Regularizer(UpdatePolicy):
    """
    Sparse-friendly schedule: only loss coordinates move on ordinary steps;
    every K = N/4 steps the L2 term (scaled by K/N) is added for every
    nonzero weight.
    """

    name = "occasional_l2"

    def apply(self, arena, step, num_elements):
        K = num_elements / 4.0
        regularizer_step = K > 0 and arena.t % K == 0

        if step.gold_is_best and not regularizer_step:
            return

        block = arena.features
        idx, val = SparseVectorOps.to_arrays(step.loss)

        if regularizer_step and self.l2 > 0:
            g_full = np.zeros_like(block.w)
            nz = np.flatnonzero(block.w)
            g_full[nz] = (K / num_elements) * self.l2 * block.w[nz]
            np.add.at(g_full, idx, val)
            touched = np.flatnonzero(g_full)
            g = g_full[touched]
        else:
            keep = val != 0
            touched, g = idx[keep], val[keep]

        self.feature_updater.apply(block, g, arena.t, touched)
        self._apply_bias(arena, step)
        self._apply_costs(arena, step)


class ScaledPegasosRegularizer(UpdatePolicy):
    """
    Pegasos with a lazily applied scale:
        eta = 1 / (l2 * t)
        s  <- (1 - eta * l2) * s   (s = 1 at t = 1)
        W  <- W - eta * g / s      (effective weights are s * W)
        b  <- b - eta * g_b
    """

    name = "pegasos"

    def validate(self):
        if self.l2 <= 0:
            raise ConfigurationError("pegasos requires l2 > 0")
        # the step size is fixed by l2; neither the L1 path nor n is read
        if self.l1 > 0:
            raise ConfigurationError("pegasos does not support l1")
        if self.n != 1.0:
            raise ConfigurationError(f"pegasos does not use a learning-rate scale, got n={self.n}")
        if self.learn_costs:
            raise ConfigurationError("pegasos does not learn cost weights")

    def apply(self, arena, step, num_elements):
        t = arena.t
        eta = 1.0 / (self.l2 * t)
        arena.s = (1.0 - eta * self.l2) * arena.s if t > 1 else 1.0

        idx, val = SparseVectorOps.to_arrays(step.loss)
        np.subtract.at(arena.features.w, idx, eta * val / arena.s)

        if self.fit_bias:
            arena.bias.w -= step.bias * eta


_POLICIES = {
    DenseRegularizer.name: DenseRegularizer,
    OccasionalL2Regularizer.name: OccasionalL2Regularizer,
    ScaledPegasosRegularizer.name: ScaledPegasosRegularizer,
}


def resolve_update_policy(name: str, **kwargs) -> UpdatePolicy:
    if name not in _POLICIES:
        available = ", ".join(_POLICIES)
        raise ConfigurationError(f"No update policy {name!r}. Available: {available}")
    policy = _POLICIES[name](**kwargs)
    policy.validate()
    return policy
