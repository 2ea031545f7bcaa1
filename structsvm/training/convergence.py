# structsvm/training/convergence.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Hashable, Mapping, Optional

from structsvm.utils.logger import logs


@dataclass(frozen=True)
class MonitorDecision:
    iteration: int
    objective: float
    objective_diff: float
    label_changes: int
    total: int
    stop: bool = False
    reason: Optional[str] = None


class ConvergenceMonitor:
    """
    Periodic check on the regularized objective and prediction churn.

    - due(iteration): every `check_every` epochs (0-based, iteration 0 included)
    - converged: iteration > min_iterations and |objective diff| < epsilon
    - optional early stop when no prediction changed (iteration > 10)
    """

    NO_CHANGE_MIN_ITERATION = 10

    def __init__(
        self,
        *,
        epsilon: float = 0.0,
        min_iterations: int = 20,
        check_every: int = 5,
        early_stop_if_no_label_change: bool = False,
    ):
        self.epsilon = epsilon
        self.min_iterations = min_iterations
        self.check_every = max(1, int(check_every))
        self.early_stop_if_no_label_change = early_stop_if_no_label_change

    def due(self, iteration: int) -> bool:
        return iteration % self.check_every == 0

    def observe(
        self,
        iteration: int,
        objective: float,
        prev_objective: float,
        predictions: Mapping[int, Hashable],
        prev_predictions: Mapping[int, Hashable],
    ) -> MonitorDecision:
        diff = objective - prev_objective
        changes = count_label_differences(prev_predictions, predictions)

        stop, reason = False, None
        if iteration > self.min_iterations and abs(diff) < self.epsilon:
            stop, reason = True, "objective"
        elif (
            self.early_stop_if_no_label_change
            and changes == 0
            and iteration > self.NO_CHANGE_MIN_ITERATION
        ):
            stop, reason = True, "no_label_change"

        if stop:
            logs.info(
                f"[Convergence] stop at iteration={iteration} reason={reason} "
                f"objective={objective:.6f} diff={diff:.3e}"
            )

        return MonitorDecision(
            iteration=iteration,
            objective=objective,
            objective_diff=diff,
            label_changes=changes,
            total=len(predictions),
            stop=stop,
            reason=reason,
        )


def count_label_differences(
    before: Mapping[int, Hashable],
    after: Mapping[int, Hashable],
) -> int:
    """Entries of `before` missing from `after` or relabeled."""
    return sum(1 for k, v in before.items() if k not in after or after[k] != v)
