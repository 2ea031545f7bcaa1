# structsvm/training/context.py
from __future__ import annotations

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Hashable, List, Optional


class TrainingState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZED = "initialized"
    ITERATING = "iterating"
    CONVERGED = "converged"
    MAX_ITERATIONS_REACHED = "max_iterations_reached"
    CANCELLED = "cancelled"
    FAILED = "failed"


class CancellationToken:
    """
    Cooperative cancel flag, checked by the loop at the top of each epoch.
    """

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@dataclass
class TrainingContext:
    """
    TrainingContext（FINAL / FROZEN）

    Semantics:
    - One context == one train() call
    - Holds only rolling bookkeeping; weights live in the model arena
    """

    state: TrainingState = TrainingState.UNINITIALIZED
    iteration: int = -1
    epochs_completed: int = 0

    # -------------------------
    # Monitor state
    # -------------------------
    objective: Optional[float] = None
    predictions: Dict[int, Hashable] = field(default_factory=dict)
    metrics: Dict[str, float] = field(default_factory=dict)

    history: List[Dict[str, Any]] = field(default_factory=list)
    error: Optional[str] = None

    def transition(self, state: TrainingState) -> None:
        self.state = state
