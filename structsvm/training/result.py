from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import pandas as pd

from structsvm.training.context import TrainingState


@dataclass(frozen=True)
class TrainResult:
    """
    TrainResult（FINAL / FROZEN）

    语义：
    - 一次 train() 调用的纯内存态结果
    - 失败不抛异常：state=FAILED + error
    """

    model: Any
    state: TrainingState
    iterations: int
    objective: Optional[float] = None
    metrics: Dict[str, float] = field(default_factory=dict)
    history: List[Dict[str, Any]] = field(default_factory=list)
    timings: Dict[str, float] = field(default_factory=dict)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.state in (
            TrainingState.CONVERGED,
            TrainingState.MAX_ITERATIONS_REACHED,
        )

    def history_frame(self) -> pd.DataFrame:
        return pd.DataFrame(self.history)
