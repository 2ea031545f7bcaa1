# structsvm/config/training_config.py
from __future__ import annotations

from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field

VariantName = Literal[
    "svm",
    "svm_dense",
    "svm_cost_learner",
    "svm_structured",
    "structured_svmc",
    "svm_pegasos",
]

CostName = Literal[
    "hamming",
    "constant",
    "label",
    "label_pair",
    "label_pair_unordered",
]


class CostConfig(BaseModel):
    name: CostName = "hamming"
    c: float = 1.0
    # label 因子按 actual 还是 predicted 索引
    factor_mode: Literal["actual", "predicted"] = "actual"


class TrainingConfig(BaseModel):
    """
    TrainingConfig（FINAL / FROZEN）

    Semantics:
    - One config == one TrainingLoop instance
    - None means "use the variant default" (check_every / fit_bias)
    """

    variant: VariantName = "svm_dense"

    # hyper-parameters
    l1: float = Field(0.0, ge=0)
    l2: float = Field(0.0, ge=0)
    n: float = Field(1.0, gt=0)
    epsilon: float = Field(0.0, ge=0)

    # iteration budget / convergence
    iterations: int = Field(30, ge=0)
    min_iterations: int = Field(20, ge=0)
    check_every: Optional[int] = Field(None, ge=1)
    early_stop_if_no_label_change: bool = False

    # reproducibility
    seed: int = 1
    shuffle: bool = True
    tie_break: Literal["first", "last"] = "first"

    fit_bias: Optional[bool] = None
    cost: CostConfig = Field(default_factory=CostConfig)

    # labels
    valid_labels: Optional[List[str]] = None
    label_mapping: Dict[str, str] = Field(default_factory=dict)

    # structure
    structure_optimizer: str = "independent"
    structure_collection: str = "singletons"
    include_structured_training: bool = True

    # evaluation on dev set at monitor checkpoints
    metrics: List[str] = Field(default_factory=lambda: ["accuracy"])
