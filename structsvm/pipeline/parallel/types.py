# structsvm/pipeline/parallel/types.py
from enum import Enum


class ParallelKind(str, Enum):
    LABEL = "label"  # one-vs-rest binary sub-problem
    MODEL = "model"  # independent TrainingLoop per config
