from .context import CancellationToken, TrainingState
from .loop import TrainingLoop
from .registry import build_model, build_training_loop, load_model, train_model
from .result import TrainResult

__all__ = [
    "CancellationToken",
    "TrainingState",
    "TrainingLoop",
    "TrainResult",
    "build_model",
    "build_training_loop",
    "load_model",
    "train_model",
]
