#!filepath: structsvm/__init__.py

from .utils.logger import Logging, logs, init_logging
from .utils.errors import (
    StructSVMError,
    ConfigurationError,
    CollaboratorFailure,
    CheckpointFormatError,
)

__version__ = "0.1.0"

__all__ = [
    "logs", "Logging", "init_logging",
    "StructSVMError",
    "ConfigurationError",
    "CollaboratorFailure",
    "CheckpointFormatError",
    "__version__",
]
