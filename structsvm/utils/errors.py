# structsvm/utils/errors.py
class StructSVMError(RuntimeError):
    """
    Base class for failures local to one training run.

    TrainingLoop.train() converts these into a FAILED TrainResult;
    anything else is a programming error and propagates.
    """


class ConfigurationError(StructSVMError):
    """
    Invalid label set, hyper-parameters or variant composition.
    Detected before the first update is applied.
    """


class CollaboratorFailure(StructSVMError):
    """
    Dataset / cost model / structure optimizer returned nothing usable.
    """


class CheckpointFormatError(StructSVMError):
    """Malformed or incompatible checkpoint text."""
