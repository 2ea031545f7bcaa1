#!filepath: tests/utils/test_logger.py
import pytest
from loguru import logger

from structsvm.config.log_config import LogConfig
from structsvm.utils.errors import (
    CheckpointFormatError,
    CollaboratorFailure,
    ConfigurationError,
    StructSVMError,
)
from structsvm.utils.logger import init_logging, logs


@pytest.fixture
def captured():
    lines = []
    sink_id = logger.add(lambda msg: lines.append(str(msg)), level="DEBUG")
    yield lines
    logger.remove(sink_id)


def test_catch_logs_and_reraises(captured):
    @logs.catch(msg="decode failed")
    def boom():
        raise ValueError("bad row")

    with pytest.raises(ValueError, match="bad row"):
        boom()

    assert any("[ERROR] boom: decode failed" in line for line in captured)


def test_catch_passes_result_through(captured):
    @logs.catch(log_inputs=True)
    def add(a, b=0):
        return a + b

    assert add(1, b=2) == 3
    assert any("[CALL] add" in line for line in captured)
    assert any("[TIME] add" in line for line in captured)


def test_init_logging_writes_file(tmp_path):
    log_dir = tmp_path / "logs"
    init_logging(LogConfig(dir=str(log_dir), level="DEBUG"))
    logs.info("[Test] hello")
    logger.complete()
    logger.remove()

    files = list(log_dir.glob("*.log"))
    assert len(files) == 1
    assert "[Test] hello" in files[0].read_text(encoding="utf-8")


@pytest.mark.parametrize(
    "cls",
    [ConfigurationError, CollaboratorFailure, CheckpointFormatError],
)
def test_error_hierarchy(cls):
    assert issubclass(cls, StructSVMError)
    assert issubclass(cls, RuntimeError)
