# tests/conftest.py
from __future__ import annotations

import pytest
from loguru import logger

from structsvm.data.dataset import InMemoryDataset


@pytest.fixture(autouse=True)
def disable_file_logger():
    logger.remove()
    logger.add(lambda msg: None)  # or sys.stderr
    yield


# ============================================================
# Toy datasets
# ============================================================
@pytest.fixture
def trace_dataset() -> InMemoryDataset:
    """
    x1=(1,0)->A, x2=(0,1)->B, x3=(1,1)->A
    """
    return InMemoryDataset.from_rows(
        [
            ({0: 1.0}, "A"),
            ({1: 1.0}, "B"),
            ({0: 1.0, 1: 1.0}, "A"),
        ],
        num_features=2,
    )


@pytest.fixture
def separable_dataset() -> InMemoryDataset:
    """(1,0)->A, (0,1)->B, each twice."""
    return InMemoryDataset.from_rows(
        [
            ({0: 1.0}, "A"),
            ({1: 1.0}, "B"),
            ({0: 1.0}, "A"),
            ({1: 1.0}, "B"),
        ],
        num_features=2,
    )


@pytest.fixture
def three_class_dataset() -> InMemoryDataset:
    """
    One indicator feature per class plus a shared feature 3.
    Two groups of three (one example per class in each).
    """
    rows = []
    groups = []
    for g in ("g1", "g2"):
        for k, label in enumerate(("A", "B", "C")):
            rows.append(({k: 1.0, 3: 0.5}, label))
            groups.append(g)
    return InMemoryDataset.from_rows(rows, groups=groups, num_features=4)
