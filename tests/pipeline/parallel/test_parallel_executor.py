#!filepath: tests/pipeline/parallel/test_parallel_executor.py
from __future__ import annotations

import math

import pytest

from structsvm.pipeline.parallel.executor import ParallelExecutor
from structsvm.pipeline.parallel.types import ParallelKind


def test_run_with_empty_items_does_nothing():
    called = []

    out = ParallelExecutor.run(
        kind=ParallelKind.MODEL,
        items=[],
        handler=called.append,
    )

    assert out == []
    assert called == []


def test_run_sequential_order_preserved():
    called = []

    def handler(x):
        called.append(x)
        return x.upper()

    out = ParallelExecutor.run(
        kind=ParallelKind.LABEL,
        items=["a", "b", "c"],
        handler=handler,
        max_workers=1,
    )

    assert called == ["a", "b", "c"]
    assert out == ["A", "B", "C"]


def test_run_parallel_results_in_input_order():
    items = [9.0, 1.0, 16.0, 4.0, 25.0]

    out = ParallelExecutor.run(
        kind=ParallelKind.MODEL,
        items=items,
        handler=math.sqrt,
        max_workers=3,
    )

    assert out == [3.0, 1.0, 4.0, 2.0, 5.0]


def test_task_exception_propagates():
    with pytest.raises(ValueError):
        ParallelExecutor.run(
            kind=ParallelKind.MODEL,
            items=[1.0, -1.0],
            handler=math.sqrt,
            max_workers=2,
        )


@pytest.mark.parametrize(
    "n_items, max_workers, expected",
    [(3, 8, 3), (10, 2, 2), (4, 0, 1)],
)
def test_resolve_workers(n_items, max_workers, expected):
    assert ParallelExecutor._resolve_workers(list(range(n_items)), max_workers) == expected


def test_resolve_workers_defaults_to_cpu_count(monkeypatch):
    monkeypatch.setattr("os.cpu_count", lambda: 2)

    assert ParallelExecutor._resolve_workers(list(range(10)), None) == 2
