# structsvm/pipeline/parallel/executor.py
from __future__ import annotations

import os
from concurrent.futures import ProcessPoolExecutor, as_completed
from typing import Any, Callable, Dict, Iterable, List, TypeVar

from structsvm.pipeline.parallel.types import ParallelKind
from structsvm.utils.logger import logs

T = TypeVar("T")
R = TypeVar("R")


class ParallelExecutor:
    """
    ParallelExecutor（FINAL）

    Semantics:
    - Fixed-size process pool, one task per item
    - All tasks are joined before run() returns
    - Results come back in input order
    - A task exception propagates after the pool has shut down
    - handler and items must be picklable when workers > 1
    """

    @staticmethod
    def run(
            *,
            kind: ParallelKind,
            items: Iterable[T],
            handler: Callable[[T], R],
            max_workers: int | None = None,
    ) -> List[R]:
        items = list(items)
        if not items:
            logs.info("[ParallelExecutor] no items to process")
            return []

        workers = ParallelExecutor._resolve_workers(items, max_workers)
        logs.info(
            f"[ParallelExecutor] start kind={kind.value} total={len(items)} workers={workers}"
        )

        if workers == 1:
            return ParallelExecutor._run_sequential(items, handler)
        return ParallelExecutor._run_parallel(items, handler, workers)

    # ---------------- internal ----------------

    @staticmethod
    def _resolve_workers(items: list, max_workers: int | None) -> int:
        cpu = os.cpu_count() or 1
        if max_workers is None:
            return max(1, min(cpu, len(items)))
        return max(1, min(max_workers, len(items)))

    @staticmethod
    def _run_sequential(items: list, handler: Callable[[Any], Any]) -> list:
        return [handler(item) for item in items]

    @staticmethod
    def _run_parallel(items: list, handler: Callable[[Any], Any], workers: int) -> list:
        results: Dict[int, Any] = {}
        with ProcessPoolExecutor(max_workers=workers) as pool:
            futures = {pool.submit(handler, item): i for i, item in enumerate(items)}
            for fut in as_completed(futures):
                results[futures[fut]] = fut.result()

        return [results[i] for i in range(len(items))]
