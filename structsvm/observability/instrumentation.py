#!filepath: structsvm/observability/instrumentation.py
from __future__ import annotations

from collections import OrderedDict
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Dict

from structsvm.observability.timer import Timer
from structsvm.utils.logger import logs


@dataclass
class Instrumentation:
    """
    Epoch-level wall-clock accounting for one training run.

    - timer(name) 为唯一入口（context manager）
    - record=False 仅定义时间边界，不写 timeline
    - 热路径不打日志，report() 为冷路径
    """

    enabled: bool = True

    def __post_init__(self):
        self._timer = Timer(enabled=self.enabled)
        # timeline: OrderedDict[name, elapsed_seconds]
        self.timeline: Dict[str, float] = OrderedDict()

    def timer(self, name: str, *, record: bool = True):
        inst = self

        @contextmanager
        def _ctx():
            if not inst.enabled:
                yield
                return

            inst._timer.start(name)
            try:
                yield
            finally:
                elapsed = inst._timer.end(name)
                if record:
                    inst.timeline[name] = elapsed

        return _ctx()

    def total(self) -> float:
        return float(sum(self.timeline.values()))

    def report(self, title: str) -> None:
        if not self.timeline:
            return
        slowest = max(self.timeline, key=self.timeline.get)
        logs.info(
            f"[Timeline] {title} entries={len(self.timeline)} "
            f"total={self.total():.3f}s slowest={slowest}({self.timeline[slowest]:.3f}s)"
        )
