#!filepath: structsvm/observability/timer.py
import time
from typing import Dict


class Timer:
    """
    高精度计时器（可嵌套、按名字区分）
    - start(name)
    - end(name) → 返回耗时秒数；未 start 的名字返回 0.0
    """

    def __init__(self, enabled: bool = True):
        self.enabled = enabled
        self._start: Dict[str, float] = {}

    def start(self, name: str) -> None:
        if not self.enabled:
            return
        self._start[name] = time.perf_counter()

    def end(self, name: str) -> float:
        if not self.enabled or name not in self._start:
            return 0.0
        return time.perf_counter() - self._start.pop(name)

    def running(self) -> list:
        return list(self._start)
