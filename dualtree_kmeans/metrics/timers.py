"""
Таймеры для фаз итерационного цикла.

Timer: контекстный менеджер на time.perf_counter(); PhaseTimer
накапливает суммарное время по фазам одного вызова fit(...).
"""
from __future__ import annotations

import time
from collections import defaultdict
from contextlib import contextmanager
from typing import Any, Dict, Hashable, Iterator


class Timer:
    """
    Контекстный менеджер для измерения времени участка кода.

    Пример:
        with Timer() as t:
            rules.traverse()
        t.elapsed
    """

    def __init__(self) -> None:
        self.start: float = 0.0
        self.end: float = 0.0
        self.elapsed: float = 0.0

    def __enter__(self) -> Timer:
        self.start = time.perf_counter()
        return self

    def __exit__(self, *args: Any) -> None:
        self.end = time.perf_counter()
        self.elapsed = self.end - self.start


class PhaseTimer:
    """Суммарные тайминги по фазам (ключ: любое хешируемое значение, обычно Phase)."""

    def __init__(self) -> None:
        self.totals: Dict[Hashable, float] = defaultdict(float)
        self.last: Dict[Hashable, float] = {}

    @contextmanager
    def measure(self, phase: Hashable) -> Iterator[Timer]:
        timer = Timer()
        with timer:
            yield timer
        self.totals[phase] += timer.elapsed
        self.last[phase] = timer.elapsed

    def total(self, phase: Hashable) -> float:
        return float(self.totals.get(phase, 0.0))

    def reset(self) -> None:
        self.totals.clear()
        self.last.clear()
