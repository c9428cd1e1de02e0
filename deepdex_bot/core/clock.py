from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Callable, Optional, Union


@dataclass
class TimeProvider:
    now_fn: Callable[[], float] = time.time
    sleep_fn: Callable[[float], None] = time.sleep

    def now(self) -> float:
        return float(self.now_fn())

    def now_ms(self) -> int:
        return int(self.now() * 1000)

    def sleep(self, seconds: float) -> None:
        if seconds <= 0:
            return
        self.sleep_fn(seconds)


@dataclass
class PeriodicTask:
    """Run ``step`` then wait ``interval_s`` seconds, repeatedly.

    ``interval_s`` may be a number or a callable re-evaluated after every
    step. With ``max_iterations`` unset the task never returns on its own;
    stopping it is left to the process owner.
    """

    step: Callable[[], object]
    interval_s: Union[float, Callable[[], float]]
    clock: TimeProvider = field(default_factory=TimeProvider)
    iterations: int = 0

    def _next_delay(self) -> float:
        if callable(self.interval_s):
            return float(self.interval_s())
        return float(self.interval_s)

    def run(self, max_iterations: Optional[int] = None) -> int:
        while max_iterations is None or self.iterations < max_iterations:
            self.step()
            self.iterations += 1
            if max_iterations is not None and self.iterations >= max_iterations:
                break
            self.clock.sleep(self._next_delay())
        return self.iterations
