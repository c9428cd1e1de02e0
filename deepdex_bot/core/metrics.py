from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Dict

COUNTERS = (
    "ticks_ok",
    "ticks_failed",
    "orders_placed",
    "orders_failed",
    "orders_cancelled",
    "cancel_failures",
    "market_orders",
    "perp_orders",
)


@dataclass
class Counter:
    _value: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def inc(self, n: int = 1) -> None:
        with self._lock:
            self._value += n

    @property
    def value(self) -> int:
        with self._lock:
            return self._value


@dataclass
class Gauge:
    _value: float = 0.0
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def set(self, v: float) -> None:
        with self._lock:
            self._value = float(v)

    @property
    def value(self) -> float:
        with self._lock:
            return self._value


class BotMetrics:
    """Per-bot counters and gauges; ``snapshot()`` is logged after every tick."""

    def __init__(self) -> None:
        self._counters: Dict[str, Counter] = {name: Counter() for name in COUNTERS}
        self._gauges: Dict[str, Gauge] = {"last_price": Gauge()}
        self._lock = threading.Lock()

    def counter(self, name: str) -> Counter:
        with self._lock:
            if name not in self._counters:
                self._counters[name] = Counter()
            return self._counters[name]

    def gauge(self, name: str) -> Gauge:
        with self._lock:
            if name not in self._gauges:
                self._gauges[name] = Gauge()
            return self._gauges[name]

    def inc(self, name: str, n: int = 1) -> None:
        self.counter(name).inc(n)

    def snapshot(self) -> Dict[str, float]:
        with self._lock:
            counters = dict(self._counters)
            gauges = dict(self._gauges)
        out: Dict[str, float] = {k: c.value for k, c in counters.items()}
        out.update({k: g.value for k, g in gauges.items()})
        return out
