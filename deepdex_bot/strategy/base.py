from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from deepdex_bot.core.context import BotContext
from deepdex_bot.core.logging import JsonLogger
from deepdex_bot.core.types import Action


class Strategy(ABC):
    """One polling strategy.

    ``observe`` does every venue read for a tick and returns a snapshot;
    ``decide`` turns that snapshot into actions without touching the venue,
    so the same snapshot always yields the same actions.
    """

    kind: str = ""

    def __init__(self, logger: Optional[JsonLogger] = None) -> None:
        self.logger = logger or JsonLogger(f"strategy.{self.kind}")

    @abstractmethod
    def interval_s(self) -> float:
        raise NotImplementedError

    @abstractmethod
    def observe(self, ctx: BotContext) -> Any:
        raise NotImplementedError

    @abstractmethod
    def decide(self, snapshot: Any) -> List[Action]:
        raise NotImplementedError

    def describe(self) -> Dict[str, Any]:
        return {"strategy": self.kind}
