from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict

ROOT_LOGGER = "deepdex_bot"


@dataclass
class JsonLogger:
    """``message key=value ...`` logger under the ``deepdex_bot`` hierarchy.

    Handlers live on the root ``deepdex_bot`` logger (see
    ``utils.logging_utils.setup_app_logger``); child loggers only propagate.
    """

    name: str = "app"
    context: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        full = self.name if self.name.startswith(ROOT_LOGGER) else f"{ROOT_LOGGER}.{self.name}"
        self._logger = logging.getLogger(full)

    class _EnhancedJSONEncoder(json.JSONEncoder):
        def default(self, o: Any):  # type: ignore[override]
            if isinstance(o, Decimal):
                return str(o)
            try:
                return super().default(o)
            except TypeError:
                return str(o)

    def _format_value(self, value: Any) -> str:
        if isinstance(value, Decimal):
            return str(value)
        if isinstance(value, (dict, list, tuple)):
            try:
                return json.dumps(value, ensure_ascii=False, separators=(",", ":"), cls=self._EnhancedJSONEncoder)
            except (TypeError, ValueError):
                return str(value)
        return str(value)

    def bind(self, **fields: Any) -> "JsonLogger":
        child = JsonLogger(name=self._logger.name, context={**self.context, **fields})
        return child

    def log(self, level: int, message: str, /, **fields: Any) -> None:
        if not self._logger.isEnabledFor(level):
            return
        merged = {**self.context, **fields}
        if merged:
            extras = " ".join(f"{k}={self._format_value(v)}" for k, v in merged.items())
            line = f"{message} {extras}"
        else:
            line = message
        self._logger.log(level, line)

    def debug(self, message: str, **fields: Any) -> None:
        self.log(logging.DEBUG, message, **fields)

    def info(self, message: str, **fields: Any) -> None:
        self.log(logging.INFO, message, **fields)

    def warn(self, message: str, **fields: Any) -> None:
        self.log(logging.WARNING, message, **fields)

    def error(self, message: str, **fields: Any) -> None:
        self.log(logging.ERROR, message, **fields)
