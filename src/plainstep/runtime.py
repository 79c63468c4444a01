from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping

from .errors import VariableError
from .models import Param, Screenshot

_PLACEHOLDER_PATTERN = re.compile(r"<([A-Za-z_][A-Za-z0-9_]*)>")


class RunPhase(str, Enum):
    RUNNING = "running"
    AWAITING_RETRY = "awaiting_retry"
    HALTED = "halted"


@dataclass(slots=True)
class ElementSlot:
    """A browser-side element handle plus what is needed to find it again."""

    handle: Any
    query: str | None = None


@dataclass(slots=True)
class RuntimeState:
    row: Mapping[str, str] = field(default_factory=dict)
    variables: dict[str, str] = field(default_factory=dict)
    located: ElementSlot | None = None
    active: Any = None
    scope: Any = None
    phase: RunPhase = RunPhase.RUNNING
    catch_target: int | None = None
    retry_used: bool = False
    retry_requested: bool = False
    screenshots: list[Screenshot] = field(default_factory=list)
    screenshot_count: int = 0

    def set_variable(self, name: str, value: str) -> None:
        self.variables[name] = value

    def lookup(self, name: str) -> str | None:
        if name in self.variables:
            return self.variables[name]
        value = self.row.get(name)
        return None if value is None else str(value)

    def interpolate(self, text: str) -> str:
        def _replace(match: re.Match[str]) -> str:
            value = self.lookup(match.group(1))
            return match.group(0) if value is None else value

        return _PLACEHOLDER_PATTERN.sub(_replace, text)

    def resolve_param(self, param: Param) -> str:
        if param.kind == "variable":
            value = self.lookup(param.value)
            if value is None:
                raise VariableError(param.value)
            return value
        if param.kind == "string":
            return self.interpolate(param.value)
        return param.value

    def take_screenshots(self) -> list[Screenshot]:
        taken, self.screenshots = self.screenshots, []
        return taken

    def enter_region(self) -> None:
        self.retry_used = False
        self.catch_target = None
        self.phase = RunPhase.RUNNING
