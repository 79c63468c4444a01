from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Literal, Union


class CommandKind(str, Enum):
    URL = "url"
    LOCATE = "locate"
    LOCATE_NO_SCROLL = "locate-no-scroll"
    CLICK = "click"
    TYPE = "type"
    SELECT = "select"
    UPLOAD = "upload"
    READ_TO = "read-to"
    PRESS = "press"
    REFRESH = "refresh"
    SCREENSHOT = "screenshot"
    CHILL = "chill"
    DRAG_TO = "drag-to"
    ACCEPT_ALERT = "accept-alert"
    DISMISS_ALERT = "dismiss-alert"
    TRY_AGAIN = "try-again"


# Commands whose argument is a string/number/variable parameter.
PARAM_COMMANDS = frozenset(
    {
        CommandKind.URL,
        CommandKind.LOCATE,
        CommandKind.LOCATE_NO_SCROLL,
        CommandKind.TYPE,
        CommandKind.SELECT,
        CommandKind.UPLOAD,
        CommandKind.PRESS,
        CommandKind.CHILL,
        CommandKind.DRAG_TO,
    }
)

ParamKind = Literal["string", "number", "variable"]


@dataclass(frozen=True, slots=True)
class Param:
    kind: ParamKind
    value: str

    def __str__(self) -> str:
        if self.kind == "string":
            return f'"{self.value}"'
        return self.value


@dataclass(frozen=True, slots=True)
class Command:
    kind: CommandKind
    param: Param | None = None
    # Target variable for read-to.
    variable: str | None = None

    def __str__(self) -> str:
        if self.kind is CommandKind.READ_TO:
            return f"{self.kind.value} {self.variable}"
        if self.param is not None:
            return f"{self.kind.value} {self.param}"
        return self.kind.value


@dataclass(frozen=True, slots=True)
class CommandSequence:
    commands: tuple[Command, ...]

    def __str__(self) -> str:
        return " and ".join(str(command) for command in self.commands)


@dataclass(frozen=True, slots=True)
class CommentStmt:
    text: str
    line: int = 0

    def __str__(self) -> str:
        return self.text


@dataclass(frozen=True, slots=True)
class SaveAsStmt:
    value: str
    name: str
    line: int = 0

    def __str__(self) -> str:
        return f'save "{self.value}" as {self.name}'


@dataclass(frozen=True, slots=True)
class CommandStmt:
    body: CommandSequence
    line: int = 0

    def __str__(self) -> str:
        return str(self.body)


@dataclass(frozen=True, slots=True)
class IfStmt:
    predicate: Command
    body: CommandSequence
    line: int = 0

    def __str__(self) -> str:
        return f"if {self.predicate} then {self.body}"


@dataclass(frozen=True, slots=True)
class CatchErrorStmt:
    body: CommandSequence
    line: int = 0

    @property
    def has_try_again(self) -> bool:
        return any(command.kind is CommandKind.TRY_AGAIN for command in self.body.commands)

    def __str__(self) -> str:
        return f"catch-error: {self.body}"


@dataclass(frozen=True, slots=True)
class UnderStmt:
    # anchor is None for under-active-element.
    anchor: Param | None
    body: CommandSequence
    line: int = 0

    def __str__(self) -> str:
        if self.anchor is None:
            return f"under-active-element {self.body}"
        return f"under {self.anchor} {self.body}"


Statement = Union[CommentStmt, SaveAsStmt, CommandStmt, IfStmt, CatchErrorStmt, UnderStmt]


@dataclass(frozen=True, slots=True)
class Script:
    statements: tuple[Statement, ...]
    # For each statement index, the index of the nearest following catch-error block.
    handler_index: tuple[int | None, ...]
    # For each statement index, the first index of its guarded region.
    region_start: tuple[int, ...]

    def __len__(self) -> int:
        return len(self.statements)


@dataclass(frozen=True, slots=True)
class Rect:
    x: float
    y: float
    width: float
    height: float

    @property
    def center(self) -> tuple[float, float]:
        return self.x + self.width / 2, self.y + self.height / 2


@dataclass(frozen=True, slots=True)
class Screenshot:
    identifier: str
    png: bytes = field(repr=False)


@dataclass(slots=True)
class StatementRecord:
    text: str
    error: str | None = None
    screenshots: list[Screenshot] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.error is None


@dataclass(slots=True)
class ExecutionRecord:
    name: str
    statements: list[StatementRecord] = field(default_factory=list)
    exited_early: bool = False
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def append(self, entry: StatementRecord) -> None:
        self.statements.append(entry)

    @property
    def failures(self) -> list[StatementRecord]:
        return [entry for entry in self.statements if entry.error is not None]

    @property
    def screenshots(self) -> list[Screenshot]:
        return [shot for entry in self.statements for shot in entry.screenshots]
