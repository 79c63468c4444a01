from __future__ import annotations


class PlainstepError(Exception):
    """Base class for every error raised by plainstep."""


class ScriptSyntaxError(PlainstepError):
    def __init__(self, line: int, expected: str, found: str | None = None) -> None:
        self.line = line
        self.expected = expected
        self.found = found
        detail = f"Line {line}: expected {expected}"
        if found is not None:
            detail += f", found `{found}`"
        super().__init__(detail)


class ScriptError(PlainstepError):
    """A failure while executing a statement. Recoverable through catch-error."""


class LocateError(ScriptError):
    def __init__(self, query: str) -> None:
        self.query = query
        super().__init__(f'Could not locate the element "{query}"')


class InteractionError(ScriptError):
    pass


class AlertError(ScriptError):
    pass


class VariableError(ScriptError):
    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Variable `{name}` is not yet defined")


class DatatableError(PlainstepError):
    pass
