from __future__ import annotations

import re
from typing import NoReturn

from .errors import ScriptSyntaxError
from .models import (
    PARAM_COMMANDS,
    CatchErrorStmt,
    Command,
    CommandKind,
    CommandSequence,
    CommandStmt,
    CommentStmt,
    IfStmt,
    Param,
    SaveAsStmt,
    Script,
    Statement,
    UnderStmt,
)
from .scanner import Token, scan

_IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_COMMANDS_BY_WORD = {kind.value: kind for kind in CommandKind}


class _LineParser:
    def __init__(self, tokens: list[Token]) -> None:
        self.tokens = tokens
        self.index = 0
        self.line = tokens[0].line if tokens else 0

    def peek(self) -> Token | None:
        if self.index < len(self.tokens):
            return self.tokens[self.index]
        return None

    def advance(self) -> Token | None:
        token = self.peek()
        if token is not None:
            self.index += 1
        return token

    def accept_keyword(self, word: str) -> bool:
        token = self.peek()
        if token is not None and token.is_keyword(word):
            self.index += 1
            return True
        return False

    def expect_keyword(self, word: str) -> None:
        if not self.accept_keyword(word):
            self.fail(f"`{word}`")

    def fail(self, expected: str) -> NoReturn:
        token = self.peek()
        found = token.text if token is not None else "end of line"
        line = token.line if token is not None else self.line
        raise ScriptSyntaxError(line, expected, found)

    def expect_end(self) -> None:
        if self.peek() is not None:
            self.fail("end of statement")

    def parse_statement(self) -> Statement:
        first = self.peek()
        assert first is not None
        if first.kind == "comment":
            self.advance()
            return CommentStmt(first.text, line=first.line)
        if self.accept_keyword("save"):
            return self._parse_save()
        if self.accept_keyword("if"):
            predicate = self.parse_command()
            self.expect_keyword("then")
            body = self.parse_sequence()
            self.expect_end()
            return IfStmt(predicate, body, line=self.line)
        if self.accept_keyword("catch-error:"):
            body = self.parse_sequence(allow_try_again=True)
            self.expect_end()
            return CatchErrorStmt(body, line=self.line)
        if self.accept_keyword("under"):
            anchor = self.parse_param()
            body = self.parse_sequence()
            self.expect_end()
            return UnderStmt(anchor, body, line=self.line)
        if self.accept_keyword("under-active-element"):
            body = self.parse_sequence()
            self.expect_end()
            return UnderStmt(None, body, line=self.line)
        body = self.parse_sequence()
        self.expect_end()
        return CommandStmt(body, line=self.line)

    def _parse_save(self) -> SaveAsStmt:
        token = self.peek()
        if token is None or token.kind != "string":
            self.fail("a quoted value")
        self.advance()
        self.expect_keyword("as")
        name = self.peek()
        if name is None or name.kind != "word" or not _IDENTIFIER_PATTERN.match(name.text):
            self.fail("a variable name")
        self.advance()
        self.expect_end()
        return SaveAsStmt(token.value, name.text, line=self.line)

    def parse_sequence(self, allow_try_again: bool = False) -> CommandSequence:
        commands = [self.parse_command(allow_try_again)]
        while self.accept_keyword("and"):
            commands.append(self.parse_command(allow_try_again))
        return CommandSequence(tuple(commands))

    def parse_command(self, allow_try_again: bool = False) -> Command:
        token = self.peek()
        if token is None or token.kind != "keyword" or token.text not in _COMMANDS_BY_WORD:
            self.fail("a command")
        self.advance()
        kind = _COMMANDS_BY_WORD[token.text]
        if kind is CommandKind.TRY_AGAIN and not allow_try_again:
            raise ScriptSyntaxError(token.line, "`try-again` only inside a catch-error block", token.text)
        if kind is CommandKind.READ_TO:
            name = self.peek()
            if name is None or name.kind != "word" or not _IDENTIFIER_PATTERN.match(name.text):
                self.fail("a variable name")
            self.advance()
            return Command(kind, variable=name.text)
        if kind in PARAM_COMMANDS:
            return Command(kind, param=self.parse_param())
        return Command(kind)

    def parse_param(self) -> Param:
        token = self.peek()
        if token is None:
            self.fail("a quoted string, number or variable")
        if token.kind == "string":
            self.advance()
            return Param("string", token.value)
        if token.kind == "number":
            self.advance()
            return Param("number", token.text)
        if token.kind == "word" and _IDENTIFIER_PATTERN.match(token.text):
            self.advance()
            return Param("variable", token.text)
        self.fail("a quoted string, number or variable")


def parse(source: str) -> Script:
    statements: list[Statement] = []
    for tokens in scan(source):
        statements.append(_LineParser(tokens).parse_statement())
    return build_script(statements)


def build_script(statements: list[Statement] | tuple[Statement, ...]) -> Script:
    """Precompute the catch-error jump table for a statement list."""
    handler_index: list[int | None] = [None] * len(statements)
    next_handler: int | None = None
    for index in range(len(statements) - 1, -1, -1):
        if isinstance(statements[index], CatchErrorStmt):
            next_handler = index
        handler_index[index] = next_handler

    region_start: list[int] = []
    start = 0
    for index, statement in enumerate(statements):
        region_start.append(start)
        if isinstance(statement, CatchErrorStmt):
            start = index + 1

    return Script(
        statements=tuple(statements),
        handler_index=tuple(handler_index),
        region_start=tuple(region_start),
    )
