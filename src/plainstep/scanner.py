from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterator, Literal

from .errors import ScriptSyntaxError
from .models import CommandKind

TokenKind = Literal["keyword", "string", "number", "word", "comment"]

KEYWORDS = frozenset(
    {"if", "then", "and", "save", "as", "under", "under-active-element", "catch-error:"}
    | {kind.value for kind in CommandKind}
)

# A line ending with one of these continues on the next line.
CONTINUATION_KEYWORDS = ("and", "then")

_TOKEN_PATTERN = re.compile(
    r"""
    (?P<string>"[^"]*")
    | (?P<unterminated>"[^"]*$)
    | (?P<number>-?\d+(?:\.\d+)?(?=\s|$))
    | (?P<word>[^\s"]+)
    """,
    re.VERBOSE,
)


@dataclass(frozen=True, slots=True)
class Token:
    kind: TokenKind
    text: str
    line: int

    @property
    def value(self) -> str:
        if self.kind == "string":
            return self.text[1:-1]
        return self.text

    def is_keyword(self, word: str) -> bool:
        return self.kind == "keyword" and self.text == word


def tokenize_line(text: str, line: int) -> list[Token]:
    stripped = text.strip()
    if not stripped:
        return []
    if stripped.startswith("#"):
        return [Token("comment", stripped, line)]

    tokens: list[Token] = []
    for match in _TOKEN_PATTERN.finditer(stripped):
        group = match.lastgroup
        lexeme = match.group()
        if group == "unterminated":
            raise ScriptSyntaxError(line, "closing `\"`", lexeme)
        if group == "word":
            kind: TokenKind = "keyword" if lexeme in KEYWORDS else "word"
            tokens.append(Token(kind, lexeme, line))
        else:
            tokens.append(Token(group, lexeme, line))  # type: ignore[arg-type]
    return tokens


def scan(source: str) -> list[list[Token]]:
    """Split script text into logical lines of tokens.

    Blank lines are dropped. A line whose last token is ``and`` or ``then`` is
    joined with the following non-blank line.
    """
    return list(_logical_lines(source))


def _logical_lines(source: str) -> Iterator[list[Token]]:
    pending: list[Token] = []
    for number, raw_line in enumerate(source.splitlines(), start=1):
        tokens = tokenize_line(raw_line, number)
        if not tokens:
            continue
        if pending and tokens[0].kind == "comment":
            raise ScriptSyntaxError(number, "a command after a trailing connective", tokens[0].text)
        pending.extend(tokens)
        last = pending[-1]
        if last.kind == "keyword" and last.text in CONTINUATION_KEYWORDS:
            continue
        yield pending
        pending = []
    if pending:
        last = pending[-1]
        raise ScriptSyntaxError(last.line, f"a command after `{last.text}`", "end of script")
