import pytest

from plainstep.errors import ScriptSyntaxError
from plainstep.models import (
    CatchErrorStmt,
    CommandKind,
    CommandStmt,
    CommentStmt,
    IfStmt,
    Param,
    SaveAsStmt,
    UnderStmt,
)
from plainstep.parser import parse
from plainstep.scanner import scan, tokenize_line


def test_tokenize_line_splits_strings_numbers_and_keywords() -> None:
    tokens = tokenize_line('locate "Sign in" and chill 2.5', 3)
    assert [(token.kind, token.text) for token in tokens] == [
        ("keyword", "locate"),
        ("string", '"Sign in"'),
        ("keyword", "and"),
        ("keyword", "chill"),
        ("number", "2.5"),
    ]
    assert tokens[1].value == "Sign in"
    assert all(token.line == 3 for token in tokens)


def test_tokenize_line_rejects_unterminated_string() -> None:
    with pytest.raises(ScriptSyntaxError) as exc_info:
        tokenize_line('locate "Sign in', 7)
    assert exc_info.value.line == 7


def test_scan_joins_lines_ending_with_connectives() -> None:
    lines = scan('locate "Email" and\n\n  click\nif locate "x" then\nclick\n')
    assert len(lines) == 2
    assert [token.text for token in lines[0]] == ["locate", '"Email"', "and", "click"]
    assert lines[1][-1].text == "click"


def test_scan_rejects_dangling_connective_at_end_of_script() -> None:
    with pytest.raises(ScriptSyntaxError) as exc_info:
        scan('locate "Email" and')
    assert exc_info.value.line == 1


def test_parse_builds_every_statement_kind() -> None:
    script = parse(
        "\n".join(
            [
                "# Log in as the demo user",
                'save "<username>" as user',
                'url "example.com/login"',
                'locate "Email" and type user',
                'if locate "Accept cookies" then click',
                'under "Billing" locate "Save" and click',
                "under-active-element press \"Enter\"",
                "catch-error: screenshot and try-again",
            ]
        )
    )

    kinds = [type(statement) for statement in script.statements]
    assert kinds == [
        CommentStmt,
        SaveAsStmt,
        CommandStmt,
        CommandStmt,
        IfStmt,
        UnderStmt,
        UnderStmt,
        CatchErrorStmt,
    ]
    comment, save, _url, typed, condition, under, under_active, catch = script.statements
    assert comment.text == "# Log in as the demo user"
    assert save.value == "<username>"
    assert save.name == "user"
    assert typed.body.commands[1].param == Param("variable", "user")
    assert condition.predicate.kind is CommandKind.LOCATE
    assert under.anchor == Param("string", "Billing")
    assert under_active.anchor is None
    assert catch.has_try_again


def test_statement_display_round_trips_source_text() -> None:
    lines = [
        "# comment",
        'save "a@b.com" as user',
        'locate "Email" and click',
        'if locate "Banner" then click',
        'under "Row 2" locate "Edit" and click',
        "under-active-element read-to title",
        "chill 2",
        "catch-error: refresh and try-again",
    ]
    script = parse("\n".join(lines))
    assert [str(statement) for statement in script.statements] == lines


def test_statement_lines_follow_source_lines() -> None:
    script = parse('\n# first\n\nlocate "A" and\nclick\nrefresh\n')
    assert [statement.line for statement in script.statements] == [2, 4, 6]


def test_catch_error_table_points_forward_and_marks_regions() -> None:
    script = parse(
        "\n".join(
            [
                'locate "A"',  # 0
                'locate "B"',  # 1
                "catch-error: screenshot",  # 2
                'locate "C"',  # 3
                "catch-error: try-again",  # 4
                'locate "D"',  # 5
            ]
        )
    )
    assert script.handler_index == (2, 2, 2, 4, 4, None)
    assert script.region_start == (0, 0, 0, 3, 3, 5)


@pytest.mark.parametrize(
    ("source", "line", "expected"),
    [
        ('locate "A"\nclick "B"', 2, "end of statement"),
        ("save user as name", 1, "a quoted value"),
        ('save "x" as 9lives', 1, "a variable name"),
        ('if locate "A" click', 1, "`then`"),
        ("jump", 1, "a command"),
        ("locate", 1, "a quoted string, number or variable"),
        ('locate "A" and try-again', 1, "`try-again` only inside a catch-error block"),
        ("read-to \"text\"", 1, "a variable name"),
    ],
)
def test_parse_reports_line_and_expected_token(source: str, line: int, expected: str) -> None:
    with pytest.raises(ScriptSyntaxError) as exc_info:
        parse(source)
    assert exc_info.value.line == line
    assert exc_info.value.expected == expected
    assert f"Line {line}" in str(exc_info.value)


def test_placeholders_stay_in_parsed_arguments() -> None:
    script = parse('locate "<field>" and type "Hello <name>"')
    commands = script.statements[0].body.commands
    assert commands[0].param == Param("string", "<field>")
    assert commands[1].param == Param("string", "Hello <name>")
