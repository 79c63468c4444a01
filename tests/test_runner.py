import pytest

from fake_browser import FakeBrowser
from plainstep.errors import ScriptSyntaxError
from plainstep.models import ExecutionRecord
from plainstep.parser import parse
from plainstep.runner import ScriptRunner, run_source
from plainstep.settings import RunSettings

CHANNELS_HTML = """
<div>
  <button id="email" data-rect="0,0,100,30">Email</button>
  <button id="sms" data-rect="0,40,100,30">SMS</button>
</div>
"""

SUBMIT_HTML = '<button id="submit" data-rect="0,0,100,30">Submit</button>'


def _settings() -> RunSettings:
    return RunSettings(command_delay=0.0, locate_retry_delays=(0.0,))


def _run(source: str, client: FakeBrowser, **kwargs: object) -> ExecutionRecord:
    return run_source(source, client, _settings(), sleep=lambda _seconds: None, **kwargs)  # type: ignore[arg-type]


def test_three_statement_scenario_records_locate_failure() -> None:
    client = FakeBrowser(CHANNELS_HTML)
    record = _run(
        'locate "Email" and click\nlocate "SMS" and click\nlocate "I don\'t exist" and click',
        client,
        name="channels",
    )
    assert [entry.text for entry in record.statements] == [
        'locate "Email" and click',
        'locate "SMS" and click',
        'locate "I don\'t exist" and click',
    ]
    assert record.statements[0].succeeded
    assert record.statements[1].succeeded
    assert record.statements[2].error == 'Could not locate the element "I don\'t exist"'
    assert record.exited_early
    assert [hit.get("id") for _x, _y, hit in client.clicks] == ["email", "sms"]


def test_failure_without_catch_error_halts_the_run() -> None:
    client = FakeBrowser(CHANNELS_HTML)
    record = _run('locate "Missing"\nlocate "Email" and click\nrefresh', client)
    assert len(record.statements) == 1
    assert not record.statements[0].succeeded
    assert client.clicks == []
    assert client.refreshes == 0


def test_comments_are_recorded_but_not_executed() -> None:
    client = FakeBrowser(CHANNELS_HTML)
    record = _run('# pick a channel\nlocate "SMS" and click', client)
    assert [entry.text for entry in record.statements] == ["# pick a channel", 'locate "SMS" and click']
    assert not record.exited_early


def test_catch_error_without_try_again_continues_after_block() -> None:
    client = FakeBrowser(CHANNELS_HTML)
    record = _run(
        'locate "Missing" and click\nlocate "Email" and click\ncatch-error: screenshot\nlocate "SMS" and click',
        client,
        name="recover",
    )
    texts = [entry.text for entry in record.statements]
    assert texts == ['locate "Missing" and click', "catch-error: screenshot", 'locate "SMS" and click']
    assert record.statements[0].error is not None
    assert [shot.identifier for shot in record.statements[1].screenshots] == ["recover_screenshot_1.png"]
    assert not record.exited_early
    assert [hit.get("id") for _x, _y, hit in client.clicks] == ["sms"]


def test_try_again_recovers_when_retry_succeeds() -> None:
    client = FakeBrowser("<p>Loading</p>", refreshed_html=SUBMIT_HTML)
    record = _run('locate "Submit" and click\ncatch-error: refresh and try-again', client)
    assert [(entry.text, entry.succeeded) for entry in record.statements] == [
        ('locate "Submit" and click', False),
        ("catch-error: refresh and try-again", True),
        ('locate "Submit" and click', True),
        ("catch-error: refresh and try-again", True),
    ]
    assert not record.exited_early
    assert client.refreshes == 1


def test_try_again_retries_exactly_once_before_halting() -> None:
    client = FakeBrowser("<p>Loading</p>")
    record = _run('locate "Submit" and click\ncatch-error: refresh and try-again\nrefresh', client)
    assert [(entry.text, entry.succeeded) for entry in record.statements] == [
        ('locate "Submit" and click', False),
        ("catch-error: refresh and try-again", True),
        ('locate "Submit" and click', False),
    ]
    assert record.exited_early
    assert client.refreshes == 1


def test_retry_resets_for_each_catch_error_region() -> None:
    client = FakeBrowser("<p>Loading</p>", refreshed_html=SUBMIT_HTML)
    source = "\n".join(
        [
            'locate "Submit"',
            "catch-error: refresh and try-again",
            'locate "Cancel"',
            "catch-error: try-again",
        ]
    )
    record = _run(source, client)
    results = [(entry.text, entry.succeeded) for entry in record.statements]
    assert results == [
        ('locate "Submit"', False),
        ("catch-error: refresh and try-again", True),
        ('locate "Submit"', True),
        ("catch-error: refresh and try-again", True),
        ('locate "Cancel"', False),
        ("catch-error: try-again", True),
        ('locate "Cancel"', False),
    ]
    assert record.exited_early


def test_retry_reruns_the_whole_guarded_region() -> None:
    client = FakeBrowser(CHANNELS_HTML)
    record = _run(
        'locate "Email" and click\nlocate "Missing"\ncatch-error: try-again',
        client,
    )
    assert [hit.get("id") for _x, _y, hit in client.clicks] == ["email", "email"]
    assert record.exited_early
    assert len(record.failures) == 2


def test_failing_catch_error_block_halts() -> None:
    client = FakeBrowser(CHANNELS_HTML)
    record = _run('locate "Missing"\ncatch-error: accept-alert\nlocate "Email" and click', client)
    assert [entry.succeeded for entry in record.statements] == [False, False]
    assert record.statements[1].error == "Error accepting alert: no alert present"
    assert record.exited_early
    assert client.clicks == []


DIALOG_HTML = '<button id="delete" data-rect="0,0,100,30" data-dialog="Really delete?">Delete</button>'


@pytest.mark.parametrize("alert_command, action", [("accept-alert", "accept"), ("dismiss-alert", "dismiss")])
def test_alert_command_on_the_next_line_answers_the_dialog(alert_command: str, action: str) -> None:
    client = FakeBrowser(DIALOG_HTML)
    record = _run(f'locate "Delete" and click\n# the browser asks first\n{alert_command}', client)
    assert record.failures == []
    assert client.answered == [("Really delete?", action)]


def test_dialog_expires_after_the_following_statement() -> None:
    client = FakeBrowser(DIALOG_HTML)
    record = _run('locate "Delete" and click\nscreenshot\naccept-alert', client)
    assert [entry.succeeded for entry in record.statements] == [True, True, False]
    assert record.statements[2].error == "Error accepting alert: no alert present"


def test_if_predicate_failure_is_not_a_recorded_failure() -> None:
    client = FakeBrowser(CHANNELS_HTML)
    record = _run(
        'if locate "Cookie banner" then click\nlocate "Email" and click\ncatch-error: screenshot',
        client,
    )
    assert record.failures == []
    assert client.screenshots_taken == 0
    assert not record.exited_early


def test_datatable_row_values_reach_commands() -> None:
    client = FakeBrowser('<input id="user" placeholder="Username" data-rect="0,0,100,20">')
    script = parse('save "<username>" as u\nlocate "Username" and type "<u>"')
    runner = ScriptRunner(client, _settings(), sleep=lambda _seconds: None)
    record = runner.run(script, name="login_1", row={"username": "a@b.com"})
    assert not record.exited_early
    assert client.typed[-1][1] == "a@b.com"


def test_each_run_starts_with_fresh_state() -> None:
    client = FakeBrowser(CHANNELS_HTML)
    runner = ScriptRunner(client, _settings(), sleep=lambda _seconds: None)
    first = runner.run(parse('save "SMS" as channel\nlocate channel'), name="first")
    second = runner.run(parse("locate channel"), name="second")
    assert not first.exited_early
    assert second.statements[0].error == "Variable `channel` is not yet defined"


def test_syntax_errors_stop_before_anything_runs() -> None:
    client = FakeBrowser(CHANNELS_HTML)
    with pytest.raises(ScriptSyntaxError):
        _run('locate "Email" and click\nlocate "SMS" click "now"', client)
    assert client.clicks == []
