from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Callable, Mapping

from .errors import ScriptError
from .executor import CommandExecutor, upcoming_dialog_action
from .locators import LocatorEngine
from .models import CatchErrorStmt, CommentStmt, ExecutionRecord, Script, StatementRecord
from .parser import parse
from .runtime import RunPhase, RuntimeState
from .settings import RunSettings

if TYPE_CHECKING:
    from .browser import BrowserClient

logger = logging.getLogger("plainstep.run")


class ScriptRunner:
    """Drive a parsed script through the executor and collect its ExecutionRecord.

    A failing statement jumps to the nearest following catch-error block. That block
    guards every statement since the previous catch-error, and a ``try-again`` inside
    it re-runs that region once. Without a handler, or when the retried region fails
    again, the run halts.
    """

    def __init__(
        self,
        client: BrowserClient,
        settings: RunSettings | None = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.client = client
        self.settings = settings or RunSettings(command_delay=0.0)
        self._sleep = sleep

    def run(self, script: Script, name: str = "run", row: Mapping[str, str] | None = None) -> ExecutionRecord:
        state = RuntimeState(row=dict(row or {}))
        engine = LocatorEngine(self.client, retry_delays=self.settings.locate_retry_delays, sleep=self._sleep)
        executor = CommandExecutor(
            self.client,
            state,
            engine,
            run_name=name,
            command_delay=self.settings.command_delay,
            demo=self.settings.demo,
            sleep=self._sleep,
        )
        record = ExecutionRecord(name)
        logger.info("Starting run %s (%d statements).", name, len(script))

        index = 0
        while index < len(script) and state.phase is not RunPhase.HALTED:
            statement = script.statements[index]
            if isinstance(statement, CatchErrorStmt):
                # Reached without a failure: the block is skipped and a new region begins.
                record.append(StatementRecord(str(statement)))
                state.enter_region()
                index += 1
                continue

            if isinstance(statement, CommentStmt):
                record.append(StatementRecord(str(statement)))
                index += 1
                continue

            logger.info("Executing: %s", statement)
            try:
                executor.execute(statement, upcoming_dialog_action(script.statements, index))
            except ScriptError as exc:
                logger.error("Failed: %s (%s)", statement, exc)
                record.append(StatementRecord(str(statement), str(exc), state.take_screenshots()))
                self.client.finish_statement()
                index = self._recover(script, index, state, executor, record)
                continue

            record.append(StatementRecord(str(statement), None, state.take_screenshots()))
            self.client.finish_statement()
            index += 1

        record.exited_early = state.phase is RunPhase.HALTED
        if record.exited_early:
            logger.warning("Run %s exited early after %d statements.", name, len(record.statements))
        else:
            logger.info("Run %s completed.", name)
        return record

    def _recover(
        self,
        script: Script,
        failed_index: int,
        state: RuntimeState,
        executor: CommandExecutor,
        record: ExecutionRecord,
    ) -> int:
        """Run the catch-error block for a failure and return the next statement index."""
        handler = script.handler_index[failed_index]
        if handler is None:
            state.phase = RunPhase.HALTED
            return len(script)
        if state.retry_used and state.catch_target == handler:
            logger.info("Region already retried once, halting.")
            state.phase = RunPhase.HALTED
            return len(script)

        state.phase = RunPhase.AWAITING_RETRY
        state.catch_target = handler
        state.retry_requested = False
        catch_statement = script.statements[handler]
        logger.info("Jumping to line %d: %s", catch_statement.line, catch_statement)
        try:
            executor.execute(catch_statement)
        except ScriptError as exc:
            logger.error("Catch-error block failed: %s", exc)
            record.append(StatementRecord(str(catch_statement), str(exc), state.take_screenshots()))
            state.phase = RunPhase.HALTED
            return len(script)
        finally:
            self.client.finish_statement()
        record.append(StatementRecord(str(catch_statement), None, state.take_screenshots()))

        if state.retry_requested:
            state.retry_requested = False
            state.retry_used = True
            state.phase = RunPhase.RUNNING
            logger.info("Trying again from statement %d.", script.region_start[handler] + 1)
            return script.region_start[handler]

        state.enter_region()
        return handler + 1


def run_source(
    source: str,
    client: BrowserClient,
    settings: RunSettings | None = None,
    *,
    name: str = "run",
    row: Mapping[str, str] | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> ExecutionRecord:
    """Parse and run script text. Syntax errors propagate before anything executes."""
    script = parse(source)
    return ScriptRunner(client, settings, sleep=sleep).run(script, name=name, row=row)
