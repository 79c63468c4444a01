from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Sequence

from .errors import InteractionError, ScriptError
from .locators import LocatorEngine
from .models import (
    CatchErrorStmt,
    Command,
    CommandKind,
    CommandSequence,
    CommandStmt,
    CommentStmt,
    IfStmt,
    SaveAsStmt,
    Screenshot,
    Statement,
    UnderStmt,
)
from .runtime import ElementSlot, RunPhase, RuntimeState
from .runtime_checks import normalize_key_name, normalize_url, parse_seconds

if TYPE_CHECKING:
    from .browser import BrowserClient

logger = logging.getLogger("plainstep.run")

DRAG_AND_DROP_SCRIPT = """
([source, target]) => {
  const transfer = new DataTransfer();
  const center = (el) => {
    const rect = el.getBoundingClientRect();
    return { clientX: rect.left + rect.width / 2, clientY: rect.top + rect.height / 2 };
  };
  const from = center(source);
  const to = center(target);
  const fire = (el, type, point, Ctor) => {
    const init = { bubbles: true, cancelable: true, view: window, ...point };
    if (Ctor === DragEvent) init.dataTransfer = transfer;
    el.dispatchEvent(new Ctor(type, init));
  };
  fire(source, 'pointerdown', from, PointerEvent);
  fire(source, 'mousedown', from, MouseEvent);
  fire(source, 'dragstart', from, DragEvent);
  fire(source, 'drag', from, DragEvent);
  fire(target, 'pointermove', to, PointerEvent);
  fire(target, 'mousemove', to, MouseEvent);
  fire(target, 'dragenter', to, DragEvent);
  fire(target, 'dragover', to, DragEvent);
  fire(target, 'drop', to, DragEvent);
  fire(source, 'dragend', to, DragEvent);
  fire(target, 'pointerup', to, PointerEvent);
  fire(target, 'mouseup', to, MouseEvent);
}
"""

HIGHLIGHT_SCRIPT = "([el, border]) => { el.style.border = border; }"
HIGHLIGHT_BORDER = "5px solid purple"

# Every CommandKind maps to exactly one handler method.
COMMAND_HANDLERS: dict[CommandKind, str] = {
    CommandKind.URL: "_url",
    CommandKind.LOCATE: "_locate",
    CommandKind.LOCATE_NO_SCROLL: "_locate_no_scroll",
    CommandKind.CLICK: "_click",
    CommandKind.TYPE: "_type",
    CommandKind.SELECT: "_select",
    CommandKind.UPLOAD: "_upload",
    CommandKind.READ_TO: "_read_to",
    CommandKind.PRESS: "_press",
    CommandKind.REFRESH: "_refresh",
    CommandKind.SCREENSHOT: "_screenshot",
    CommandKind.CHILL: "_chill",
    CommandKind.DRAG_TO: "_drag_to",
    CommandKind.ACCEPT_ALERT: "_accept_alert",
    CommandKind.DISMISS_ALERT: "_dismiss_alert",
    CommandKind.TRY_AGAIN: "_try_again",
}


class CommandExecutor:
    def __init__(
        self,
        client: BrowserClient,
        state: RuntimeState,
        engine: LocatorEngine | None = None,
        *,
        run_name: str = "run",
        command_delay: float = 0.0,
        demo: bool = False,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.client = client
        self.state = state
        self.engine = engine if engine is not None else LocatorEngine(client, sleep=sleep)
        self.run_name = run_name
        self.command_delay = command_delay
        self.demo = demo
        self._sleep = sleep

    def execute(self, statement: Statement, upcoming_dialog: str | None = None) -> None:
        """Execute one statement, raising ``ScriptError`` on failure.

        Dialogs opened while it runs are answered with the statement's own alert
        command, else with ``upcoming_dialog`` (the alert command on the line after).
        """
        dialog_action = _dialog_action(_statement_commands(statement))
        if dialog_action is None:
            dialog_action = upcoming_dialog
        if dialog_action is not None:
            self.client.prepare_dialog(dialog_action)
        try:
            self._execute(statement)
        finally:
            if dialog_action is not None:
                self.client.prepare_dialog(None)

    def _execute(self, statement: Statement) -> None:
        if isinstance(statement, CommentStmt):
            return
        if isinstance(statement, SaveAsStmt):
            self.state.set_variable(statement.name, self.state.interpolate(statement.value))
            return
        if isinstance(statement, CommandStmt):
            self.execute_sequence(statement.body)
            return
        if isinstance(statement, IfStmt):
            self._execute_if(statement)
            return
        if isinstance(statement, UnderStmt):
            self._execute_under(statement)
            return
        if isinstance(statement, CatchErrorStmt):
            self.execute_sequence(statement.body)
            return
        raise TypeError(f"Unsupported statement: {statement!r}")

    def execute_sequence(self, sequence: CommandSequence) -> None:
        for command in sequence.commands:
            self.execute_command(command)

    def execute_command(self, command: Command) -> None:
        if self.command_delay > 0:
            self._sleep(self.command_delay)
        handler: Callable[[Command], None] = getattr(self, COMMAND_HANDLERS[command.kind])
        handler(command)

    def _execute_if(self, statement: IfStmt) -> None:
        try:
            self.execute_command(statement.predicate)
        except ScriptError as exc:
            logger.info("Condition `%s` failed, skipping body: %s", statement.predicate, exc)
            return
        self.execute_sequence(statement.body)

    def _execute_under(self, statement: UnderStmt) -> None:
        if statement.anchor is None:
            anchor = self.client.active_element()
            if anchor is None:
                raise InteractionError("Error getting active element.")
        else:
            query = self.state.resolve_param(statement.anchor)
            anchor = self.engine.resolve(query)
            self.client.scroll_into_view(anchor)
        self.state.scope = anchor
        try:
            self.execute_sequence(statement.body)
        finally:
            self.state.scope = None

    def _param(self, command: Command) -> str:
        if command.param is None:
            raise InteractionError(f"`{command.kind.value}` needs an argument")
        return self.state.resolve_param(command.param)

    def located(self) -> Any:
        slot = self.state.located
        if slot is None:
            raise InteractionError("No element currently located. Try using the locate command")
        if not self.client.is_attached(slot.handle) and slot.query:
            # The page re-rendered; find the element again by the same query.
            logger.info('Located element went stale, locating "%s" again.', slot.query)
            self._set_located(self.engine.resolve(slot.query, self.state.scope), slot.query)
        return self.state.located.handle  # type: ignore[union-attr]

    def _set_located(self, element: Any, query: str | None) -> None:
        previous = self.state.located
        if self.demo:
            if previous is not None and self.client.is_attached(previous.handle):
                self._highlight(previous.handle, "none")
            self._highlight(element, HIGHLIGHT_BORDER)
        self.state.located = ElementSlot(element, query)

    def _highlight(self, element: Any, border: str) -> None:
        try:
            self.client.run_script(HIGHLIGHT_SCRIPT, [element, border])
        except ScriptError as exc:
            logger.debug("Highlight failed: %s", exc)

    def _locate_element(self, query: str, scroll: bool) -> Any:
        element = self.engine.resolve(query, self.state.scope)
        if scroll:
            self.client.scroll_into_view(element)
        self._set_located(element, query)
        return element

    def _url(self, command: Command) -> None:
        url = normalize_url(self._param(command))
        if not url:
            raise InteractionError("Error navigating to page: empty url")
        self.client.navigate(url)

    def _locate(self, command: Command) -> None:
        self._locate_element(self._param(command), scroll=True)

    def _locate_no_scroll(self, command: Command) -> None:
        self._locate_element(self._param(command), scroll=False)

    def _interaction_target(self, for_select: bool = False) -> Any:
        slot_query = self.state.located.query if self.state.located else None
        target = self.engine.swap_for_interaction(self.located(), for_select=for_select)
        if target is not self.state.located.handle:  # type: ignore[union-attr]
            self.state.located = ElementSlot(target, slot_query)
        return target

    def _click_center(self, target: Any) -> None:
        rect = self.client.bounding_rect(target)
        if rect is None or rect.width <= 0 or rect.height <= 0:
            raise InteractionError("Error clicking element: element has no visible size")
        x, y = rect.center
        self.client.click(x, y)

    def _click(self, command: Command) -> None:
        target = self._interaction_target()
        self._click_center(target)
        self.state.active = target

    def _type(self, command: Command) -> None:
        text = self._param(command)
        target = self._interaction_target()
        self._click_center(target)
        active = self.client.active_element()
        if active is None:
            active = target
        self.state.active = active
        try:
            self.client.clear(active)
        except ScriptError as exc:
            logger.debug("Clearing before typing failed: %s", exc)
        self.client.send_keys(active, text)

    def _select(self, command: Command) -> None:
        option_text = self._param(command)
        target = self._interaction_target(for_select=True)
        if self.client.tag_name(target) != "select":
            raise InteractionError("Element is not a <select> element")
        self.client.select_option(target, option_text)

    def _upload(self, command: Command) -> None:
        raw_path = self._param(command)
        target = self.located()
        input_type = (self.client.attribute(target, "type") or "").strip().lower()
        if self.client.tag_name(target) != "input" or input_type != "file":
            raise InteractionError("Error uploading file: element is not a file input")
        path = Path(raw_path).expanduser().resolve()
        if not path.is_file():
            raise InteractionError(f"Error uploading file: {path} does not exist")
        self.client.set_file_input(target, str(path))

    def _read_to(self, command: Command) -> None:
        text = self.client.get_text(self.located())
        self.state.set_variable(command.variable or "", text.strip())

    def _press(self, command: Command) -> None:
        raw_key = self._param(command)
        key = normalize_key_name(raw_key)
        if key is None:
            raise InteractionError(f"Unsupported key: {raw_key}")
        target = self.client.active_element()
        if target is None:
            target = self.state.active
        if target is None and self.state.located is not None:
            target = self.located()
        if target is None:
            raise InteractionError("Error pressing key. Make sure you have an element in focus first")
        self.client.key_press(target, key)

    def _refresh(self, command: Command) -> None:
        self.client.refresh()

    def _screenshot(self, command: Command) -> None:
        png = self.client.screenshot()
        self.state.screenshot_count += 1
        identifier = f"{self.run_name}_screenshot_{self.state.screenshot_count}.png"
        self.state.screenshots.append(Screenshot(identifier, png))

    def _chill(self, command: Command) -> None:
        raw_value = self._param(command)
        seconds = parse_seconds(raw_value)
        if seconds is None:
            raise InteractionError(f"Could not parse time to wait: {raw_value}")
        self._sleep(seconds)

    def _drag_to(self, command: Command) -> None:
        source = self.located()
        query = self._param(command)
        target = self.engine.resolve(query, self.state.scope)
        self.client.run_script(DRAG_AND_DROP_SCRIPT, [source, target])
        self._set_located(target, query)

    def _accept_alert(self, command: Command) -> None:
        self.client.accept_alert()

    def _dismiss_alert(self, command: Command) -> None:
        self.client.dismiss_alert()

    def _try_again(self, command: Command) -> None:
        if self.state.phase is RunPhase.AWAITING_RETRY:
            self.state.retry_requested = True


def _statement_commands(statement: Statement) -> list[Command]:
    if isinstance(statement, (CommandStmt, UnderStmt, CatchErrorStmt)):
        return list(statement.body.commands)
    if isinstance(statement, IfStmt):
        return [statement.predicate, *statement.body.commands]
    return []


def _dialog_action(commands: list[Command]) -> str | None:
    for command in commands:
        if command.kind is CommandKind.ACCEPT_ALERT:
            return "accept"
        if command.kind is CommandKind.DISMISS_ALERT:
            return "dismiss"
    return None


def upcoming_dialog_action(statements: Sequence[Statement], index: int) -> str | None:
    """Dialog answer requested by the first non-comment statement after ``index``.

    Only a statement that starts with accept-alert or dismiss-alert counts.
    """
    for statement in statements[index + 1 :]:
        if isinstance(statement, CommentStmt):
            continue
        if isinstance(statement, CommandStmt):
            return _dialog_action(list(statement.body.commands[:1]))
        return None
    return None
