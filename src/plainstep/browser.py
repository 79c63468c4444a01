from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Iterator, Literal, Protocol, Sequence

from .errors import AlertError, InteractionError, PlainstepError
from .locators import Strategy
from .models import Rect
from .runtime_checks import is_missing_browser_error

if TYPE_CHECKING:
    from playwright.sync_api import Dialog, ElementHandle, Page

    from .settings import RunSettings

ElementRef = Any
DialogAction = Literal["accept", "dismiss"]

logger = logging.getLogger("plainstep.browser")


class BrowserClient(Protocol):
    def navigate(self, url: str) -> None: ...

    def find(self, strategy: Strategy, value: str, scope: ElementRef | None) -> ElementRef | None: ...

    def find_all(self, strategy: Strategy, value: str, scope: ElementRef | None) -> list[ElementRef]: ...

    def parent(self, element: ElementRef) -> ElementRef | None: ...

    def tag_name(self, element: ElementRef) -> str: ...

    def attribute(self, element: ElementRef, name: str) -> str | None: ...

    def is_attached(self, element: ElementRef) -> bool: ...

    def bounding_rect(self, element: ElementRef) -> Rect | None: ...

    def scroll_into_view(self, element: ElementRef) -> None: ...

    def click(self, x: float, y: float) -> None: ...

    def active_element(self) -> ElementRef | None: ...

    def clear(self, element: ElementRef) -> None: ...

    def send_keys(self, element: ElementRef, text: str) -> None: ...

    def get_text(self, element: ElementRef) -> str: ...

    def key_press(self, element: ElementRef, key: str) -> None: ...

    def select_option(self, element: ElementRef, text: str) -> None: ...

    def screenshot(self) -> bytes: ...

    def refresh(self) -> None: ...

    def set_file_input(self, element: ElementRef, path: str) -> None: ...

    def run_script(self, script: str, args: Sequence[Any]) -> Any: ...

    def prepare_dialog(self, action: DialogAction | None) -> None: ...

    def finish_statement(self) -> None: ...

    def accept_alert(self) -> None: ...

    def dismiss_alert(self) -> None: ...


@dataclass(slots=True)
class _HandledDialog:
    message: str
    action: DialogAction
    statement: int


@contextmanager
def _wrap_errors(message: str) -> Iterator[None]:
    from playwright.sync_api import Error as PlaywrightError

    try:
        yield
    except PlaywrightError as exc:
        raise InteractionError(f"{message}: {exc}") from exc


class PlaywrightClient:
    """Browser client over a Playwright sync ``Page``.

    Native dialogs are answered as soon as they open, because a page with an open
    dialog blocks every further input. The answer is the action armed through
    ``prepare_dialog`` (or ``default_dialog_action``). The handled dialog is kept for
    an accept-alert / dismiss-alert command in the same statement or the next one,
    and is dropped after that or when the page navigates.
    """

    def __init__(self, page: Page, default_dialog_action: DialogAction = "accept") -> None:
        self.page = page
        self.default_dialog_action = default_dialog_action
        self._armed_action: DialogAction | None = None
        self._dialogs: list[_HandledDialog] = []
        self._statement = 0
        self.page.on("dialog", self._on_dialog)

    def _on_dialog(self, dialog: Dialog) -> None:
        action = self._armed_action or self.default_dialog_action
        logger.info("Dialog opened (%s): %s", action, dialog.message)
        try:
            if action == "accept":
                dialog.accept()
            else:
                dialog.dismiss()
        except Exception as exc:
            logger.warning("Could not answer dialog: %s", exc)
            return
        self._dialogs.append(_HandledDialog(dialog.message, action, self._statement))

    def navigate(self, url: str) -> None:
        self._dialogs.clear()
        with _wrap_errors("Error navigating to page"):
            self.page.goto(url, wait_until="domcontentloaded")

    def find(self, strategy: Strategy, value: str, scope: ElementRef | None) -> ElementRef | None:
        for element in self._query(strategy, value, scope):
            if not strategy.visible_only or self._is_visible(element):
                return element
        return None

    def find_all(self, strategy: Strategy, value: str, scope: ElementRef | None) -> list[ElementRef]:
        return [
            element
            for element in self._query(strategy, value, scope)
            if not strategy.visible_only or self._is_visible(element)
        ]

    def _query(self, strategy: Strategy, value: str, scope: ElementRef | None) -> list[ElementHandle]:
        from playwright.sync_api import Error as PlaywrightError

        xpath = strategy.xpath(value, scoped=scope is not None)
        if not xpath:
            return []
        root = scope if scope is not None else self.page
        try:
            return root.query_selector_all(f"xpath={xpath}")
        except PlaywrightError as exc:
            # Queries that are not valid XPath simply match nothing.
            logger.debug("Query %s failed: %s", xpath, exc)
            return []

    @staticmethod
    def _is_visible(element: ElementHandle) -> bool:
        try:
            return element.is_visible()
        except Exception:
            return False

    def parent(self, element: ElementRef) -> ElementRef | None:
        with _wrap_errors("Error reading parent element"):
            handle = element.evaluate_handle("(el) => el.parentElement")
        return handle.as_element()

    def tag_name(self, element: ElementRef) -> str:
        with _wrap_errors("Error reading tag name"):
            return str(element.evaluate("(el) => el.tagName.toLowerCase()"))

    def attribute(self, element: ElementRef, name: str) -> str | None:
        with _wrap_errors(f"Error reading attribute {name}"):
            return element.get_attribute(name)

    def is_attached(self, element: ElementRef) -> bool:
        try:
            return bool(element.evaluate("(el) => el.isConnected"))
        except Exception:
            return False

    def bounding_rect(self, element: ElementRef) -> Rect | None:
        with _wrap_errors("Error reading element position"):
            box = element.bounding_box()
        if not box:
            return None
        return Rect(x=box["x"], y=box["y"], width=box["width"], height=box["height"])

    def scroll_into_view(self, element: ElementRef) -> None:
        # Fails falsely for things like chat windows, so a failure is only logged.
        try:
            element.scroll_into_view_if_needed(timeout=2000)
        except Exception as exc:
            logger.debug("Scroll into view failed: %s", exc)

    def click(self, x: float, y: float) -> None:
        with _wrap_errors("Error clicking element"):
            self.page.mouse.click(x, y)

    def active_element(self) -> ElementRef | None:
        with _wrap_errors("Could not read active element"):
            handle = self.page.evaluate_handle("() => document.activeElement")
        return handle.as_element()

    def clear(self, element: ElementRef) -> None:
        with _wrap_errors("Error clearing element"):
            element.evaluate(
                """
                (el) => {
                  if ('value' in el) {
                    el.value = '';
                    el.dispatchEvent(new Event('input', { bubbles: true }));
                  } else if (el.isContentEditable) {
                    el.textContent = '';
                  }
                }
                """
            )

    def send_keys(self, element: ElementRef, text: str) -> None:
        with _wrap_errors("Error typing into element"):
            element.focus()
            self.page.keyboard.type(text)

    def get_text(self, element: ElementRef) -> str:
        with _wrap_errors("Error getting text from element"):
            return element.inner_text()

    def key_press(self, element: ElementRef, key: str) -> None:
        with _wrap_errors("Error pressing key. Make sure you have an element in focus first"):
            element.press(key)

    def select_option(self, element: ElementRef, text: str) -> None:
        with _wrap_errors(f"Could not select text {text}"):
            selected = element.select_option(label=text, timeout=5000)
        if not selected:
            raise InteractionError(f"Could not select text {text}")

    def screenshot(self) -> bytes:
        with _wrap_errors("Error taking screenshot"):
            return self.page.screenshot()

    def refresh(self) -> None:
        with _wrap_errors("Error refreshing page"):
            self.page.reload(wait_until="domcontentloaded")

    def set_file_input(self, element: ElementRef, path: str) -> None:
        with _wrap_errors("Error uploading file"):
            element.set_input_files(path)

    def run_script(self, script: str, args: Sequence[Any]) -> Any:
        with _wrap_errors("Error running script"):
            return self.page.evaluate(script, list(args))

    def prepare_dialog(self, action: DialogAction | None) -> None:
        self._armed_action = action

    def finish_statement(self) -> None:
        """Close the current statement. A dialog stays consumable through the next one."""
        self._statement += 1
        self._dialogs = [handled for handled in self._dialogs if handled.statement >= self._statement - 1]

    def accept_alert(self) -> None:
        self._consume_dialog("accept")

    def dismiss_alert(self) -> None:
        self._consume_dialog("dismiss")

    def _consume_dialog(self, action: DialogAction) -> None:
        verb = "accepting" if action == "accept" else "dismissing"
        if not self._dialogs:
            raise AlertError(f"Error {verb} alert: no alert present")
        handled = self._dialogs.pop(0)
        if handled.action != action:
            answered = "accepted" if handled.action == "accept" else "dismissed"
            raise AlertError(f'Error {verb} alert: "{handled.message}" was already {answered}')


@contextmanager
def open_session(settings: RunSettings) -> Iterator[PlaywrightClient]:
    """Launch a browser, open one page and yield a client for it."""
    from playwright.sync_api import sync_playwright

    with sync_playwright() as playwright:
        browser_type = getattr(playwright, settings.browser, None)
        if browser_type is None:
            raise PlainstepError(f"Unsupported browser: {settings.browser}")
        try:
            browser = browser_type.launch(headless=settings.headless)
        except Exception as exc:
            if is_missing_browser_error(exc):
                raise PlainstepError(
                    f"{settings.browser} is not installed. Run: python -m playwright install {settings.browser}"
                ) from exc
            raise PlainstepError(f"Failed to launch {settings.browser}: {exc}") from exc

        try:
            width, height = settings.viewport
            context = browser.new_context(viewport={"width": width, "height": height})
            page = context.new_page()
            logger.info("Launched %s (headless=%s).", settings.browser, settings.headless)
            yield PlaywrightClient(page)
        finally:
            browser.close()
