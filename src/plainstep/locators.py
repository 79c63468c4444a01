from __future__ import annotations

import logging
import re
import time
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Sequence

from .errors import InteractionError, LocateError
from .runtime_checks import normalize_space

if TYPE_CHECKING:
    from .browser import BrowserClient

ElementRef = Any

FORM_CONTROL_TAGS = ("input", "textarea", "select")
_TAG_NAME_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9-]*$")
# Levels of ancestors searched when a label neither wraps nor precedes its control.
LABEL_CONTAINER_DEPTH = 5

logger = logging.getLogger("plainstep.locate")


class Strategy(str, Enum):
    PLACEHOLDER = "placeholder"
    PLACEHOLDER_PARTIAL = "placeholder_partial"
    LABEL = "label"
    LABEL_PARTIAL = "label_partial"
    TEXT = "text"
    TEXT_PARTIAL = "text_partial"
    TITLE = "title"
    ARIA_LABEL = "aria_label"
    ID = "id"
    NAME = "name"
    CLASS = "class"
    CLASS_PARTIAL = "class_partial"
    TAG = "tag"
    XPATH = "xpath"
    # Helpers used by label association and smart swap, never tried by resolve().
    CONTROL_DESCENDANT = "control_descendant"
    CONTROL_FOLLOWING = "control_following"
    OWNING_SELECT = "owning_select"

    @property
    def visible_only(self) -> bool:
        return self not in (Strategy.XPATH, Strategy.OWNING_SELECT)

    def xpath(self, value: str, scoped: bool = False) -> str | None:
        return build_xpath(self, value, scoped=scoped)


PRECEDENCE: tuple[Strategy, ...] = (
    Strategy.PLACEHOLDER,
    Strategy.PLACEHOLDER_PARTIAL,
    Strategy.LABEL,
    Strategy.LABEL_PARTIAL,
    Strategy.TEXT,
    Strategy.TEXT_PARTIAL,
    Strategy.TITLE,
    Strategy.ARIA_LABEL,
    Strategy.ID,
    Strategy.NAME,
    Strategy.CLASS,
    Strategy.CLASS_PARTIAL,
    Strategy.TAG,
    Strategy.XPATH,
)

_LABEL_STRATEGIES = (Strategy.LABEL, Strategy.LABEL_PARTIAL)
_CONTROL_TEST = "self::input or self::textarea or self::select"


def xpath_literal(value: str) -> str:
    if "'" not in value:
        return f"'{value}'"
    if '"' not in value:
        return f'"{value}"'
    pieces = value.split("'")
    quoted = [f"'{piece}'" for piece in pieces]
    return "concat(" + ", \"'\", ".join(quoted) + ")"


def build_xpath(strategy: Strategy, value: str, scoped: bool = False) -> str | None:
    """Return the XPath a strategy evaluates, or None when it does not apply to ``value``."""
    axis = ".//" if scoped else "//"
    text = normalize_space(value, limit=10_000)
    literal = xpath_literal(text)

    if strategy is Strategy.PLACEHOLDER:
        return f"{axis}*[{_CONTROL_TEST}][@placeholder={literal}]"
    if strategy is Strategy.PLACEHOLDER_PARTIAL:
        return f"{axis}*[{_CONTROL_TEST}][contains(@placeholder, {literal})]"
    if strategy is Strategy.LABEL:
        return f"{axis}*[self::label or self::span][normalize-space(.)={literal}]"
    if strategy is Strategy.LABEL_PARTIAL:
        return f"{axis}*[self::label or self::span][contains(normalize-space(.), {literal})]"
    if strategy is Strategy.TEXT:
        return f"{axis}*[text()[normalize-space(.)={literal}]]"
    if strategy is Strategy.TEXT_PARTIAL:
        return f"{axis}*[text()[contains(normalize-space(.), {literal})]]"
    if strategy is Strategy.TITLE:
        return f"{axis}*[@title={literal}]"
    if strategy is Strategy.ARIA_LABEL:
        return f"{axis}*[@aria-label={literal}]"
    if strategy is Strategy.ID:
        return f"{axis}*[@id={literal}]"
    if strategy is Strategy.NAME:
        return f"{axis}*[@name={literal}]"
    if strategy is Strategy.CLASS:
        token = xpath_literal(f" {text} ")
        return f"{axis}*[contains(concat(' ', normalize-space(@class), ' '), {token})]"
    if strategy is Strategy.CLASS_PARTIAL:
        return f"{axis}*[contains(@class, {literal})]"
    if strategy is Strategy.TAG:
        if not _TAG_NAME_PATTERN.match(text):
            return None
        return f"{axis}{text.lower()}"
    if strategy is Strategy.XPATH:
        raw = value.strip()
        if scoped and raw.startswith("/"):
            return f".{raw}"
        return raw
    if strategy is Strategy.CONTROL_DESCENDANT:
        return f".//*[{_CONTROL_TEST}]"
    if strategy is Strategy.CONTROL_FOLLOWING:
        return f"./following-sibling::*[1][{_CONTROL_TEST}]"
    if strategy is Strategy.OWNING_SELECT:
        return "./ancestor::select[1]"
    raise ValueError(f"Unknown strategy: {strategy}")


class LocatorEngine:
    def __init__(
        self,
        client: BrowserClient,
        retry_delays: Sequence[float] = (0,),
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.client = client
        self.retry_delays = tuple(retry_delays) or (0,)
        self._sleep = sleep

    def resolve(self, query: str, scope: ElementRef | None = None) -> ElementRef:
        if not normalize_space(query):
            raise LocateError(query)

        anchor = scope
        while anchor is not None:
            found = self._search(query, anchor)
            if found is not None:
                return found
            anchor = self.client.parent(anchor)

        for delay in self.retry_delays:
            if delay > 0:
                logger.info('Waiting %ss for "%s" to appear.', delay, query)
                self._sleep(delay)
            found = self._search(query, None)
            if found is not None:
                return found

        raise LocateError(query)

    def _search(self, query: str, scope: ElementRef | None) -> ElementRef | None:
        for strategy in PRECEDENCE:
            if strategy.xpath(query, scoped=scope is not None) is None:
                continue
            if strategy in _LABEL_STRATEGIES:
                for label in self.client.find_all(strategy, query, scope):
                    control = self.associated_control(label)
                    if control is not None:
                        logger.info('Located "%s" by %s.', query, strategy.value)
                        return control
                continue
            found = self.client.find(strategy, query, scope)
            if found is not None:
                logger.info('Located "%s" by %s.', query, strategy.value)
                return found
        return None

    def associated_control(self, element: ElementRef) -> ElementRef | None:
        tag = self.client.tag_name(element)
        if tag not in ("label", "span"):
            return None

        wrapped = self.client.find(Strategy.CONTROL_DESCENDANT, "", element)
        if wrapped is not None:
            return wrapped

        if tag == "label":
            for_attr = (self.client.attribute(element, "for") or "").strip()
            if for_attr:
                target = self.client.find(Strategy.ID, for_attr, None)
                if target is None:
                    target = self.client.find(Strategy.NAME, for_attr, None)
                if target is not None:
                    return target

        following = self.client.find(Strategy.CONTROL_FOLLOWING, "", element)
        if following is not None:
            return following

        if tag != "label":
            return None

        container = element
        for _ in range(LABEL_CONTAINER_DEPTH):
            container = self.client.parent(container)
            if container is None:
                break
            nested = self.client.find(Strategy.CONTROL_DESCENDANT, "", container)
            if nested is not None:
                return nested
        return None

    def swap_for_interaction(self, element: ElementRef, for_select: bool = False) -> ElementRef:
        tag = self.client.tag_name(element)
        if for_select and tag == "option":
            owner = self.client.find(Strategy.OWNING_SELECT, "", element)
            if owner is None:
                raise InteractionError("Error getting parent select. Try locating the select element directly")
            return owner
        control = self.associated_control(element)
        if control is not None:
            logger.info("Swapped <%s> for its associated form control.", tag)
            return control
        return element
