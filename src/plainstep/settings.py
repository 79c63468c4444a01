from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields, replace
import json
from pathlib import Path
import tempfile
from typing import Any, Literal, Mapping

from .errors import PlainstepError

BrowserName = Literal["chromium", "firefox", "webkit"]
SUPPORTED_BROWSERS: tuple[BrowserName, ...] = ("chromium", "firefox", "webkit")

CONFIG_DIR = Path.home() / ".plainstep"
CONFIG_PATH = CONFIG_DIR / "config.json"

DEFAULT_VIEWPORT = (1280, 720)
DEFAULT_LOCATE_RETRY_DELAYS = (0.0, 1.0, 2.0, 4.0)


@dataclass(slots=True)
class RunSettings:
    browser: BrowserName = "chromium"
    headless: bool = False
    output_dir: str = ""
    datatable: str = ""
    viewport: tuple[int, int] = DEFAULT_VIEWPORT
    locate_retry_delays: tuple[float, ...] = field(default=DEFAULT_LOCATE_RETRY_DELAYS)
    command_delay: float = 1.0
    demo: bool = False


def load_settings(config_path: Path | None = None) -> RunSettings:
    path = config_path or CONFIG_PATH
    if not path.exists() or not path.is_file():
        return RunSettings()

    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError, TypeError):
        return RunSettings()

    if not isinstance(payload, dict):
        return RunSettings()

    defaults = RunSettings()
    browser = str(payload.get("browser", defaults.browser) or defaults.browser).lower()
    return RunSettings(
        browser=browser if browser in SUPPORTED_BROWSERS else defaults.browser,  # type: ignore[arg-type]
        headless=bool(payload.get("headless", defaults.headless)),
        output_dir=str(payload.get("output_dir", "") or ""),
        datatable=str(payload.get("datatable", "") or ""),
        viewport=_parse_viewport(payload.get("viewport")),
        locate_retry_delays=_parse_delays(payload.get("locate_retry_delays")),
        command_delay=_parse_non_negative(payload.get("command_delay"), defaults.command_delay),
        demo=bool(payload.get("demo", defaults.demo)),
    )


def settings_payload(settings: RunSettings) -> dict[str, Any]:
    """JSON-ready form of ``settings``, in the shape ``load_settings`` reads back."""
    payload = asdict(settings)
    payload["viewport"] = list(settings.viewport)
    payload["locate_retry_delays"] = list(settings.locate_retry_delays)
    return payload


def save_settings(settings: RunSettings, config_path: Path | None = None) -> Path:
    """Write ``settings`` to ``config_path`` and return the path written.

    The file is replaced in one step so an interrupted save never leaves half a config.
    """
    path = config_path or CONFIG_PATH
    text = json.dumps(settings_payload(settings), indent=2, sort_keys=True) + "\n"

    temp_name: str | None = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            "w", encoding="utf-8", dir=path.parent, prefix=f".{path.name}.", suffix=".tmp", delete=False
        ) as handle:
            temp_name = handle.name
            handle.write(text)
        Path(temp_name).replace(path)
    except OSError as exc:
        if temp_name is not None:
            Path(temp_name).unlink(missing_ok=True)
        raise PlainstepError(f"Could not save settings to {path}: {exc}") from exc
    return path


def apply_overrides(settings: RunSettings, overrides: Mapping[str, Any]) -> RunSettings:
    known = {item.name for item in fields(RunSettings)}
    changes = {key: value for key, value in overrides.items() if key in known and value is not None}
    return replace(settings, **changes)


def _parse_viewport(raw: Any) -> tuple[int, int]:
    if not isinstance(raw, (list, tuple)) or len(raw) != 2:
        return DEFAULT_VIEWPORT
    try:
        width, height = int(raw[0]), int(raw[1])
    except (TypeError, ValueError):
        return DEFAULT_VIEWPORT
    if width <= 0 or height <= 0:
        return DEFAULT_VIEWPORT
    return width, height


def _parse_delays(raw: Any) -> tuple[float, ...]:
    if not isinstance(raw, (list, tuple)) or not raw:
        return DEFAULT_LOCATE_RETRY_DELAYS
    delays: list[float] = []
    for item in raw:
        try:
            value = float(item)
        except (TypeError, ValueError):
            return DEFAULT_LOCATE_RETRY_DELAYS
        if value < 0:
            return DEFAULT_LOCATE_RETRY_DELAYS
        delays.append(value)
    return tuple(delays)


def _parse_non_negative(raw: Any, default: float) -> float:
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return default
    return value if value >= 0 else default
