from __future__ import annotations

from html import escape
import json
import logging
from pathlib import Path
from typing import Sequence

from .models import ExecutionRecord, Screenshot

SCREENSHOT_DIR_NAME = "screenshots"

logger = logging.getLogger("plainstep.run")

_HTML_STYLE = """
body { font-family: sans-serif; margin: 24px; }
table { border-collapse: collapse; width: 100%; }
th, td { border: 1px solid #ccc; padding: 6px; text-align: left; vertical-align: top; }
tr.failed { background: #fde2e2; }
.status { font-weight: bold; }
"""


def record_to_dict(record: ExecutionRecord) -> dict:
    return {
        "name": record.name,
        "date": record.started_at.isoformat(),
        "exited_early": record.exited_early,
        "statements": [
            {
                "text": entry.text,
                "error": entry.error,
                "screenshots": [shot.identifier for shot in entry.screenshots],
            }
            for entry in record.statements
        ],
    }


def render_html(record: ExecutionRecord) -> str:
    status = "Exited early" if record.exited_early else "Completed"
    lines = [
        "<!DOCTYPE html>",
        '<html><head><meta charset="utf-8">',
        f"<title>{escape(record.name)}</title>",
        f"<style>{_HTML_STYLE}</style>",
        "</head><body>",
        f"<h1>{escape(record.name)}</h1>",
        f"<p>Date: {escape(record.started_at.strftime('%Y-%m-%d %H:%M:%S %Z'))}</p>",
        f'<p class="status">{status}</p>',
        "<table>",
        "<tr><th>#</th><th>Statement</th><th>Result</th><th>Screenshots</th></tr>",
    ]
    for number, entry in enumerate(record.statements, start=1):
        row_class = "" if entry.succeeded else ' class="failed"'
        result = "OK" if entry.succeeded else escape(entry.error or "")
        shots = "<br>".join(
            f'<a href="{SCREENSHOT_DIR_NAME}/{escape(shot.identifier, quote=True)}">'
            f"{escape(shot.identifier)}</a>"
            for shot in entry.screenshots
        )
        lines.append(
            f"<tr{row_class}><td>{number}</td><td><code>{escape(entry.text)}</code></td>"
            f"<td>{result}</td><td>{shots}</td></tr>"
        )
    lines.append("</table>")
    lines.append("</body></html>")
    return "\n".join(lines)


def write_screenshots(shots: Sequence[Screenshot], output_dir: Path) -> list[Path]:
    """Save each PNG under ``output_dir/screenshots`` by its identifier."""
    if not shots:
        return []
    screenshot_dir = output_dir / SCREENSHOT_DIR_NAME
    screenshot_dir.mkdir(parents=True, exist_ok=True)
    written: list[Path] = []
    for shot in shots:
        path = screenshot_dir / shot.identifier
        path.write_bytes(shot.png)
        written.append(path)
    return written


def write_report(record: ExecutionRecord, output_dir: Path) -> Path:
    """Write screenshots, ``<name>.json`` and ``<name>.html``; return the HTML path."""
    output_dir.mkdir(parents=True, exist_ok=True)
    write_screenshots(record.screenshots, output_dir)

    json_path = output_dir / f"{record.name}.json"
    json_path.write_text(json.dumps(record_to_dict(record), indent=2), encoding="utf-8")

    html_path = output_dir / f"{record.name}.html"
    html_path.write_text(render_html(record), encoding="utf-8")
    logger.info("Report for %s written to %s", record.name, html_path)
    return html_path
