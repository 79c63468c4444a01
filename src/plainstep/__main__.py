from __future__ import annotations

import argparse
import logging
from pathlib import Path
import sys
from typing import Callable, Sequence

from .browser import BrowserClient, open_session
from .datatable import read_datatable, run_names
from .errors import DatatableError, PlainstepError, ScriptError, ScriptSyntaxError
from .executor import CommandExecutor
from .locators import LocatorEngine
from .models import CommentStmt, ExecutionRecord, Script
from .parser import parse
from .report import write_report, write_screenshots
from .runner import ScriptRunner
from .runtime import RuntimeState
from .settings import SUPPORTED_BROWSERS, RunSettings, apply_overrides, load_settings, save_settings

EXIT_OK = 0
EXIT_EARLY = 1
EXIT_USAGE = 2

DEFAULT_REPL_SCRIPT = "repl_script.txt"
_LOG_FORMAT = "%(asctime)s %(levelname)s %(message)s"


def _build_logger(log_path: Path) -> logging.Logger:
    logger = logging.getLogger("plainstep")
    for existing in list(logger.handlers):
        logger.removeHandler(existing)
        existing.close()

    logger.setLevel(logging.INFO)
    logger.propagate = False
    handler: logging.Handler
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(log_path, encoding="utf-8")
    except OSError:
        # Fall back to stderr when the log file cannot be opened.
        handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(_LOG_FORMAT))
    logger.addHandler(handler)
    return logger


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="plainstep",
        description="Run plain-language UI test scripts against a real browser.",
    )
    source = parser.add_mutually_exclusive_group()
    source.add_argument("-f", "--file", type=Path, help="script file to run")
    source.add_argument("-d", "--dir", type=Path, help="directory of .txt scripts to run")
    source.add_argument(
        "--repl",
        type=Path,
        nargs="?",
        const=Path(DEFAULT_REPL_SCRIPT),
        metavar="SAVE_AS",
        help="interactive mode; kept statements are saved to SAVE_AS",
    )
    parser.add_argument("-b", "--browser", choices=SUPPORTED_BROWSERS, default=None)
    parser.add_argument("--headless", action="store_true", default=None)
    parser.add_argument("-o", "--output", type=Path, default=None, help="report directory")
    parser.add_argument("--datatable", type=Path, default=None, help="CSV with one run per row")
    parser.add_argument("--demo", action="store_true", default=None, help="highlight located elements")
    parser.add_argument("--config", type=Path, default=None, help="settings JSON file")
    parser.add_argument(
        "--save-config",
        action="store_true",
        help="store the effective settings in the settings file, then run any given scripts",
    )
    return parser


def collect_scripts(args: argparse.Namespace) -> list[Path]:
    if args.file is not None:
        return [args.file]
    return sorted(path for path in args.dir.iterdir() if path.is_file() and path.suffix == ".txt")


def load_scripts(paths: Sequence[Path]) -> list[tuple[Path, Script]]:
    """Parse every script up front so syntax errors stop the run before a browser starts."""
    loaded: list[tuple[Path, Script]] = []
    for path in paths:
        source = path.read_text(encoding="utf-8")
        loaded.append((path, parse(source)))
    return loaded


def run_script_file(
    path: Path,
    script: Script,
    settings: RunSettings,
    rows: Sequence[dict[str, str]] | None,
) -> list[ExecutionRecord]:
    output_dir = Path(settings.output_dir) if settings.output_dir else path.parent
    if rows is not None:
        jobs: list[tuple[str, dict[str, str] | None]] = list(zip(run_names(path.stem, len(rows)), rows))
    else:
        jobs = [(path.stem, None)]

    records: list[ExecutionRecord] = []
    for name, row in jobs:
        logger = _build_logger(output_dir / f"{name}.log")
        logger.info("Running %s as %s", path, name)
        with open_session(settings) as client:
            record = ScriptRunner(client, settings).run(script, name=name, row=row)
        write_report(record, output_dir)
        records.append(record)
        print(f"{name}: {'exited early' if record.exited_early else 'completed'}")
    return records


def run_repl(
    client: BrowserClient,
    settings: RunSettings,
    save_path: Path,
    input_fn: Callable[[str], str] = input,
    print_fn: Callable[[str], None] = print,
) -> list[str]:
    """Read, execute and optionally keep one statement at a time."""
    state = RuntimeState()
    engine = LocatorEngine(client, retry_delays=settings.locate_retry_delays)
    executor = CommandExecutor(
        client,
        state,
        engine,
        run_name=save_path.stem,
        command_delay=settings.command_delay,
        demo=settings.demo,
    )
    kept: list[str] = []
    print_fn("Type a statement, or `exit` to finish.")
    while True:
        try:
            text = input_fn("> ")
            while text.rstrip().endswith((" and", " then")):
                text += "\n" + input_fn("... ")
        except EOFError:
            break
        if text.strip() in ("exit", "quit"):
            break
        if not text.strip():
            continue

        try:
            script = parse(text)
        except ScriptSyntaxError as exc:
            print_fn(f"Syntax error: {exc}")
            continue

        for statement in script.statements:
            if isinstance(statement, CommentStmt):
                kept.append(str(statement))
                continue
            try:
                executor.execute(statement)
            except ScriptError as exc:
                print_fn(f"Error: {exc}")
            else:
                print_fn("OK")
            finally:
                client.finish_statement()
            for path in write_screenshots(state.take_screenshots(), save_path.parent):
                print_fn(f"Saved screenshot {path}")
            answer = input_fn("Keep this statement? [y/N] ").strip().lower()
            if answer in ("y", "yes"):
                kept.append(str(statement))

    if kept:
        save_path.parent.mkdir(parents=True, exist_ok=True)
        save_path.write_text("\n".join(kept) + "\n", encoding="utf-8")
        print_fn(f"Saved {len(kept)} statements to {save_path}")
    return kept


def main(argv: Sequence[str] | None = None) -> int:
    if sys.version_info < (3, 11):
        raise SystemExit(
            "plainstep requires Python 3.11+. "
            f"Current interpreter: {sys.executable} (Python {sys.version.split()[0]})"
        )
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = apply_overrides(
        load_settings(args.config),
        {
            "browser": args.browser,
            "headless": args.headless,
            "output_dir": str(args.output) if args.output is not None else None,
            "datatable": str(args.datatable) if args.datatable is not None else None,
            "demo": args.demo,
        },
    )

    if args.save_config:
        try:
            saved_to = save_settings(settings, args.config)
        except PlainstepError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            return EXIT_USAGE
        print(f"Saved settings to {saved_to}")
    if args.file is None and args.dir is None and args.repl is None:
        if args.save_config:
            return EXIT_OK
        parser.error("one of the arguments -f/--file -d/--dir --repl is required")

    if args.repl is not None:
        save_path = args.repl
        if settings.output_dir and not save_path.is_absolute():
            save_path = Path(settings.output_dir) / save_path
        _build_logger(save_path.with_suffix(".log"))
        try:
            with open_session(settings) as client:
                run_repl(client, settings, save_path)
        except PlainstepError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            return EXIT_EARLY
        return EXIT_OK

    if args.dir is not None and not args.dir.is_dir():
        print(f"Error: {args.dir} is not a directory", file=sys.stderr)
        return EXIT_USAGE
    try:
        scripts = load_scripts(collect_scripts(args))
    except ScriptSyntaxError as exc:
        print(f"Syntax error: {exc}", file=sys.stderr)
        return EXIT_USAGE
    except OSError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_USAGE

    rows: list[dict[str, str]] | None = None
    if settings.datatable:
        try:
            rows = read_datatable(Path(settings.datatable))
        except DatatableError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            return EXIT_USAGE

    exit_code = EXIT_OK
    for path, script in scripts:
        try:
            records = run_script_file(path, script, settings, rows)
        except PlainstepError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            return EXIT_EARLY
        if any(record.exited_early for record in records):
            exit_code = EXIT_EARLY
    return exit_code


if __name__ == "__main__":
    raise SystemExit(main())
