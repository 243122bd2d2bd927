"""Command line entry point for diffsleuth."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import signal
import sys
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence, TextIO

from .ai.orchestration.cancellation import CancellationTokenSource
from .ai.orchestration.types import OrchestrationState
from .ai.review_service import ReviewResult, ReviewService
from .progress.sink import LineRange
from .services.settings import Settings, SettingsStore
from .utils import logging as logging_utils

_LOGGER = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2
EXIT_CANCELLED = 130


class ConsoleProgressSink:
    """Writes progress lines to a text stream, one per event."""

    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream or sys.stderr

    def on_progress(self, text: str) -> None:
        self._write(text)

    def on_tool_start(self, name: str, args: Mapping[str, Any]) -> None:
        _LOGGER.debug("Tool started: %s", name)

    def on_tool_complete(self, name: str, success: bool, summary: str) -> None:
        if not success:
            self._write(f"  ✗ {name}: {summary}")

    def on_file_reference(self, path: str, line_range: LineRange | None = None) -> None:
        self._write(f"  → {path}#{line_range}" if line_range else f"  → {path}")

    def on_thinking(self, text: str) -> None:
        self._write(text)

    def on_markdown(self, text: str) -> None:
        self._stream.write(text)
        self._stream.flush()

    def _write(self, text: str) -> None:
        self._stream.write(f"{text}\n")
        self._stream.flush()


def configure_logging(level: str | int | None = None, *, debug: bool = False) -> None:
    """Install the log handlers on first use, retune their level afterwards."""

    resolved = logging_utils.parse_level(level, debug=debug)
    if logging_utils.get_log_path() is None:
        logging_utils.setup_logging(resolved)
    else:
        logging_utils.set_level(resolved)
    _LOGGER.debug("Logging configured (level=%s)", logging.getLevelName(resolved))


def load_settings(
    path: Optional[Path] = None,
    *,
    store: SettingsStore | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> Settings:
    """Load persisted settings or fall back to defaults."""

    active_store = store or SettingsStore(path)
    try:
        settings = active_store.load(overrides=overrides)
    except (OSError, ValueError) as exc:
        _LOGGER.warning("Failed to load settings from %s: %s", active_store.path, exc)
        settings = Settings().clamped()
    return settings


def main(argv: Sequence[str] | None = None) -> None:
    """Entry point invoked by the `diffsleuth` console script."""

    args = _parse_cli_args(argv)
    configure_logging(args.log_level, debug=args.debug)

    settings_path = Path(args.settings).expanduser() if args.settings else None
    settings = load_settings(settings_path, overrides=_cli_overrides(args))
    configure_logging(settings.log_level, debug=settings.debug_logging)

    try:
        diff = _read_diff(args.diff)
    except OSError as exc:
        print(f"Unable to read diff: {exc}", file=sys.stderr)
        raise SystemExit(EXIT_USAGE) from exc
    if not diff.strip():
        print("The diff is empty; nothing to review.", file=sys.stderr)
        raise SystemExit(EXIT_USAGE)
    if not settings.api_key:
        print("No API key configured. Set DIFFSLEUTH_API_KEY or save one in the settings file.", file=sys.stderr)
        raise SystemExit(EXIT_USAGE)

    service = ReviewService(settings)
    sink = None if args.quiet else ConsoleProgressSink()
    result = asyncio.run(run_review(service, diff, title=args.title, sink=sink))

    print(result.analysis)
    raise SystemExit(_exit_code(result))


async def run_review(
    service: ReviewService,
    diff: str,
    *,
    title: str | None = None,
    sink: ConsoleProgressSink | None = None,
) -> ReviewResult:
    """Run one review, cancelling it cleanly on Ctrl-C, then close the service."""

    source = CancellationTokenSource()
    loop = asyncio.get_running_loop()
    handler_installed = False
    with contextlib.suppress(NotImplementedError, RuntimeError):
        loop.add_signal_handler(signal.SIGINT, _request_cancel, source)
        handler_installed = True
    try:
        return await service.analyze(diff, title=title, token=source.token, sink=sink)
    finally:
        if handler_installed:
            loop.remove_signal_handler(signal.SIGINT)
        await service.aclose()


def _request_cancel(source: CancellationTokenSource) -> None:
    _LOGGER.info("Cancellation requested by user.")
    print("\nCancelling…", file=sys.stderr)
    source.cancel()


def _exit_code(result: ReviewResult) -> int:
    if result.state is OrchestrationState.CANCELLED:
        return EXIT_CANCELLED
    if result.state is OrchestrationState.FAILED:
        return EXIT_FAILED
    return EXIT_OK


def _read_diff(location: str | None) -> str:
    if location in (None, "-"):
        return sys.stdin.read()
    return Path(location).expanduser().read_text(encoding="utf-8")


def _cli_overrides(args: argparse.Namespace) -> Dict[str, Any] | None:
    overrides: Dict[str, Any] = {}
    if args.model:
        overrides["model"] = args.model
    if args.max_iterations is not None:
        overrides["max_iterations"] = args.max_iterations
    if args.log_level:
        overrides["log_level"] = args.log_level
    if args.debug:
        overrides["debug_logging"] = True
    return overrides or None


def _parse_cli_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="diffsleuth",
        description="Review a diff with a tool-calling language model.",
    )
    parser.add_argument(
        "diff",
        nargs="?",
        metavar="DIFF",
        help="Path to the diff to review; reads stdin when omitted or '-'.",
    )
    parser.add_argument(
        "--settings",
        metavar="PATH",
        help="Override the default ~/.diffsleuth/settings.json path.",
    )
    parser.add_argument("--model", help="Model identifier to use for this run.")
    parser.add_argument(
        "--max-iterations",
        type=int,
        metavar="N",
        help="Maximum model turns for the main analysis (3-200).",
    )
    parser.add_argument("--title", help="Short description of the change under review.")
    parser.add_argument("--quiet", action="store_true", help="Do not print progress lines.")
    parser.add_argument(
        "--log-level",
        metavar="LEVEL",
        help="Log file level (DEBUG, INFO, WARNING, ERROR); overrides the saved setting.",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging.")
    return parser.parse_args(argv)


if __name__ == "__main__":  # pragma: no cover
    main()
