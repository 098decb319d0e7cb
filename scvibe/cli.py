from __future__ import annotations

import argparse
import asyncio
import logging
from typing import Iterable

from rich.console import Console
from rich.panel import Panel
from rich.text import Text
from rich.traceback import Traceback

from .logging_utils import DEBUG_ENV, configure_logging, debug_enabled, log_exception, log_path
from .probe import INSTALL_URL, locate
from .server import serve
from .settings import EngineSettings

_LOGGER = logging.getLogger("scvibe.cli")
# stdout carries MCP frames while serving.
_CONSOLE = Console(stderr=True)


def render_error(context: str, exc: BaseException) -> None:
    body = Text.assemble(
        ("scvibe error while ", "bold"),
        (context, "bold"),
        (":\n\n", "bold"),
        (type(exc).__name__, "bold red"),
        (": ", "bold"),
        str(exc),
        (f"\nLogs: {log_path('scvibe.log')}", "dim"),
        (f"\n\nSet {DEBUG_ENV}=1 for console trace.", "dim"),
    )
    _CONSOLE.print(Panel(body, title="Error", border_style="red"))
    if debug_enabled():
        _CONSOLE.print(Traceback.from_exception(type(exc), exc, exc.__traceback__))


def _doctor_lines(settings: EngineSettings) -> Iterable[str]:
    missing = False
    for name, override in (("sclang", settings.sclang_path), ("scsynth", settings.scsynth_path)):
        report = locate(name, override)
        if report.found:
            yield f"{name}: {report.path} ({report.location.replace('_', ' ')})"
        else:
            missing = True
            yield f"{name}: [red]not found[/red]"
    yield f"scsynth port: {settings.host}:{settings.port}"
    yield f"Boot timeout: {settings.boot_timeout:g}s"
    yield f"Renderer falls back to stub: {settings.renderer_fallback}"
    yield f"Interpreter falls back to stub: {settings.interpreter_fallback}"
    yield f"Leftover process cleanup scope: {settings.reap_scope}"
    yield f"Log file: {log_path('scvibe.log', settings.log_dir)}"
    yield "Hints:"
    if missing:
        yield f"- Install SuperCollider from {INSTALL_URL}"
    yield "- Set SCVIBE_SCLANG_PATH / SCVIBE_SCSYNTH_PATH to use binaries outside PATH."
    yield "- Set SCVIBE_STUB_ONLY=1 to run the tools without SuperCollider."


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="scvibe")
    sub = parser.add_subparsers(dest="command")
    sub.add_parser("serve", help="Run the MCP server on stdio (default).")
    sub.add_parser("doctor", help="Check SuperCollider binaries and settings.")
    return parser


def main(argv: list[str] | None = None) -> int:
    configure_logging()
    try:
        parser = build_parser()
        args = parser.parse_args(argv)
        settings = EngineSettings.from_env()

        if args.command in (None, "serve"):
            return asyncio.run(serve(settings))

        if args.command == "doctor":
            for line in _doctor_lines(settings):
                _CONSOLE.print(line)
            return 0

        parser.print_help()
        return 1
    except KeyboardInterrupt:
        return 130
    except Exception as exc:
        _LOGGER.warning("scvibe CLI failed: %s", exc, exc_info=debug_enabled())
        log_exception("scvibe CLI", exc)
        render_error("scvibe CLI", exc)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
