"""Console logging for flowrun, rendered through Rich.

Progress lines (info/success) go to stdout and can be silenced with
``set_quiet``; warnings and errors go to stderr so tables printed on stdout
stay clean.
"""

from __future__ import annotations

from rich.console import Console

console = Console(highlight=False)
_err_console = Console(highlight=False, stderr=True)

_verbose = False
_quiet = False


def set_verbose(enabled: bool) -> None:
    global _verbose
    _verbose = enabled


def set_quiet(enabled: bool) -> None:
    global _quiet
    _quiet = enabled


def _emit(tag: str, style: str, msg: str, *, stderr: bool = False) -> None:
    if _quiet and not stderr:
        return
    target = _err_console if stderr else console
    target.print(f"[{style}]\\[{tag}][/{style}] {msg}")


def info(msg: str) -> None:
    _emit("INFO", "blue", msg)


def success(msg: str) -> None:
    _emit("OK", "green", msg)


def warn(msg: str) -> None:
    _emit("WARN", "yellow", msg, stderr=True)


def error(msg: str) -> None:
    _emit("ERROR", "red", msg, stderr=True)


def debug(msg: str) -> None:
    if _verbose and not _quiet:
        console.print(f"[dim]\\[DEBUG] {msg}[/dim]")
