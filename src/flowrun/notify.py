"""Desktop notification when a service run finishes, best-effort."""

from __future__ import annotations

import subprocess
import sys

from flowrun import log


def _run_quiet(*cmd: str) -> bool:
    """Fire-and-forget subprocess; False if the command is unavailable."""
    try:
        subprocess.Popen(
            cmd,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
        )
    except OSError:
        return False
    return True


def notify_finished(procedure_name: str) -> None:
    """Play a sound and show a toast for a completed service run."""
    message = f"Service run complete: {procedure_name}"
    if sys.platform == "darwin":
        sent = _run_quiet(
            "osascript", "-e",
            f'display notification "{message}" with title "flowrun"',
        )
        _run_quiet("afplay", "/System/Library/Sounds/Glass.aiff")
    elif sys.platform.startswith("linux"):
        sent = _run_quiet("notify-send", "flowrun", message)
        _run_quiet("paplay", "/usr/share/sounds/freedesktop/stereo/complete.oga")
    elif sys.platform == "win32":
        sent = _run_quiet(
            "powershell.exe", "-Command",
            "[System.Media.SystemSounds]::Asterisk.Play()",
        )
    else:
        sent = False
    if not sent:
        log.debug("No desktop notifier available")
