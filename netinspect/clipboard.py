"""
System clipboard access through the platform's copy command.
"""

import logging
import subprocess
import sys
from typing import List

from .errors import ClipboardUnavailable

logger = logging.getLogger(__name__)

COPY_TIMEOUT = 2.0


def clipboard_commands(platform: str = sys.platform) -> List[List[str]]:
    """Copy commands to try, in order, for a platform."""
    if platform == "darwin":
        return [["pbcopy"]]
    if platform == "win32":
        return [["clip"]]
    return [
        ["wl-copy"],
        ["xclip", "-selection", "clipboard"],
        ["xsel", "--clipboard", "--input"],
    ]


def copy_to_clipboard(text: str) -> None:
    """
    Put text on the system clipboard.

    Raises:
        ClipboardUnavailable: no copy command is installed or all failed
    """
    failures = []
    for command in clipboard_commands():
        try:
            subprocess.run(command, input=text.encode("utf-8"), check=True,
                           timeout=COPY_TIMEOUT, capture_output=True)
            logger.debug(f"Copied {len(text)} characters with {command[0]}")
            return
        except FileNotFoundError:
            continue
        except (subprocess.CalledProcessError, subprocess.TimeoutExpired, OSError) as e:
            failures.append(f"{command[0]}: {e}")

    if failures:
        raise ClipboardUnavailable("; ".join(failures))
    raise ClipboardUnavailable("no clipboard command found (install wl-copy, xclip or xsel)")
