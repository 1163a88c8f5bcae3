"""Run log with terminal-safe console output.

The human log mirrors every declaration/usage event to the console and keeps
the lines for the lifetime of one run. Source snippets can contain any
character, so console output is sanitised for terminals that cannot encode
them (legacy Windows code pages in particular).
"""
import sys
import locale
from typing import List, Optional


def detect_terminal_encoding() -> str:
    """Detect the terminal's encoding capability.

    Returns:
        str: Terminal encoding ('utf-8', 'cp932', 'ascii', etc.)
    """
    # Try stdout encoding first
    if hasattr(sys.stdout, 'encoding') and sys.stdout.encoding:
        return sys.stdout.encoding.lower()

    # Fallback to locale
    try:
        return locale.getpreferredencoding().lower()
    except Exception:
        pass

    return 'ascii'


def is_utf8_capable() -> bool:
    """Check if the terminal can handle UTF-8 Unicode characters."""
    return detect_terminal_encoding().replace('_', '-') in ('utf-8', 'utf8')


def sanitize_for_terminal(text: str, encoding: Optional[str] = None) -> str:
    """Replace characters the terminal cannot encode with '?'.

    Args:
        text: Text to print
        encoding: Target encoding, defaults to the detected terminal encoding

    Returns:
        str: Text that is safe to write to the terminal
    """
    encoding = encoding or detect_terminal_encoding()
    try:
        return text.encode(encoding, errors='replace').decode(encoding, errors='replace')
    except LookupError:
        return text.encode('ascii', errors='replace').decode('ascii')


class LogBuffer:
    """Line-oriented human log for one run.

    Every line is appended to ``lines`` and echoed to the console. Markup and
    highlighting are off so that code snippets such as ``x[0]`` print as-is.
    """

    def __init__(self, console=None):
        """Initialize the buffer.

        Args:
            console: Rich console to echo to; None keeps the log silent
        """
        self.console = console
        self.lines: List[str] = []

    def log(self, line: str = "") -> None:
        self.lines.append(line)
        if self.console is not None:
            self.console.print(line, markup=False, highlight=False, soft_wrap=True)
