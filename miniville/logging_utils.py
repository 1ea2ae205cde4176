"""Console output for Miniville runs.

Every line starts with a plain-text tag, so the log reads the same with or
without colour:

    [•]   deterministic work: movement, perception, retrieval
    [AI]  a decision gateway request
    [!]   an error or a fallback
    [✓]   a finished step
    [i]   run metadata

Set ``MINIVILLE_NO_COLOR`` to drop the ANSI codes.
"""

import os
from enum import Enum


class Color(Enum):
    BLUE = "\033[94m"
    YELLOW = "\033[93m"
    RED = "\033[91m"
    GREEN = "\033[92m"
    CYAN = "\033[96m"
    MAGENTA = "\033[95m"   # world events in the example runner

    BOLD = "\033[1m"
    RESET = "\033[0m"


def colored(text: str, color: Color, bold: bool = False) -> str:
    """Wrap ``text`` in ANSI codes unless ``MINIVILLE_NO_COLOR`` is set."""
    if os.getenv("MINIVILLE_NO_COLOR"):
        return text
    prefix = (Color.BOLD.value if bold else "") + color.value
    return f"{prefix}{text}{Color.RESET.value}"


def _emit(tag: str, color: Color, message: str) -> None:
    print(colored(f"{tag} {message}", color))


def log_deterministic(message: str) -> None:
    _emit("[•]", Color.BLUE, message)


def log_llm(message: str) -> None:
    _emit("[AI]", Color.YELLOW, message)


def log_error(message: str) -> None:
    _emit("[!]", Color.RED, message)


def log_success(message: str) -> None:
    _emit("[✓]", Color.GREEN, message)


def log_info(message: str) -> None:
    _emit("[i]", Color.CYAN, message)


def debug_enabled(flag: str) -> bool:
    """True when an environment flag is set to 1, true or yes."""
    return os.getenv(flag, "").lower() in ("1", "true", "yes")
