"""Pretty formatting utilities for CLI output."""

from enum import Enum
from typing import Iterable, Optional

STATUS_HEADER = (
    " ┌─ commit is pushed\n"
    " │ ┌─ pull request exists\n"
    " │ │ ┌─ github checks pass\n"
    " │ │ │ ┌── pull request approved\n"
    " │ │ │ │ ┌─── stack check\n"
    " │ │ │ │ │\n"
)


class Status(Enum):
    """Status flag with its emoji."""
    SUCCESS = "✅"
    FAIL = "❌"
    PENDING = "⌛"
    UNKNOWN = "❓"
    EMPTY = "➖"
    WARNING = "⚠️"

    @property
    def emoji(self) -> str:
        return self.value


def status_line(flags: Iterable[Status], short_message: str, permalink: Optional[str] = None) -> str:
    """Render ``[flags] <permalink> : <message>`` for one stack entry."""
    bits = "".join(flag.emoji for flag in flags)
    link = f"{permalink} : " if permalink else ""
    return f"[{bits}] {link}{short_message}\n"


def plural(count: int, word: str) -> str:
    return word if count == 1 else f"{word}s"

