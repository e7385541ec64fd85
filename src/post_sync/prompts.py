"""Confirmation prompts for destructive commands.

The sync core never asks the user anything.  Commands that delete
remote content receive a ``Confirmer`` and ask it before acting.
"""

import sys
from collections.abc import Callable
from typing import Protocol, TextIO


class Confirmer(Protocol):
    def ask(self, prompt: str) -> bool: ...


class InteractiveConfirmer:
    """Ask on the terminal; anything but an explicit yes means no.

    Args:
        input_fn: Reads one line of user input.
        stream: Where the prompt is written (stderr keeps stdout clean).
    """

    def __init__(
        self,
        input_fn: Callable[[], str] = sys.stdin.readline,
        stream: TextIO | None = None,
    ):
        self._input = input_fn
        self._stream = stream or sys.stderr

    def ask(self, prompt: str) -> bool:
        self._stream.write(f"{prompt} [y/N] ")
        self._stream.flush()
        try:
            answer = self._input()
        except EOFError:
            return False
        return answer.strip().lower() in ("y", "yes")


class AutoConfirmer:
    """Answer yes to everything (``--yes``)."""

    def ask(self, prompt: str) -> bool:
        return True
