"""User messaging sinks."""

from __future__ import annotations

import sys
from typing import TextIO


class ConsoleUi:
    """Writes progress to a stream and errors to stderr.

    ``say`` marks a new phase, ``message`` is indented detail under it.
    """

    def __init__(
        self,
        *,
        out: TextIO | None = None,
        err: TextIO | None = None,
        quiet: bool = False,
    ) -> None:
        self._out = out or sys.stdout
        self._err = err or sys.stderr
        self.quiet = quiet

    def say(self, text: str) -> None:
        if not self.quiet:
            print(f'==> {text}', file=self._out, flush=True)

    def message(self, text: str) -> None:
        if not self.quiet:
            print(f'    {text}', file=self._out, flush=True)

    def error(self, text: str) -> None:
        print(f'==> {text}', file=self._err, flush=True)


class RecordingUi:
    """Test sink that keeps every message in order."""

    def __init__(self) -> None:
        self.events: list[tuple[str, str]] = []

    def say(self, text: str) -> None:
        self.events.append(('say', text))

    def message(self, text: str) -> None:
        self.events.append(('message', text))

    def error(self, text: str) -> None:
        self.events.append(('error', text))

    @property
    def errors(self) -> list[str]:
        return [text for kind, text in self.events if kind == 'error']

    @property
    def texts(self) -> list[str]:
        return [text for _, text in self.events]
