from __future__ import annotations

import asyncio
import sys
from typing import Sequence, TextIO

from ..models import Candidate

_CANCEL_WORDS = {"", "q", "quit", "esc", "cancel"}


class TerminalCandidatePicker:
    """Candidate picker over a text stream: `1`-`9` selects, a blank line or `q` cancels."""

    def __init__(self, stdin: TextIO | None = None, stdout: TextIO | None = None) -> None:
        self._stdin = stdin or sys.stdin
        self._stdout = stdout or sys.stdout

    def _render(self, candidates: Sequence[Candidate]) -> None:
        self._stdout.write("Several PDF candidates were found. Choose one:\n")
        for index, candidate in enumerate(candidates, start=1):
            self._stdout.write(f"{index}. {candidate.label or candidate.url}\n")
            self._stdout.write(f"   {candidate.source} | {candidate.url}\n")
        self._stdout.write("Number (blank or q to cancel): ")
        self._stdout.flush()

    def _read_choice(self, candidates: Sequence[Candidate]) -> str | None:
        self._render(candidates)
        line = self._stdin.readline()
        answer = line.strip().lower()
        if answer in _CANCEL_WORDS or len(answer) != 1 or not "1" <= answer <= "9":
            return None
        index = int(answer) - 1
        return candidates[index].url if index < len(candidates) else None

    async def choose(self, tab_id: int, candidates: Sequence[Candidate]) -> str | None:
        if not candidates:
            return None
        return await asyncio.to_thread(self._read_choice, candidates)
