from __future__ import annotations

from pathlib import Path


class FileRoundStateSource:
    """
    Reads the round state snapshot the consensus engine dumps as JSON.

    Re-read on every call; the file is owned by the consensus engine and
    changes as rounds progress.
    """

    def __init__(self, *, path: Path) -> None:
        self._path = path

    def round_state_snapshot(self) -> bytes:
        return self._path.read_bytes()
