"""Line diff statistics and bounded per-path revision history."""

from __future__ import annotations

import difflib
import re
import time
from collections import deque
from typing import Callable, Deque, Dict, List, Optional

from .core.errors import RevisionNotFound
from .core.models import DiffStats, Revision

DEFAULT_LIMIT = 20

_LINE_BREAK = re.compile(r"\r?\n")


def split_lines(text: Optional[str]) -> List[str]:
    if not text:
        return []
    return _LINE_BREAK.split(text)


def lcs_length(a: List[str], b: List[str]) -> int:
    """Length of the longest common subsequence, using two rolling rows."""
    if len(b) > len(a):
        a, b = b, a
    n = len(b)
    prev = [0] * (n + 1)
    curr = [0] * (n + 1)
    for line in a:
        for j in range(1, n + 1):
            if line == b[j - 1]:
                curr[j] = prev[j - 1] + 1
            else:
                curr[j] = prev[j] if prev[j] >= curr[j - 1] else curr[j - 1]
        prev, curr = curr, prev
    return prev[n]


def compute_diff(old_text: Optional[str], new_text: Optional[str]) -> DiffStats:
    old_lines = split_lines(old_text)
    new_lines = split_lines(new_text)
    lcs = lcs_length(old_lines, new_lines)
    return DiffStats(
        added=max(0, len(new_lines) - lcs),
        removed=max(0, len(old_lines) - lcs),
    )


def unified_diff(revision: Revision, path: str = "file") -> str:
    return "".join(
        difflib.unified_diff(
            revision.before.splitlines(keepends=True),
            revision.after.splitlines(keepends=True),
            fromfile=f"a/{path}",
            tofile=f"b/{path}",
        )
    )


class RevisionTracker:
    """Keeps the last ``limit`` revisions of every path."""

    def __init__(self, limit: int = DEFAULT_LIMIT, clock: Callable[[], float] = time.time) -> None:
        if limit < 1:
            raise ValueError("limit must be at least 1")
        self.limit = limit
        self._clock = clock
        self._history: Dict[str, Deque[Revision]] = {}

    def push(self, path: str, before: str, after: str) -> Revision:
        stats = compute_diff(before, after)
        revision = Revision(
            before=before,
            after=after,
            timestamp=self._clock(),
            added_lines=stats.added,
            removed_lines=stats.removed,
        )
        self._history.setdefault(path, deque(maxlen=self.limit)).append(revision)
        return revision

    def history(self, path: str) -> List[Revision]:
        return list(self._history.get(path, ()))

    def latest(self, path: str) -> Revision:
        entries = self._history.get(path)
        if not entries:
            raise RevisionNotFound(f"No revisions recorded for {path}")
        return entries[-1]

    def view(self, path: str, index: int = -1) -> Revision:
        entries = self.history(path)
        try:
            return entries[index]
        except IndexError:
            raise RevisionNotFound(f"No revision {index} for {path}") from None

    def restore(self, path: str) -> str:
        """Undo the latest revision of ``path``.

        Returns the content to write back and records the reversal as a new
        revision, so restoring twice returns to where the first restore began.
        """
        last = self.latest(path)
        self.push(path, last.after, last.before)
        return last.before

    def rename(self, old_path: str, new_path: str) -> None:
        entries = self._history.pop(old_path, None)
        if entries is not None:
            self._history[new_path] = entries

    def forget(self, path: str) -> None:
        self._history.pop(path, None)

    def to_dict(self) -> dict:
        return {path: [r.to_dict() for r in entries] for path, entries in self._history.items()}

    @classmethod
    def from_dict(cls, data: dict, limit: int = DEFAULT_LIMIT) -> "RevisionTracker":
        tracker = cls(limit=limit)
        for path, entries in (data or {}).items():
            if isinstance(entries, list):
                tracker._history[path] = deque(
                    (Revision.from_dict(e) for e in entries if isinstance(e, dict)),
                    maxlen=limit,
                )
        return tracker
