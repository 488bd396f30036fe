from __future__ import annotations
from typing import List, Optional

class TraceSession:
    """Collects tag-prefixed rule decisions (e.g. "[Acq] Acquired Quickdraw") for display."""
    def __init__(self, limit: Optional[int] = None) -> None:
        self.lines: List[str] = []
        self.limit = limit

    def add(self, tag: str, line: str) -> None:
        self.lines.append(f"[{tag}] {line}")
        if self.limit is not None and len(self.lines) > self.limit:
            del self.lines[: len(self.lines) - self.limit]

    def extend(self, tag: str, many: list[str]) -> None:
        for line in many:
            self.add(tag, line)

    def dump(self) -> list[str]:
        return list(self.lines)

    def clear(self) -> None:
        self.lines.clear()
