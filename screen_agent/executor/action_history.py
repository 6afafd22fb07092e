from collections import deque
from typing import Deque, List

DEFAULT_HISTORY_LIMIT = 20
SUMMARY_SIZE = 5


class ActionHistory:
    """Rolling record of what was executed (or failed) in the current task."""

    def __init__(self, limit: int = DEFAULT_HISTORY_LIMIT) -> None:
        self._entries: Deque[str] = deque(maxlen=limit)

    def add(self, entry: str) -> None:
        self._entries.append(entry)

    def clear(self) -> None:
        self._entries.clear()

    def entries(self) -> List[str]:
        return list(self._entries)

    def recent(self, count: int) -> List[str]:
        if count <= 0:
            return []
        return list(self._entries)[-count:]

    def summary(self, count: int = SUMMARY_SIZE) -> str:
        return " -> ".join(self.recent(count))

    def __len__(self) -> int:
        return len(self._entries)


__all__ = ["ActionHistory"]
