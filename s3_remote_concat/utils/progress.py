"""Progress tracking utilities."""

from __future__ import annotations

import threading
from typing import Optional

from tqdm import tqdm


class ProgressTracker:
    """Counts copied parts and mirrors them on a tqdm bar; safe to share between threads."""

    def __init__(self, description: str = "Copying parts", enabled: bool = True) -> None:
        self.description = description
        self.enabled = enabled
        self.total = 0
        self.completed = 0
        self._bar: Optional[tqdm] = None
        self._lock = threading.Lock()

    def start(self, total: int) -> None:
        with self._lock:
            self.total = total
            self.completed = 0
            self._bar = tqdm(total=total, desc=self.description, unit="part", disable=not self.enabled)

    def advance(self) -> None:
        with self._lock:
            self.completed += 1
            if self._bar is not None:
                self._bar.update(1)

    def finish(self) -> None:
        with self._lock:
            if self._bar is not None:
                self._bar.close()
                self._bar = None
