"""
Stage/task progress reporting for cleanup runs.

Each stage ("Deleting releases") gets a tqdm bar sized to the number of
tasks submitted for it; every tracked task is logged when it starts, finishes
or fails and advances its stage's bar. With ``record_events`` the same
transitions are also kept in ``events``.
"""

import threading
import time
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional

import tqdm

from utils.logging_utils import get_logger


class EventLog:
    """Thread-safe ProgressTracker backed by logging and tqdm"""

    def __init__(self, show_progress: bool = True, record_events: bool = False):
        self.show_progress = show_progress
        self.record_events = record_events
        self.logger = get_logger(self.__class__.__name__)
        self._lock = threading.Lock()
        self._bars: Dict[str, tqdm.tqdm] = {}
        self._current_stage: Optional[str] = None
        self.events: List[Dict[str, object]] = []

    def begin_stage(self, stage: str, total: int) -> None:
        with self._lock:
            self._current_stage = stage
            self._emit(stage, "begin", total=total)
            if self.show_progress and total > 0:
                self._bars[stage] = tqdm.tqdm(total=total, desc=stage, leave=True)
        self.logger.info(f"{stage} ({total})")

    @contextmanager
    def track(self, label: str, stage: Optional[str] = None) -> Iterator[None]:
        """Wrap one unit of work. Without ``stage`` the most recently begun stage is used."""
        with self._lock:
            stage = stage or self._current_stage
            self._emit(stage, "started", task=label)
        self.logger.info(f"{label}: started")
        started = time.monotonic()
        try:
            yield
        except BaseException as e:
            with self._lock:
                self._emit(stage, "failed", task=label, error=str(e))
                self._advance(stage)
            self.logger.error(f"{label}: failed ({type(e).__name__})")
            raise
        elapsed = time.monotonic() - started
        with self._lock:
            self._emit(stage, "finished", task=label)
            self._advance(stage)
        self.logger.info(f"{label}: done ({elapsed:.2f}s)")

    def close(self) -> None:
        with self._lock:
            for bar in self._bars.values():
                bar.close()
            self._bars.clear()

    def _emit(self, stage: Optional[str], state: str, **extra) -> None:
        # caller holds self._lock
        if self.record_events:
            self.events.append({"time": time.time(), "stage": stage, "state": state, **extra})

    def _advance(self, stage: Optional[str]) -> None:
        bar = self._bars.get(stage)
        if bar is not None:
            bar.update(1)
