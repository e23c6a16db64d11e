"""
Purpose: The "heartbeat" for background jobs.
What it does:
- PeriodicJob runs a tick function on a fixed interval in a daemon thread,
  once immediately on start, then every `interval_seconds`
- stop() lets the running tick finish and joins the thread; a tick is never
  cancelled mid-flight
- run_units() fans the independent units of one tick (orders) out to a
  bounded thread pool and isolates their failures

Rule: Jobs own what a tick does; this module owns when and how it runs.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Iterable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class UnitStats:
    processed: int = 0
    failed: int = 0


def run_units(units: Iterable[T], work: Callable[[T], None], max_workers: int = 1,
              describe: Callable[[T], str] = str) -> UnitStats:
    """
    Run `work` for every unit. One unit's exception is logged with context and
    never stops the others.
    """
    units = list(units)
    stats = UnitStats()

    def _guarded(unit: T) -> bool:
        try:
            work(unit)
            return True
        except Exception:
            logger.exception(f"Unit {describe(unit)} failed")
            return False

    if max_workers <= 1 or len(units) <= 1:
        results = [_guarded(unit) for unit in units]
    else:
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            results = list(pool.map(_guarded, units))

    for ok in results:
        if ok:
            stats.processed += 1
        else:
            stats.failed += 1
    return stats


class PeriodicJob:
    """
    Owns one background thread. Built and started by the process lifecycle
    (engine.runtime), never at import time.
    """
    def __init__(self, name: str, interval_seconds: float, tick: Callable[[], object]):
        self.name = name
        self.interval_seconds = interval_seconds
        self.tick = tick
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.ticks_run = 0

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_running:
            logger.info(f"[{self.name}] already running")
            return

        logger.info(f"[{self.name}] starting (interval: {self.interval_seconds}s)")
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name=self.name, daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        if self._thread is None:
            return
        self._stop.set()
        self._thread.join(timeout)
        self._thread = None
        logger.info(f"[{self.name}] stopped")

    def run_once(self):
        """Run a single tick in the caller's thread. Errors are logged, not raised."""
        try:
            return self.tick()
        except Exception:
            logger.exception(f"[{self.name}] tick failed")
            return None
        finally:
            self.ticks_run += 1

    def _loop(self) -> None:
        while not self._stop.is_set():
            self.run_once()
            # A missed tick is simply picked up by the next one.
            if self._stop.wait(self.interval_seconds):
                break
