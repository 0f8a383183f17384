"""
Frame analysis worker.

Runs an analysis callable (typically a detect_in_image partial) on one
dedicated background thread. Frames are never queued: a frame submitted while
the previous one is still being analyzed is dropped, which bounds end-to-end
latency to one analysis. The latest completed result is kept for the caller
(e.g. the overlay renderer) to pick up.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Generic, Optional, TypeVar

from ..ransac.types import DEBUG

logger = logging.getLogger(__name__)

F = TypeVar("F")
R = TypeVar("R")


class FrameAnalyzer(Generic[F, R]):
    """
    Single-worker, drop-if-busy frame analysis.

    Usage:
        analyzer = FrameAnalyzer(lambda frame: detect_in_image(frame, refs))
        for frame in frames:
            analyzer.submit(frame)      # False -> frame dropped
            overlay(analyzer.latest())
        analyzer.close()
    """

    def __init__(self, analyze: Callable[[F], R]) -> None:
        self._analyze = analyze
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="FrameAnalyzer")
        self._lock = threading.Lock()
        # set while no analysis is running (including its result publishing)
        self._idle = threading.Event()
        self._idle.set()
        self._latest: Optional[R] = None
        self._closed = False

        self.submitted = 0
        self.dropped = 0
        self.failed = 0

    def submit(self, frame: F) -> bool:
        """
        Start analyzing frame unless an analysis is already running.

        Returns:
          True if the frame was accepted, False if it was dropped.
        """
        with self._lock:
            if self._closed:
                raise RuntimeError("FrameAnalyzer is closed.")
            if not self._idle.is_set():
                self.dropped += 1
                if DEBUG:
                    print(f"[analyzer] busy, dropped frame (dropped={self.dropped})")
                return False

            self.submitted += 1
            self._idle.clear()
            future = self._executor.submit(self._analyze, frame)

        future.add_done_callback(self._on_done)
        return True

    def _on_done(self, future: Future) -> None:
        exc = future.exception()
        with self._lock:
            if exc is not None:
                # keep the previous result; the next frame gets a fresh try
                self.failed += 1
                logger.error("Frame analysis failed", exc_info=exc)
            else:
                self._latest = future.result()
            self._idle.set()

    def latest(self) -> Optional[R]:
        """Most recent completed result, or None before the first one."""
        with self._lock:
            return self._latest

    def is_busy(self) -> bool:
        return not self._idle.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """
        Block until the in-flight analysis (if any) has finished and its
        result is published. Returns False on timeout.
        """
        return self._idle.wait(timeout)

    def close(self) -> None:
        """Stop accepting frames and let the in-flight analysis finish."""
        with self._lock:
            self._closed = True
        self._executor.shutdown(wait=True)

    def __enter__(self) -> "FrameAnalyzer[F, R]":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
