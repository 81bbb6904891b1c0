"""
Global-average reduction

Collapses the energy field to its mean by repeated 2x2x2 block averaging
(each level halves every axis, partial blocks at odd edges average only
the cells they cover). The chain runs on one worker thread against a
private copy of the grid so the frame loop never waits on it; at most one
reduction is outstanding and extra requests are dropped.
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import wait as wait_futures

import numpy as np

from .presets import GLOBAL_AVG_INTERVAL


def halve(grid) -> np.ndarray:
    """One reduction level: mean of each 2x2x2 block.

    Output side is ceil(S/2) per axis. Blocks hanging over an odd edge
    are divided by the number of in-bounds cells, not by 8.
    """
    grid = np.asarray(grid, dtype=np.float64)
    pad = [(0, s % 2) for s in grid.shape]
    if any(p[1] for p in pad):
        counts = np.pad(np.ones(grid.shape, dtype=np.float64), pad)
        grid = np.pad(grid, pad)
    else:
        counts = None

    def _block_sum(a):
        sx, sy, sz = a.shape
        return a.reshape(sx // 2, 2, sy // 2, 2, sz // 2, 2).sum(axis=(1, 3, 5))

    sums = _block_sum(grid)
    if counts is None:
        return sums / 8.0
    return sums / _block_sum(counts)


def reduce_mean(grid) -> float:
    """Halve until a single cell remains; returns that cell's value."""
    level = np.asarray(grid, dtype=np.float64)
    if level.size == 0:
        raise ValueError("Cannot reduce an empty grid")
    while level.shape != (1, 1, 1):
        level = halve(level)
    return float(level[0, 0, 0])


class ReductionPipeline:
    """Single-flight asynchronous mean reduction.

    trigger() snapshots the active grid and starts the halving chain on
    the worker; poll() hands back the scalar once it is ready. While a
    result is outstanding (running, or finished but not yet polled) new
    triggers are dropped.
    """

    def __init__(self, interval=GLOBAL_AVG_INTERVAL, reduce_fn=reduce_mean):
        self.interval = max(1, int(interval))
        self._reduce_fn = reduce_fn
        self._executor = ThreadPoolExecutor(max_workers=1,
                                            thread_name_prefix="el-reduce")
        self._lock = threading.Lock()
        self._future = None
        self.substeps = 0          # kernel sub-steps since the last trigger
        self.dropped = 0
        self.completed = 0
        self.last_value = None

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._future is not None

    def note_substeps(self, n):
        """Count kernel sub-steps; returns True when a trigger is due."""
        self.substeps += n
        return self.substeps >= self.interval

    def trigger(self, grid) -> bool:
        """Start a reduction of grid. Returns False if one is outstanding."""
        with self._lock:
            if self._future is not None:
                self.dropped += 1
                return False
            snapshot = np.array(grid, dtype=np.float32, copy=True)
            self._future = self._executor.submit(self._reduce_fn, snapshot)
            self.substeps = 0
            return True

    def poll(self):
        """Non-blocking read-back. Returns the mean or None if not ready.

        A failed read-back prints a warning and returns None so the caller
        keeps its previous average.
        """
        with self._lock:
            future = self._future
            if future is None or not future.done():
                return None
            self._future = None
        return self._collect(future)

    def wait(self, timeout=None):
        """Blocking variant of poll() for headless runs."""
        with self._lock:
            future = self._future
        if future is None:
            return None
        done, _ = wait_futures([future], timeout=timeout)
        if not done:
            return None
        return self.poll()

    def _collect(self, future):
        try:
            value = float(future.result())
        except Exception as e:
            print(f"[EL] Reduction read-back failed, keeping previous average: {e}")
            return None
        self.completed += 1
        self.last_value = value
        return value

    def reset(self):
        """Forget any outstanding result (after resize or reseed).

        A reduction still running on the worker finishes into a future
        nobody holds, so its value never reaches poll().
        """
        with self._lock:
            self._future = None
            self.substeps = 0
            self.last_value = None

    def close(self):
        self._executor.shutdown(wait=True)
