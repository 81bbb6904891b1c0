#!/usr/bin/env python3
"""
Tests for the global-average reduction.

Verifies:
1. Hierarchical mean equals the true mean for power-of-two grids
2. Partial blocks at odd sizes average only in-bounds cells
3. Single-flight: triggers while busy are dropped, not queued
4. A failed read-back keeps the previous value
"""

import threading

import numpy as np

from energy_life.reduction import ReductionPipeline, halve, reduce_mean


def test_power_of_two_mean():
    print("Testing power-of-two reduction...")
    rng = np.random.default_rng(11)
    for size in (2, 8, 32):
        grid = rng.random((size, size, size)).astype(np.float32)
        got = reduce_mean(grid)
        want = float(grid.astype(np.float64).mean())
        assert abs(got - want) < 1e-6, f"size {size}: {got} vs {want}"

    print("  ✓ Power-of-two reduction matches mean")


def test_partial_blocks():
    print("Testing partial blocks...")
    grid = np.arange(27, dtype=np.float32).reshape(3, 3, 3)
    level = halve(grid)
    assert level.shape == (2, 2, 2), f"3^3 should halve to 2^3, got {level.shape}"

    assert abs(level[0, 0, 0] - grid[0:2, 0:2, 0:2].mean()) < 1e-9
    # 1 x 2 x 2 overhang: four in-bounds cells
    assert abs(level[1, 0, 0] - grid[2:3, 0:2, 0:2].mean()) < 1e-9
    # Corner block holds a single cell
    assert abs(level[1, 1, 1] - grid[2, 2, 2]) < 1e-9

    assert halve(np.ones((5, 5, 5))).shape == (3, 3, 3)
    # Constant field stays constant through any number of partial levels
    assert abs(reduce_mean(np.full((7, 7, 7), 0.25)) - 0.25) < 1e-12

    print("  ✓ Partial blocks average in-bounds cells only")


def test_drop_if_busy():
    print("Testing single-flight reduction...")
    release = threading.Event()

    def slow_mean(grid):
        release.wait(5.0)
        return float(grid.mean())

    pipe = ReductionPipeline(interval=2, reduce_fn=slow_mean)
    try:
        grid = np.full((4, 4, 4), 0.5, dtype=np.float32)
        assert pipe.trigger(grid), "First trigger should start"
        assert pipe.pending
        assert not pipe.trigger(grid), "Second trigger should be dropped"
        assert pipe.dropped == 1
        assert pipe.poll() is None, "Nothing ready while worker is blocked"

        # Trigger took a private copy
        grid[:] = 1.0
        release.set()
        value = pipe.wait(5.0)
        assert value is not None and abs(value - 0.5) < 1e-6, f"Got {value}"
        assert not pipe.pending
        assert pipe.trigger(grid), "Trigger should work again once consumed"
        assert abs(pipe.wait(5.0) - 1.0) < 1e-6
    finally:
        release.set()
        pipe.close()

    print("  ✓ Overlapping triggers dropped")


def test_failed_readback_keeps_stale_value():
    print("Testing failed read-back...")

    def broken(grid):
        raise RuntimeError("read-back lost")

    pipe = ReductionPipeline(reduce_fn=broken)
    try:
        assert pipe.trigger(np.zeros((2, 2, 2), dtype=np.float32))
        assert pipe.wait(5.0) is None, "Failure should surface as no value"
        assert not pipe.pending, "Failed reduction should not block the next one"
        assert pipe.last_value is None
    finally:
        pipe.close()

    print("  ✓ Failed read-back is non-fatal")


def test_substep_cadence():
    pipe = ReductionPipeline(interval=3)
    try:
        assert not pipe.note_substeps(1)
        assert not pipe.note_substeps(1)
        assert pipe.note_substeps(1), "Third sub-step should make a trigger due"
        pipe.trigger(np.zeros((2, 2, 2), dtype=np.float32))
        assert pipe.substeps == 0, "Trigger resets the sub-step counter"
        pipe.reset()
        assert not pipe.pending, "Reset discards the outstanding reduction"
    finally:
        pipe.close()


if __name__ == "__main__":
    print("\n=== Testing Reduction Pipeline ===\n")

    test_power_of_two_mean()
    test_partial_blocks()
    test_drop_if_busy()
    test_failed_readback_keeps_stale_value()
    test_substep_cadence()

    print("\n✓ All tests passed!\n")
