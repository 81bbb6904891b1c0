"""
FieldBuffer - double-buffered toroidal energy grid

Two equally sized float32 cubes indexed [x, y, z]. One is active (read by
the kernel and the renderer), the other is the write target of the next
kernel sub-step. swap() flips them at the end of every sub-step.
"""

import numpy as np

from .errors import DeviceError, UnsupportedGridSizeError
from .presets import MAX_GRID_SIZE, SEED_ENERGY_MAX

MIN_GRID_SIZE = 2


def validate_grid_size(size) -> int:
    """Return size as int or raise UnsupportedGridSizeError."""
    if isinstance(size, bool) or not isinstance(size, (int, np.integer)):
        if isinstance(size, float) and size.is_integer():
            size = int(size)
        else:
            raise UnsupportedGridSizeError(f"Grid size must be an integer, got {size!r}")
    size = int(size)
    if not MIN_GRID_SIZE <= size <= MAX_GRID_SIZE:
        raise UnsupportedGridSizeError(
            f"Grid size {size} outside supported range "
            f"[{MIN_GRID_SIZE}, {MAX_GRID_SIZE}]; try a smaller grid")
    return size


def _allocate_pair(size):
    try:
        return [np.zeros((size, size, size), dtype=np.float32),
                np.zeros((size, size, size), dtype=np.float32)]
    except MemoryError as e:
        raise DeviceError(
            f"Out of memory allocating {size}^3 field; reduce grid size") from e


class FieldBuffer:
    """Owns both energy grids and the active index."""

    def __init__(self, size=64, rng=None):
        self.size = validate_grid_size(size)
        self._grids = _allocate_pair(self.size)
        self.active = 0
        self.reseed(rng)

    @property
    def current(self) -> np.ndarray:
        """The active grid (read side of the next pass)."""
        return self._grids[self.active]

    @property
    def target(self) -> np.ndarray:
        """The inactive grid (write side of the next kernel pass)."""
        return self._grids[1 - self.active]

    @property
    def shape(self):
        return (self.size, self.size, self.size)

    def swap(self):
        self.active = 1 - self.active

    def reseed(self, rng=None):
        """Fill both grids with uniform energy in [0, SEED_ENERGY_MAX)."""
        rng = rng if rng is not None else np.random.default_rng()
        for grid in self._grids:
            grid[...] = rng.random(grid.shape, dtype=np.float32) * SEED_ENERGY_MAX
        self.active = 0

    def resize(self, size, rng=None):
        """Reallocate at a new side length and reseed.

        The new pair is fully built before the old one is dropped, so a
        failed resize leaves the buffer exactly as it was.
        """
        size = validate_grid_size(size)
        grids = _allocate_pair(size)
        rng = rng if rng is not None else np.random.default_rng()
        for grid in grids:
            grid[...] = rng.random(grid.shape, dtype=np.float32) * SEED_ENERGY_MAX
        self._grids = grids
        self.size = size
        self.active = 0

    def stats(self):
        grid = self.current
        return {
            "size": self.size,
            "mean": float(grid.mean()),
            "max": float(grid.max()),
            "alive_pct": float((grid > 0.01).sum()) / grid.size * 100,
        }
