"""
Energy Life Update Kernel

Advances the 3D toroidal energy field by one sub-step. Each cell:
1. Gathers a distance-weighted potential from its neighbors (attracting
   inner sphere, repelling Gaussian outer ring)
2. Maps the potential through a bell-shaped growth function, knocked down
   above the fission threshold and suppressed by the global average
3. Pays a quadratic metabolism cost
4. Diffuses through a 6/18/26-neighbor Laplacian (CFL-scaled)
5. Picks up fission chaos above the threshold and a little hash noise

The potential is a periodic convolution, evaluated with a cached FFT of
the weight cube folded onto the grid torus (same trick as Lenia's 2D
kernel, one dimension up).
"""

import functools
import math

import numpy as np

from .errors import DeviceError
from .presets import DEFAULT_PARAMS

EDGE_WEIGHT = 1.0 / math.sqrt(2.0)
CORNER_WEIGHT = 1.0 / math.sqrt(3.0)

NEIGHBOR_MODES = (6, 18, 26)

MIN_WIDTH_SCALE = 0.25
MAX_WIDTH_SCALE = 4.0

FISSION_NOISE_GAIN = 0.1
HASH_NOISE_AMPLITUDE = 0.001   # noise spans [-0.0005, 0.0005)
SEED_SCALE = 100000.0

_FACE_OFFSETS = [(1, 0, 0), (-1, 0, 0), (0, 1, 0),
                 (0, -1, 0), (0, 0, 1), (0, 0, -1)]
_EDGE_OFFSETS = [(a, b, 0) for a in (1, -1) for b in (1, -1)] + \
                [(a, 0, b) for a in (1, -1) for b in (1, -1)] + \
                [(0, a, b) for a in (1, -1) for b in (1, -1)]
_CORNER_OFFSETS = [(a, b, c) for a in (1, -1) for b in (1, -1) for c in (1, -1)]

_H1 = np.uint32(0x1E35A7BD)
_H2 = np.uint32(0x94D049BB)
_H3 = np.uint32(0x5BD1E995)
_H4 = np.uint32(0x2C1B3C6D)


# ---------------------------------------------------------------------------
# Neighbor weighting
# ---------------------------------------------------------------------------

def kernel_weights(inner_radius, inner_strength, outer_radius, outer_strength):
    """Build the weight cube for every offset within outer_radius.

    Returns:
        (weights, reach) where weights has shape (2*reach+1,)*3 and the
        centre element is offset (0, 0, 0).
    """
    reach = max(1, int(math.ceil(outer_radius)))
    r = np.arange(-reach, reach + 1, dtype=np.float64)
    ox, oy, oz = np.meshgrid(r, r, r, indexing="ij")
    dist = np.sqrt(ox * ox + oy * oy + oz * oz)

    weights = np.zeros_like(dist)
    if inner_radius > 0:
        inner = dist < inner_radius
        weights[inner] += inner_strength * (1.0 - dist[inner] / inner_radius) ** 2

    ring_start = inner_radius + 1.0
    if outer_radius > ring_start:
        ring = (dist >= ring_start) & (dist < outer_radius)
        t = (dist[ring] - ring_start) / (outer_radius - ring_start)
        weights[ring] += outer_strength * np.exp(-2.0 * t * t)

    weights[dist > outer_radius] = 0.0
    return weights, reach


def effective_sample_count(weights) -> float:
    """Neff = (sum |w|)^2 / sum w^2, 0 for an all-zero kernel."""
    s1 = float(np.abs(weights).sum())
    s2 = float((weights * weights).sum())
    if s2 <= 0.0:
        return 0.0
    return s1 * s1 / s2


TARGET_NEFF = effective_sample_count(kernel_weights(
    DEFAULT_PARAMS["inner_radius"], DEFAULT_PARAMS["inner_strength"],
    DEFAULT_PARAMS["outer_radius"], DEFAULT_PARAMS["outer_strength"],
)[0])


@functools.lru_cache(maxsize=64)
def width_scale(inner_radius, inner_strength, outer_radius, outer_strength) -> float:
    """Growth-width correction factor for a kernel shape, clamped to [0.25, 4]."""
    weights, _ = kernel_weights(inner_radius, inner_strength,
                                outer_radius, outer_strength)
    neff = effective_sample_count(weights)
    scale = math.sqrt(TARGET_NEFF / max(1.0, neff))
    return min(max(scale, MIN_WIDTH_SCALE), MAX_WIDTH_SCALE)


def effective_growth_width(params) -> float:
    """growth_width * scale ** growth_width_norm for a parameter dict."""
    norm = float(params["growth_width_norm"])
    if norm == 0.0:
        return float(params["growth_width"])
    scale = width_scale(float(params["inner_radius"]), float(params["inner_strength"]),
                        float(params["outer_radius"]), float(params["outer_strength"]))
    return float(params["growth_width"]) * scale ** norm


# ---------------------------------------------------------------------------
# Diffusion
# ---------------------------------------------------------------------------

def snap_neighbor_mode(mode) -> int:
    """Map any number onto the nearest lower stencil (6, 18 or 26)."""
    mode = float(mode)
    if mode >= 26:
        return 26
    if mode >= 18:
        return 18
    return 6


def center_coefficient(mode) -> float:
    mode = snap_neighbor_mode(mode)
    coeff = 6.0
    if mode >= 18:
        coeff += 12.0 * EDGE_WEIGHT
    if mode >= 26:
        coeff += 8.0 * CORNER_WEIGHT
    return coeff


def cfl_scale(mode) -> float:
    """Diffusion safety factor for a stencil.

    1 / centre coefficient: with diffusion_rate <= 1 the update is a convex
    mix of a cell and its neighbors, so diffusion alone stays in [0, 1].
    """
    return 1.0 / center_coefficient(mode)


def laplacian(grid, mode=6) -> np.ndarray:
    """Weighted toroidal Laplacian over the 6/18/26-neighbor stencil."""
    mode = snap_neighbor_mode(mode)
    total = np.zeros_like(grid)
    for off in _FACE_OFFSETS:
        total += np.roll(grid, off, axis=(0, 1, 2))
    if mode >= 18:
        edges = np.zeros_like(grid)
        for off in _EDGE_OFFSETS:
            edges += np.roll(grid, off, axis=(0, 1, 2))
        total += EDGE_WEIGHT * edges
    if mode >= 26:
        corners = np.zeros_like(grid)
        for off in _CORNER_OFFSETS:
            corners += np.roll(grid, off, axis=(0, 1, 2))
        total += CORNER_WEIGHT * corners
    return total - center_coefficient(mode) * grid


# ---------------------------------------------------------------------------
# Noise
# ---------------------------------------------------------------------------

def hash31(x, y, z) -> np.ndarray:
    """Integer hash of 3D cell coordinates to floats in [0, 1).

    Inputs broadcast against each other; arithmetic wraps at 32 bits.
    """
    x = np.asarray(x, dtype=np.uint32)
    y = np.asarray(y, dtype=np.uint32)
    z = np.asarray(z, dtype=np.uint32)
    with np.errstate(over="ignore"):
        h = x * _H1 + y * _H2 + z * _H3
        h = (h ^ (h >> np.uint32(15))) * _H4
        h = h ^ (h >> np.uint32(12))
    return (h & np.uint32(0x7FFFFF)).astype(np.float32) / np.float32(0x800000)


def seed_offset(seed) -> np.uint32:
    """Per-frame seed scalar to the integer added to every coordinate."""
    return np.uint32(int(float(seed) * SEED_SCALE) & 0xFFFFFFFF)


def hash_noise(size, seed) -> np.ndarray:
    """Per-cell noise in [-0.0005, 0.0005) for a (size,)*3 grid."""
    off = seed_offset(seed)
    idx = np.arange(size, dtype=np.uint32) + off
    h = hash31(idx[:, None, None], idx[None, :, None], idx[None, None, :])
    return (h - np.float32(0.5)) * np.float32(HASH_NOISE_AMPLITUDE)


# ---------------------------------------------------------------------------
# UpdateKernel
# ---------------------------------------------------------------------------

class UpdateKernel:
    """Evaluates the energy-life rule for a whole grid at once.

    Reads every rate, radius and the per-frame seed/time from the packed
    parameter block, so the kernel sees exactly what the renderer sees.
    The folded kernel spectrum is rebuilt only when the grid size or the
    kernel shape changes.
    """

    def __init__(self):
        self._cache_key = None
        self._kernel_fft = None
        self._weight_sum = 0.0
        self._coord_size = None
        self._coord_sum = None

    def _build_kernel(self, size, inner_r, inner_s, outer_r, outer_s):
        """Fold the weight cube onto the size^3 torus and pre-compute its FFT."""
        key = (size, inner_r, inner_s, outer_r, outer_s)
        if key == self._cache_key:
            return

        weights, reach = kernel_weights(inner_r, inner_s, outer_r, outer_s)
        # Index -offset so the convolution gathers e[x + offset] * w[offset];
        # offsets that wrap past the grid more than once accumulate.
        offs = np.arange(-reach, reach + 1)
        idx = (-offs) % size
        ix, iy, iz = np.meshgrid(idx, idx, idx, indexing="ij")
        folded = np.zeros((size, size, size), dtype=np.float64)
        np.add.at(folded, (ix.ravel(), iy.ravel(), iz.ravel()), weights.ravel())

        self._kernel_fft = np.fft.rfftn(folded)
        self._weight_sum = float(np.abs(weights).sum())
        self._cache_key = key

    def _coords(self, size):
        if self._coord_size != size:
            r = np.arange(size, dtype=np.float32)
            self._coord_sum = r[:, None, None] + r[None, :, None] + r[None, None, :]
            self._coord_size = size
        return self._coord_sum

    def potential(self, field, block) -> np.ndarray:
        """Normalized weighted neighbor sum for every cell."""
        inner_r, inner_s, outer_r, outer_s = (float(v) for v in block["inner"])
        inner_r = max(inner_r, 0.5)
        outer_r = max(outer_r, inner_r)
        size = field.shape[0]

        self._build_kernel(size, inner_r, inner_s, outer_r, outer_s)
        if self._weight_sum <= 0.0:
            return np.zeros(field.shape, dtype=np.float32)
        conv = np.fft.irfftn(np.fft.rfftn(field) * self._kernel_fft,
                             s=field.shape, axes=(0, 1, 2))
        return (conv / self._weight_sum).astype(np.float32)

    def run(self, src, dst, block):
        """Write one sub-step of src into dst.

        Args:
            src: active (size, size, size) float32 grid, read only
            dst: inactive grid of the same shape, fully overwritten
            block: packed parameter record (see packer.PARAMS_DTYPE)

        Returns:
            dst
        """
        if src is dst or np.shares_memory(src, dst):
            raise ValueError("Kernel source and target grids must not alias")
        if src.shape != dst.shape:
            raise ValueError(f"Grid shape mismatch: {src.shape} vs {dst.shape}")

        center, _width, rate, suppression = (float(v) for v in block["growth"])
        global_avg, decay, diffusion_rate, threshold = (float(v) for v in block["economy"])
        instability, _norm, mode, _steps = (float(v) for v in block["instab"])
        seed = float(block["misc"][3])
        time = float(block["camera"][2])
        width_eff = max(float(block["derived"][0]), 1e-6)
        threshold = min(threshold, 0.999)

        try:
            e = src
            pot = self.potential(e, block)

            x = (pot - center) / width_eff
            bell = np.exp(-0.5 * x * x)
            hot = e > threshold
            excess = np.where(hot, (e - threshold) / (1.0 - threshold), 0.0)
            bell -= excess * instability
            growth = bell - 0.5 - global_avg * suppression

            metabolism = e * e * decay
            diffusion = laplacian(e, mode) * diffusion_rate

            chaos = np.sin((self._coords(e.shape[0]) + time) * 0.5)
            fission = np.where(hot, chaos * excess * FISSION_NOISE_GAIN, 0.0)

            noise = hash_noise(e.shape[0], seed)

            new = e + rate * growth - metabolism + diffusion + fission + noise
            np.clip(new, 0.0, 1.0, out=dst)
        except MemoryError as err:
            raise DeviceError(f"Out of memory in kernel pass at {src.shape[0]}^3") from err
        return dst
