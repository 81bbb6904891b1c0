"""
Volume Renderer - maximum-intensity ray marching

For every pixel: build a ray from the orbit camera, clip it against the
unit cube, take a fixed number of trilinear samples of the (periodic)
energy texture along the clipped segment and keep the maximum. The
maximum is band-filtered, contrast-curved and mapped through a palette.

Sampling uses scipy's map_coordinates with grid-wrap addressing, which is
what a repeat-mode linear texture sampler does on the GPU.
"""

import numpy as np
from scipy.ndimage import map_coordinates

from .colormaps import apply_palette, get_palette_lut
from .packer import unpack_filters

CONTRAST_GAMMA = 1.8
BLACK_CUT = 0.02
MAX_RAY_STEPS = 1024

BAND_EDGES = (0.25, 0.5, 0.75)   # bands 0..3 -> energy_filter bits 0..3


def rotate(vectors, yaw, pitch):
    """Rotate (..., 3) vectors by yaw (about Y) then pitch (about X), radians."""
    cy, sy = np.cos(yaw), np.sin(yaw)
    cp, sp = np.cos(pitch), np.sin(pitch)
    dx, dy, dz = vectors[..., 0], vectors[..., 1], vectors[..., 2]

    x = dx * cy + dz * sy
    z = -dx * sy + dz * cy
    y = dy

    y2 = y * cp - z * sp
    z2 = y * sp + z * cp
    return np.stack([x, y2, z2], axis=-1)


def intersect_unit_cube(origin, dirs):
    """Slab test against [0, 1]^3.

    Args:
        origin: (3,) ray origin shared by all rays
        dirs: (M, 3) ray directions

    Returns:
        (t_min, t_max) arrays of shape (M,); a ray misses when
        t_max < max(t_min, 0)
    """
    safe = np.where(np.abs(dirs) < 1e-9, 1e-9, dirs)
    inv = 1.0 / safe
    t0 = (0.0 - origin) * inv
    t1 = (1.0 - origin) * inv
    t_min = np.minimum(t0, t1).max(axis=-1)
    t_max = np.maximum(t0, t1).min(axis=-1)
    return t_min, t_max


def band_index(energy):
    """0..3 for energy in [0,.25), [.25,.5), [.5,.75), [.75, 1]."""
    return np.digitize(energy, BAND_EDGES)


def band_visible(energy, energy_filter):
    """True where the energy's band bit is set in the 4-bit mask."""
    return ((int(energy_filter) >> band_index(energy)) & 1).astype(bool)


def contrast(energy):
    """pow 1.8 curve with a hard black cut below 0.02."""
    energy = np.asarray(energy, dtype=np.float32)
    return np.where(energy >= BLACK_CUT,
                    np.power(np.clip(energy, 0.0, None), CONTRAST_GAMMA),
                    0.0).astype(np.float32)


class VolumeRenderer:
    """Renders the active grid as an (H, W, 3) image.

    Args:
        width: output width in pixels
        height: output height in pixels
    """

    def __init__(self, width=512, height=512):
        self.width = 0
        self.height = 0
        self._local_dirs = None
        self.resize(width, height)

    def resize(self, width, height):
        """Rebuild the per-pixel camera-space ray directions."""
        width, height = int(width), int(height)
        if width < 1 or height < 1:
            raise ValueError(f"Render size must be positive, got {width}x{height}")
        self.width, self.height = width, height

        u = (np.arange(width, dtype=np.float64) + 0.5) / width
        v = (np.arange(height, dtype=np.float64) + 0.5) / height
        aspect = width / height
        nx = (u * 2.0 - 1.0) * aspect
        ny = v * 2.0 - 1.0
        gx, gy = np.meshgrid(nx, ny)          # (H, W)
        dirs = np.stack([gx, gy, np.ones_like(gx)], axis=-1)
        dirs /= np.linalg.norm(dirs, axis=-1, keepdims=True)
        self._local_dirs = dirs.reshape(-1, 3)

    def camera_rays(self, block):
        """World-space ray origin (3,) and directions (H*W, 3) for a block."""
        yaw, pitch, distance = (float(v) for v in block["misc"][:3])
        pan_x, pan_y = float(block["camera"][0]), float(block["camera"][1])

        dirs = rotate(self._local_dirs, yaw, pitch)
        cam_dir = rotate(np.array([0.0, 0.0, 1.0]), yaw, pitch)
        center = np.array([0.5 + pan_x, 0.5 + pan_y, 0.5])
        origin = center - cam_dir * distance
        return origin, dirs

    def march(self, field, block):
        """Maximum sampled energy along every pixel's ray.

        Returns:
            (max_energy, hit) as (H, W) float32 and bool arrays; pixels
            whose ray misses the cube hold 0 and False
        """
        steps = int(round(float(block["instab"][3])))
        steps = min(max(steps, 1), MAX_RAY_STEPS)
        size = field.shape[0]

        origin, dirs = self.camera_rays(block)
        t_min, t_max = intersect_unit_cube(origin, dirs)
        t_start = np.maximum(t_min, 0.0)
        hit = t_max >= t_start

        max_e = np.zeros(dirs.shape[0], dtype=np.float32)
        if hit.any():
            rd = dirs[hit]
            t0 = t_start[hit]
            dt = (t_max[hit] - t0) / steps
            best = np.zeros(rd.shape[0], dtype=np.float32)
            for i in range(steps):
                pos = origin + rd * (t0 + dt * i)[:, None]
                pos -= np.floor(pos)
                # Texel i is centred at (i + 0.5) / N
                coords = (pos * size - 0.5).T
                sample = map_coordinates(field, coords, order=1,
                                         mode="grid-wrap", prefilter=False)
                np.maximum(best, sample, out=best)
            max_e[hit] = best

        shape = (self.height, self.width)
        return max_e.reshape(shape), hit.reshape(shape)

    def render_float(self, field, block) -> np.ndarray:
        """(H, W, 3) float32 RGB in [0, 1]."""
        max_e, hit = self.march(field, block)
        palette_mode, energy_filter = unpack_filters(block["camera"][3])

        shown = hit & band_visible(max_e, energy_filter)
        rgb = apply_palette(contrast(max_e), get_palette_lut(palette_mode))
        rgb[~shown] = 0.0
        return rgb

    def render(self, field, block) -> np.ndarray:
        """(H, W, 3) uint8 RGB."""
        rgb = self.render_float(field, block)
        return (rgb * 255.0 + 0.5).astype(np.uint8)
