"""
Energy Palettes for Volume Rendering

Maps contrast-adjusted energy [0, 1] to RGB floats. Each palette is a
piecewise-linear ramp between color stops plus an optional sparkle
ripple at the top of the range; palettes are baked into (1024, 3)
float32 lookup tables for the renderer.
"""

import numpy as np

LUT_SIZE = 1024


def _ramp(energy, segments):
    """
    Evaluate a piecewise-linear ramp.

    Args:
        energy: float array
        segments: list of (start, end, color_a, color_b); each segment
            covers [start, end) and the last one also takes everything above

    Returns:
        energy.shape + (3,) float32 array
    """
    e = np.asarray(energy, dtype=np.float32)
    out = np.zeros(e.shape + (3,), dtype=np.float32)
    last = len(segments) - 1
    for i, (start, end, ca, cb) in enumerate(segments):
        mask = e >= start
        if i < last:
            mask &= e < end
        if not mask.any():
            continue
        t = np.clip((e[mask] - start) / (end - start), 0.0, 1.0)[:, None]
        ca = np.asarray(ca, dtype=np.float32)
        cb = np.asarray(cb, dtype=np.float32)
        out[mask] = ca + (cb - ca) * t
    return out


def _sparkle(color, energy, above, tint, freq):
    e = np.asarray(energy, dtype=np.float32)
    wave = np.sin(e * freq)[..., None] * np.asarray(tint, dtype=np.float32)
    return color + np.where((e >= above)[..., None], wave, 0.0)


# --- Palette Definitions ---

def nebula(energy):
    """Deep blue through purple to near white, sparkling at the top."""
    color = _ramp(energy, [
        (0.00, 0.10, (0.01, 0.005, 0.05), (0.05, 0.02, 0.15)),
        (0.10, 0.30, (0.05, 0.02, 0.15), (0.12, 0.08, 0.35)),
        (0.30, 0.50, (0.12, 0.08, 0.35), (0.25, 0.12, 0.55)),
        (0.50, 0.70, (0.25, 0.12, 0.55), (0.45, 0.18, 0.75)),
        (0.70, 0.85, (0.45, 0.18, 0.75), (0.72, 0.35, 0.95)),
        (0.85, 1.00, (0.72, 0.35, 0.95), (0.95, 0.90, 1.00)),
    ])
    color = _sparkle(color, energy, 0.85, (0.08, 0.04, 0.10), 40.0)
    return color + np.asarray(energy, dtype=np.float32)[..., None] * 0.08


def spectrum(energy):
    """Blue -> cyan -> green -> yellow -> white, like the flat 2D display."""
    color = _ramp(energy, [
        (0.00, 0.10, (0.0, 0.0, 0.0), (0.0, 0.0, 0.2)),
        (0.10, 0.30, (0.0, 0.0, 0.2), (0.0, 0.3, 0.8)),
        (0.30, 0.50, (0.0, 0.3, 0.8), (0.0, 0.8, 1.0)),
        (0.50, 0.70, (0.0, 0.8, 1.0), (0.2, 1.0, 0.3)),
        (0.70, 0.85, (0.2, 1.0, 0.3), (1.0, 1.0, 0.0)),
        (0.85, 1.00, (1.0, 1.0, 0.0), (1.0, 1.0, 1.0)),
    ])
    color = _sparkle(color, energy, 0.85, (0.2, 0.2, 0.2), 50.0)
    return color + np.asarray(energy, dtype=np.float32)[..., None] * 0.15


def structure(energy):
    """High contrast: black floor, navy, muted teal, amber, warm white."""
    color = _ramp(energy, [
        (0.00, 0.02, (0.0, 0.0, 0.0), (0.0, 0.0, 0.0)),
        (0.02, 0.20, (0.03, 0.05, 0.08), (0.05, 0.08, 0.12)),
        (0.20, 0.40, (0.10, 0.18, 0.22), (0.16, 0.32, 0.35)),
        (0.40, 0.65, (0.16, 0.32, 0.35), (0.18, 0.36, 0.38)),
        (0.65, 0.85, (0.65, 0.45, 0.18), (0.88, 0.72, 0.35)),
        (0.85, 1.00, (0.88, 0.72, 0.35), (0.95, 0.93, 0.88)),
    ])
    return _sparkle(color, energy, 0.85, (0.06, 0.05, 0.04), 45.0)


# Registry, indexed by palette_mode
PALETTES = {
    0: ("nebula", nebula),
    1: ("spectrum", spectrum),
    2: ("structure", structure),
}

PALETTE_NAMES = [PALETTES[k][0] for k in sorted(PALETTES)]

_LUT_CACHE = {}


def build_lut(palette_fn, n=LUT_SIZE):
    """Sample a palette function into an (n, 3) float32 table."""
    samples = np.linspace(0.0, 1.0, n, dtype=np.float32)
    return np.clip(palette_fn(samples), 0.0, 1.0).astype(np.float32)


def get_palette_lut(mode):
    """LUT for a palette_mode (0, 1 or 2); cached after first build."""
    mode = int(mode)
    if mode not in PALETTES:
        mode = 0
    if mode not in _LUT_CACHE:
        _LUT_CACHE[mode] = build_lut(PALETTES[mode][1])
    return _LUT_CACHE[mode]


def apply_palette(energy, lut):
    """
    Apply a palette LUT to an energy image.

    Args:
        energy: float array with values in [0, 1]
        lut: (n, 3) float32 lookup table

    Returns:
        energy.shape + (3,) float32 RGB in [0, 1]
    """
    n = lut.shape[0]
    indices = (np.clip(energy, 0, 1) * (n - 1) + 0.5).astype(np.intp)
    return lut[indices]
