#!/usr/bin/env python3
"""
Tests for the ray-marched volume renderer and palettes.

Verifies:
1. Uniform field renders its value where rays hit the cube
2. Rays that miss the cube stay black
3. Band filter hides masked energy ranges
4. Palette tables stay in [0, 1]
"""

import numpy as np

from energy_life.camera import CameraState
from energy_life.colormaps import LUT_SIZE, PALETTES, apply_palette, get_palette_lut
from energy_life.packer import ParameterPacker
from energy_life.presets import DEFAULT_PARAMS
from energy_life.renderer import (
    VolumeRenderer, band_index, band_visible, contrast, intersect_unit_cube, rotate,
)


def _block(size, camera=None, **overrides):
    params = dict(DEFAULT_PARAMS)
    params.update(overrides)
    params["global_average"] = 0.0
    camera = camera or CameraState()
    return ParameterPacker().pack(params, camera.snapshot(), size)


def test_uniform_field():
    print("Testing uniform field render...")
    field = np.full((16, 16, 16), 0.5, dtype=np.float32)
    renderer = VolumeRenderer(32, 32)
    max_e, hit = renderer.march(field, _block(16))

    assert max_e.shape == (32, 32) and hit.shape == (32, 32)
    assert hit[16, 16], "Centre ray should hit the cube"
    assert not hit[0, 0], "Corner ray should miss from the default distance"
    assert np.allclose(max_e[hit], 0.5, atol=1e-5), "Hits should read the field value"
    assert (max_e[~hit] == 0.0).all()

    image = renderer.render(field, _block(16))
    assert image.dtype == np.uint8 and image.shape == (32, 32, 3)
    assert image[16, 16].sum() > 0, "Visible energy should not be black"
    assert (image[0, 0] == 0).all(), "Missed rays should be black"

    print("  ✓ Uniform field renders correctly")


def test_band_filter_hides_energy():
    print("Testing band filter...")
    field = np.full((16, 16, 16), 0.5, dtype=np.float32)
    renderer = VolumeRenderer(32, 32)

    # 0.5 falls in band 2; clear bit 2
    assert band_index(np.float32(0.5)) == 2
    hidden = renderer.render(field, _block(16, energy_filter=0b1011))
    assert (hidden == 0).all(), "Masked band should render black"

    shown = renderer.render(field, _block(16, energy_filter=0b0100))
    assert shown.sum() > 0

    energies = np.array([0.1, 0.3, 0.6, 0.9])
    assert band_visible(energies, 0b1001).tolist() == [True, False, False, True]

    print("  ✓ Band filter working correctly")


def test_contrast_curve():
    out = contrast(np.array([0.0, 0.019, 0.02, 0.5, 1.0]))
    assert out[0] == 0.0 and out[1] == 0.0, "Below 0.02 is cut to black"
    assert abs(out[3] - 0.5 ** 1.8) < 1e-6
    assert abs(out[4] - 1.0) < 1e-6


def test_camera_geometry():
    forward = np.array([0.0, 0.0, 1.0])
    turned = rotate(forward, np.pi / 2, 0.0)
    assert np.allclose(turned, [1.0, 0.0, 0.0], atol=1e-12)

    origin = np.array([0.5, 0.5, -1.7])
    t_min, t_max = intersect_unit_cube(origin, np.array([[0.0, 0.0, 1.0],
                                                         [0.0, 1.0, 0.0]]))
    assert abs(t_min[0] - 1.7) < 1e-9 and abs(t_max[0] - 2.7) < 1e-9
    assert t_max[1] < max(t_min[1], 0.0), "Ray parallel to the cube face should miss"


def test_camera_inside_volume():
    """Close zoom with pan still renders without NaNs."""
    field = np.random.default_rng(2).random((8, 8, 8)).astype(np.float32)
    cam = CameraState(yaw=37.0, pitch=120.0, distance=1.2, pan_x=0.5, pan_y=-0.5)
    image = VolumeRenderer(24, 16).render(field, _block(8, camera=cam, ray_steps=16))
    assert image.shape == (16, 24, 3)


def test_palette_luts():
    print("Testing palettes...")
    for mode in PALETTES:
        lut = get_palette_lut(mode)
        assert lut.shape == (LUT_SIZE, 3) and lut.dtype == np.float32
        assert lut.min() >= 0.0 and lut.max() <= 1.0
        # Brighter energy ends brighter than it starts
        assert lut[-1].sum() > lut[0].sum()
    assert (get_palette_lut(2)[0] == 0.0).all(), "Structure palette has a black floor"
    assert get_palette_lut(7) is get_palette_lut(0), "Unknown mode falls back to nebula"

    rgb = apply_palette(np.array([[0.0, 1.0]]), get_palette_lut(1))
    assert rgb.shape == (1, 2, 3)

    print("  ✓ Palettes in range")


if __name__ == "__main__":
    print("\n=== Testing Volume Renderer ===\n")

    test_uniform_field()
    test_band_filter_hides_energy()
    test_contrast_curve()
    test_camera_geometry()
    test_camera_inside_volume()
    test_palette_luts()

    print("\n✓ All tests passed!\n")
