#!/usr/bin/env python3
"""
Tests for the energy-life update kernel.

Verifies:
1. Single-cell diffusion on a 4x4x4 torus
2. FFT potential matches a direct wrapped neighbor sum
3. Toroidal wrap (translation equivariance)
4. Energy stays in [0, 1] under aggressive parameters
5. Growth-width normalization, CFL scales, hash noise range
"""

import warnings

import numpy as np

from energy_life.camera import CameraState
from energy_life.kernel import (
    UpdateKernel, cfl_scale, effective_growth_width, hash_noise,
    kernel_weights, laplacian, width_scale,
)
from energy_life.packer import ParameterPacker
from energy_life.presets import DEFAULT_PARAMS


def _block(size, seed=0.0, time=0.0, **overrides):
    params = dict(DEFAULT_PARAMS)
    params.update(overrides)
    params.setdefault("global_average", 0.0)
    return ParameterPacker().pack(params, CameraState().snapshot(), size,
                                  seed=seed, time=time)


def test_single_cell_diffusion():
    """One hot cell spreads to its six face neighbors."""
    print("Testing single-cell diffusion...")
    src = np.zeros((4, 4, 4), dtype=np.float32)
    src[0, 0, 0] = 1.0
    dst = np.zeros_like(src)

    # Diffusion term alone at the source cell
    diffusion = laplacian(src, 6) * 1.0 * cfl_scale(6)
    expected = -6 * 1 * 1.0 * cfl_scale(6)
    assert abs(diffusion[0, 0, 0] - expected) < 1e-6, f"Source diffusion: {diffusion[0, 0, 0]}"

    block = _block(4, diffusion_rate=1.0, growth_rate=0.0, decay_rate=0.0)
    UpdateKernel().run(src, dst, block)

    for idx in [(1, 0, 0), (3, 0, 0), (0, 1, 0), (0, 3, 0), (0, 0, 1), (0, 0, 3)]:
        assert dst[idx] > 0.1, f"Face neighbor {idx} should gain energy: {dst[idx]}"
    # Not adjacent: only hash noise reaches it
    assert dst[2, 0, 0] < 0.001, f"Distance-2 cell should stay ~0: {dst[2, 0, 0]}"
    # Source gave everything away (noise aside)
    assert dst[0, 0, 0] < 0.001, f"Source should be drained: {dst[0, 0, 0]}"

    print("  ✓ Single-cell diffusion working correctly")


def test_potential_matches_direct_sum():
    """FFT potential equals the wrapped neighbor sum."""
    print("Testing potential against direct sum...")
    rng = np.random.default_rng(3)
    field = rng.random((6, 6, 6)).astype(np.float32)
    inner_r, inner_s, outer_r, outer_s = 1.5, 0.9, 3.0, -0.4

    weights, reach = kernel_weights(inner_r, inner_s, outer_r, outer_s)
    direct = np.zeros(field.shape, dtype=np.float64)
    for i in range(weights.shape[0]):
        for j in range(weights.shape[1]):
            for k in range(weights.shape[2]):
                w = weights[i, j, k]
                if w == 0.0:
                    continue
                off = (i - reach, j - reach, k - reach)
                # rolled[x] = field[x + off]
                direct += w * np.roll(field, (-off[0], -off[1], -off[2]), axis=(0, 1, 2))
    direct /= np.abs(weights).sum()

    block = _block(6, inner_radius=inner_r, inner_strength=inner_s,
                   outer_radius=outer_r, outer_strength=outer_s)
    pot = UpdateKernel().potential(field, block)
    assert np.allclose(pot, direct, atol=1e-5), \
        f"Max deviation {np.abs(pot - direct).max()}"

    print("  ✓ Potential matches direct sum")


def test_toroidal_wrap():
    """Shifting the field shifts the potential: edges wrap, no zero padding."""
    print("Testing toroidal wrap...")
    field = np.zeros((8, 8, 8), dtype=np.float32)
    field[7, 3, 3] = 1.0    # on the +X face
    kernel = UpdateKernel()
    block = _block(8)

    pot = kernel.potential(field, block)
    # Cell across the +X edge sees the same neighbor as the cell inside
    assert abs(pot[0, 3, 3] - pot[6, 3, 3]) < 1e-6, "Wrap across +X edge should mirror"

    shifted = np.roll(field, (2, 5, 1), axis=(0, 1, 2))
    pot_shifted = kernel.potential(shifted, block)
    assert np.allclose(pot_shifted, np.roll(pot, (2, 5, 1), axis=(0, 1, 2)), atol=1e-6)

    print("  ✓ Toroidal wrap working correctly")


def test_energy_bounds():
    """Energy stays in [0, 1] after every sub-step."""
    print("Testing energy bounds...")
    rng = np.random.default_rng(7)
    a = rng.random((12, 12, 12)).astype(np.float32)
    b = np.zeros_like(a)
    kernel = UpdateKernel()
    block = _block(12, growth_rate=1.0, diffusion_rate=1.0, neighbor_mode=26,
                   instability_factor=3.0, fission_threshold=0.5, seed=0.42)
    assert abs(float(block["misc"][3]) - 0.42) < 1e-6, "Seed reaches the block"
    for step in range(4):
        kernel.run(a, b, block)
        assert b.min() >= 0.0 and b.max() <= 1.0, f"Out of range at step {step}"
        a, b = b, a

    print("  ✓ Energy bounds hold")


def test_malformed_parameters_do_not_crash():
    print("Testing malformed parameters...")
    src = np.full((6, 6, 6), 0.3, dtype=np.float32)
    dst = np.zeros_like(src)
    block = _block(6)
    block["inner"] = (0.0, 1.0, 0.0, -1.0)        # outer <= inner, zero radius
    block["derived"][0] = 0.0                      # zero width
    block["economy"][3] = 1.0                      # threshold at the ceiling
    UpdateKernel().run(src, dst, block)
    assert np.isfinite(dst).all(), "Kernel output must stay finite"

    print("  ✓ Malformed parameters clamped")


def test_aliased_grids_rejected():
    src = np.zeros((4, 4, 4), dtype=np.float32)
    try:
        UpdateKernel().run(src, src, _block(4))
    except ValueError:
        pass
    else:
        raise AssertionError("Running in place should be rejected")


def test_fft_without_numpy_warnings():
    src = np.random.default_rng(3).random((6, 6, 6)).astype(np.float32)
    dst = np.zeros_like(src)
    with warnings.catch_warnings():
        warnings.simplefilter("error")
        UpdateKernel().run(src, dst, _block(6))
    assert np.isfinite(dst).all()


def test_growth_width_norm():
    print("Testing growth width normalization...")
    params = dict(DEFAULT_PARAMS, inner_radius=2.0, outer_radius=12.0,
                  growth_width_norm=0.0)
    assert effective_growth_width(params) == params["growth_width"], \
        "norm=0 must leave growth_width untouched"

    # Default kernel is the reference shape, scale 1
    defaults = dict(DEFAULT_PARAMS, growth_width_norm=1.0)
    assert abs(effective_growth_width(defaults) - defaults["growth_width"]) < 1e-9

    scale = width_scale(2.0, 0.9, 12.0, -0.4)
    assert 0.25 <= scale <= 4.0
    params["growth_width_norm"] = 1.0
    assert abs(effective_growth_width(params) - params["growth_width"] * scale) < 1e-9

    print("  ✓ Growth width normalization working correctly")


def test_cfl_scales():
    assert abs(cfl_scale(6) - 1.0 / 6.0) < 1e-12
    assert cfl_scale(26) < cfl_scale(18) < cfl_scale(6)
    # Uniform field has zero Laplacian under every stencil
    flat = np.full((5, 5, 5), 0.4, dtype=np.float32)
    for mode in (6, 18, 26):
        assert np.abs(laplacian(flat, mode)).max() < 1e-5


def test_hash_noise():
    print("Testing hash noise...")
    n1 = hash_noise(8, 0.37)
    n2 = hash_noise(8, 0.37)
    n3 = hash_noise(8, 0.91)
    assert n1.shape == (8, 8, 8)
    assert n1.min() >= -0.0005 and n1.max() < 0.0005, "Noise must stay within +-0.0005"
    assert np.array_equal(n1, n2), "Same seed must give the same noise"
    assert not np.array_equal(n1, n3), "Different seeds should differ"
    assert n1.std() > 0.0001, "Noise should not be constant"

    print("  ✓ Hash noise working correctly")


if __name__ == "__main__":
    print("\n=== Testing Update Kernel ===\n")

    test_single_cell_diffusion()
    test_potential_matches_direct_sum()
    test_toroidal_wrap()
    test_energy_bounds()
    test_malformed_parameters_do_not_crash()
    test_aliased_grids_rejected()
    test_fft_without_numpy_warnings()
    test_growth_width_norm()
    test_cfl_scales()
    test_hash_noise()

    print("\n✓ All tests passed!\n")
