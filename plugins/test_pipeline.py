#!/usr/bin/env python3
"""
Tests for the video-source pipeline.

Verifies:
1. Black frame before the background thread has rendered
2. Runtime kwargs reach the simulation (and bad ones are rejected)
3. Background thread produces (1, H, W, 3) float frames
"""

import time

import torch
from pydantic import ValidationError

from energy_life.pipeline import EnergyLifePipeline, PipelineConfig


def test_black_frame_and_kwargs():
    print("Testing pipeline kwargs...")
    pipe = EnergyLifePipeline(grid_size=8, render_size=16, start=False, noise_seed=0)
    try:
        out = pipe(speed=0, yaw=45.0, decay_rate=0.3, neighbor_mode=18)
        video = out["video"]
        assert tuple(video.shape) == (1, 16, 16, 3)
        assert video.dtype == torch.float32
        assert float(video.abs().sum()) == 0.0, "No frame yet should be black"

        sim = pipe.simulation
        assert sim.speed == 0
        assert abs(sim.camera.yaw - 45.0) < 1e-4
        assert abs(sim.get_parameter("decay_rate") - 0.3) < 1e-6
        assert sim.get_parameter("neighbor_mode") == 18

        pipe(preset="quiet", grid_size=12)
        assert sim.preset_key == "quiet" and sim.field.size == 12

        for bad in ({"speed": -1}, {"distance": 9.0}, {"preset": "nope"}):
            try:
                pipe(**bad)
            except ValidationError:
                pass
            else:
                raise AssertionError(f"{bad} should fail validation")
    finally:
        pipe.stop()

    print("  ✓ Pipeline kwargs applied")


def test_parameter_extras_filtered():
    config = PipelineConfig(decay_rate=0.5, unrelated="x")
    assert config.parameter_updates() == {"decay_rate": 0.5}


def test_background_frames():
    print("Testing background thread...")
    pipe = EnergyLifePipeline(grid_size=8, render_size=16, target_fps=60, noise_seed=3)
    try:
        deadline = time.time() + 10.0
        while pipe._bg_sim.get_latest_frame() is None and time.time() < deadline:
            time.sleep(0.01)
        assert pipe._bg_sim.get_latest_frame() is not None, "No frame within 10s"

        video = pipe()["video"]
        assert tuple(video.shape) == (1, 16, 16, 3)
        assert float(video.min()) >= 0.0 and float(video.max()) <= 1.0
    finally:
        pipe.stop()
    assert not pipe._bg_sim.is_alive()

    print("  ✓ Background thread renders frames")


if __name__ == "__main__":
    print("\n=== Testing Pipeline ===\n")

    test_black_frame_and_kwargs()
    test_parameter_extras_filtered()
    test_background_frames()

    print("\n✓ All tests passed!\n")
