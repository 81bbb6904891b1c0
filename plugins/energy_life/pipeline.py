"""
Energy Life Pipeline - simulation as a video source

The simulation runs in a background thread, continuously rendering
frames. When the host asks for a frame, it grabs the latest one, so a
slow consumer never stalls the simulation and vice versa.

Runtime settings arrive as keyword arguments on every call and are
validated through PipelineConfig before they reach the simulation.
"""

import enum
import threading
import time
from typing import Optional

import numpy as np
import torch
from pydantic import BaseModel, ConfigDict, Field

from .presets import DEFAULT_GRID_SIZE, MAX_GRID_SIZE, PARAM_SPECS
from .simulation import EnergyLifeSimulation


class PresetEnum(str, enum.Enum):
    """Available presets. Hosts render enum fields as dropdowns."""
    default = "default"
    dense_stencil = "dense_stencil"
    structure = "structure"
    hot_core = "hot_core"
    quiet = "quiet"


class PipelineConfig(BaseModel):
    """Per-call runtime settings. Parameter keys pass through as extras."""

    model_config = ConfigDict(extra="allow", allow_inf_nan=False)

    preset: Optional[PresetEnum] = None
    speed: int = Field(default=1, ge=0, le=10)
    yaw: Optional[float] = None
    pitch: Optional[float] = Field(default=None, ge=-179.0, le=179.0)
    distance: Optional[float] = Field(default=None, ge=1.2, le=4.0)
    reseed: bool = False
    grid_size: Optional[int] = Field(default=None, ge=2, le=MAX_GRID_SIZE)

    def parameter_updates(self):
        """Extra kwargs that name simulation parameters."""
        keys = {spec["key"] for spec in PARAM_SPECS}
        extras = self.model_extra or {}
        return {k: v for k, v in extras.items() if k in keys}


# ── Background Simulation Thread ─────────────────────────────────────────

class _BackgroundSim(threading.Thread):
    """Background thread that keeps stepping and rendering the simulation.

    Keeps the latest frame available for the pipeline's __call__ to grab
    instantly.
    """

    def __init__(self, simulation, target_fps=20):
        super().__init__(daemon=True)
        self.simulation = simulation
        self._frame_lock = threading.Lock()
        self._latest_frame = None   # (H,W,3) float32 [0,1]
        self._running = True
        self._target_fps = target_fps

    def run(self):
        print("[EL] Background simulation thread started")
        while self._running:
            start = time.perf_counter()
            image = self.simulation.frame(start)
            if image is not None:
                frame = image.astype(np.float32) / 255.0
                with self._frame_lock:
                    self._latest_frame = frame
            if self.simulation.error is not None:
                print("[EL] Background simulation stopped on device error")
                break

            elapsed = time.perf_counter() - start
            sleep_time = (1.0 / self._target_fps) - elapsed
            if sleep_time > 0:
                time.sleep(sleep_time)

    def get_latest_frame(self):
        """Return the most recent frame (H,W,3) float32 [0,1] or None."""
        with self._frame_lock:
            return self._latest_frame

    def stop(self):
        self._running = False


class EnergyLifePipeline:
    """Video-source pipeline wrapping EnergyLifeSimulation.

    Args:
        grid_size: Simulation grid side
        render_size: Output frame side (square frames)
        preset: Initial preset key
        target_fps: Background render rate
        start: Launch the background thread immediately
    """

    def __init__(self, grid_size=DEFAULT_GRID_SIZE, render_size=256,
                 preset="default", target_fps=20, start=True, **kwargs):
        self.simulation = EnergyLifeSimulation(
            grid_size=grid_size,
            render_size=(render_size, render_size),
            preset=preset,
            **kwargs,
        )
        self.render_size = render_size
        self._bg_sim = _BackgroundSim(self.simulation, target_fps=target_fps)
        if start:
            self._bg_sim.start()

    def apply(self, config):
        """Push validated runtime settings into the simulation."""
        sim = self.simulation
        if config.preset is not None:
            preset = getattr(config.preset, "value", config.preset)
            if preset != sim.preset_key:
                sim.apply_preset(preset)
        if config.grid_size is not None and config.grid_size != sim.field.size:
            sim.resize_grid(config.grid_size)
        sim.set_speed(config.speed)
        if config.yaw is not None or config.pitch is not None:
            cam = sim.camera
            sim.set_camera_rotation(
                cam.yaw if config.yaw is None else config.yaw,
                cam.pitch if config.pitch is None else config.pitch,
            )
        if config.distance is not None:
            sim.set_camera_distance(config.distance)
        for key, val in config.parameter_updates().items():
            sim.set_parameter(key, val)
        if config.reseed:
            sim.reseed()

    def __call__(self, prompt: str = "", **kwargs) -> dict:
        """Apply runtime settings, return the latest frame.

        Args:
            prompt: Ignored (the simulation is the video source)
            **kwargs: PipelineConfig fields plus any parameter key

        Returns:
            {"video": tensor} where tensor is (1, H, W, 3) float32 [0,1]
        """
        self.apply(PipelineConfig(**kwargs))

        frame_np = self._bg_sim.get_latest_frame()
        if frame_np is None:
            # Background sim hasn't produced a frame yet; return black
            h = w = self.render_size
            frame_np = np.zeros((h, w, 3), dtype=np.float32)

        tensor = torch.from_numpy(frame_np.copy()).unsqueeze(0)
        return {"video": tensor}

    def stop(self):
        self._bg_sim.stop()
        if self._bg_sim.is_alive():
            self._bg_sim.join(timeout=2.0)
        self.simulation.close()
