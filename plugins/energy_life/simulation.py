"""
EnergyLifeSimulation - headless simulation core

Owns every piece of simulation state (parameters, camera, field buffers,
kernel, reduction, renderer) and runs them in a fixed order each frame.
No pygame dependency: the viewer and the pipeline both drive this class.

Usage:
    from energy_life.simulation import EnergyLifeSimulation
    sim = EnergyLifeSimulation(grid_size=64, render_size=(256, 256))
    frame = sim.frame()            # (H, W, 3) uint8
"""

import json
import math
import os
import threading
import time

import numpy as np
from PIL import Image

from .camera import CameraState
from .errors import DeviceError, InvalidParameterError
from .field import FieldBuffer
from .kernel import UpdateKernel
from .packer import ParameterPacker
from .params import ParameterRecord
from .presets import (
    DEFAULT_GRID_SIZE, GLOBAL_AVG_INTERVAL, PARAM_SPEC_BY_KEY,
    get_preset, preset_params,
)
from .reduction import ReductionPipeline
from .renderer import VolumeRenderer
from .state import CameraRecord, SimulationState

MAX_DT = 0.05                  # seconds; longer frames are treated as this long
FPS_REPORT_INTERVAL = 0.5      # seconds between on_fps callbacks


class EnergyLifeSimulation:
    """Headless 3D energy-life simulation with a ray-marched view.

    Every public method takes the context lock, so parameter, camera and
    grid changes from other threads land between frames, never inside one.

    Args:
        grid_size: Side of the cubic field (2..256)
        render_size: (width, height) of rendered frames
        preset: Initial preset key (see presets.PRESETS)
        noise_seed: None for fresh randomness each frame, or an int to
            make seeding and per-frame noise reproducible
        speed: Kernel sub-steps per frame (0 pauses stepping)
        reduction_interval: Sub-steps between global-average reductions
        on_fps: Optional callback receiving the measured frame rate; it
            runs on the frame thread with the context lock held
    """

    def __init__(self, grid_size=DEFAULT_GRID_SIZE, render_size=(512, 512),
                 preset="default", noise_seed=None, speed=1,
                 reduction_interval=GLOBAL_AVG_INTERVAL, on_fps=None,
                 clock=time.perf_counter):
        if get_preset(preset) is None:
            raise InvalidParameterError(f"Unknown preset: {preset!r}")

        self._lock = threading.RLock()
        self._clock = clock

        self.preset_key = preset
        self.params = ParameterRecord(preset_params(preset))
        self.camera = CameraState()
        self.noise_seed = noise_seed
        self.rng = np.random.default_rng(noise_seed)

        self.field = FieldBuffer(grid_size, rng=self.rng)
        self.kernel = UpdateKernel()
        self.reduction = ReductionPipeline(reduction_interval)
        self.packer = ParameterPacker()
        self.renderer = VolumeRenderer(*render_size)

        self.speed = 0
        self.set_speed(speed)

        self.sim_time = 0.0
        self.frame_index = 0
        self.generation = 0          # total kernel sub-steps
        self.last_image = None
        self.error = None

        # Telemetry
        self.fps = 0.0
        self.on_fps = on_fps
        self._fps_frames = 0
        self._fps_window_start = None
        self._last_time = None

        self._block = None
        self._upload()

    # -----------------------------------------------------------------------
    # Frame loop
    # -----------------------------------------------------------------------

    def frame(self, now=None) -> np.ndarray:
        """Run one frame and return the rendered (H, W, 3) uint8 image.

        Order: pan integration, reduction poll, kernel sub-steps (each
        followed by a swap), reduction trigger, parameter upload, render,
        telemetry. While paused by a device error the last image is
        returned unchanged.

        Args:
            now: Timestamp in seconds; defaults to the context clock
        """
        with self._lock:
            now = self._clock() if now is None else float(now)
            if not math.isfinite(now):
                raise InvalidParameterError(f"Frame timestamp must be finite, got {now}")
            if self._last_time is None:
                dt = 1.0 / 60.0
            else:
                dt = min(max(now - self._last_time, 0.0), MAX_DT)
            self._last_time = now

            if self.error is not None:
                return self.last_image
            try:
                image = self._advance(dt)
            except (DeviceError, MemoryError) as e:
                self._fail(e)
                return self.last_image

            self._tick_fps(now)
            return image

    def _advance(self, dt):
        self.camera.integrate_pan(dt)

        value = self.reduction.poll()
        if value is not None:
            self.params.update_global_average(value)

        if self.speed > 0:
            # Kernel reads the block uploaded at the end of the previous frame
            block = self._block
            for _ in range(self.speed):
                self.kernel.run(self.field.current, self.field.target, block)
                self.field.swap()
            self.generation += self.speed
            if self.reduction.note_substeps(self.speed):
                self.reduction.trigger(self.field.current)

        self.sim_time += dt
        self._upload()

        self.last_image = self.renderer.render(self.field.current, self._block)
        self.frame_index += 1
        return self.last_image

    def _upload(self):
        """Pack a consistent snapshot with a fresh seed into the live block."""
        self._block = self.packer.pack(
            self.params.snapshot(),
            self.camera.snapshot(),
            self.field.size,
            seed=float(self.rng.random()),
            time=self.sim_time,
            frame_index=self.frame_index,
        )

    def _tick_fps(self, now):
        if self._fps_window_start is None:
            self._fps_window_start = now
            self._fps_frames = 0
            return
        self._fps_frames += 1
        elapsed = now - self._fps_window_start
        if elapsed >= FPS_REPORT_INTERVAL:
            self.fps = self._fps_frames / elapsed
            self._fps_frames = 0
            self._fps_window_start = now
            if self.on_fps is not None:
                self.on_fps(self.fps)

    def _fail(self, err):
        if not isinstance(err, DeviceError):
            err = DeviceError(f"Out of memory: {err}")
        self.error = err
        print(f"[EL] Device error, simulation paused until reinitialize(): {err}")

    def run(self, frames, dt=1.0 / 60.0):
        """Headless helper: run frames on a synthetic clock, return last image."""
        with self._lock:
            now = self._last_time if self._last_time is not None else 0.0
        image = self.last_image
        for _ in range(int(frames)):
            now += dt
            image = self.frame(now)
        return image

    def sync_reduction(self, timeout=1.0):
        """Wait for an outstanding reduction and apply it. Returns the value."""
        value = self.reduction.wait(timeout)
        if value is not None:
            with self._lock:
                self.params.update_global_average(value)
        return value

    def reinitialize(self):
        """One explicit recovery attempt after a device error.

        Rebuilds the field at its current size and clears the error. If
        this also fails the error propagates to the caller.
        """
        with self._lock:
            size = self.field.size
            self.field = FieldBuffer(size, rng=self.rng)
            self.kernel = UpdateKernel()
            self.reduction.reset()
            self.params.update_global_average(0.0)
            self.error = None
            self._upload()
            print(f"[EL] Reinitialized at {size}^3")

    # -----------------------------------------------------------------------
    # Parameters
    # -----------------------------------------------------------------------

    def set_parameter(self, name, value):
        """Set one parameter; returns the (possibly clamped) stored value."""
        with self._lock:
            return self.params.set(name, value)

    def get_parameter(self, name):
        with self._lock:
            return self.params.get(name)

    def parameters(self):
        with self._lock:
            return self.params.snapshot()

    def apply_preset(self, key, reseed=True):
        preset = get_preset(key)
        if preset is None:
            raise InvalidParameterError(f"Unknown preset: {key!r}")
        with self._lock:
            self.params.update(preset_params(key))
            self.preset_key = key
            if reseed:
                self.reseed()

    def set_speed(self, multiplier):
        """Sub-steps per frame. 0 pauses stepping; rendering continues."""
        try:
            speed = float(multiplier)
        except (TypeError, ValueError):
            raise InvalidParameterError(f"Speed must be a number, got {multiplier!r}") from None
        if speed < 0 or not speed.is_integer():
            raise InvalidParameterError(f"Speed must be a non-negative integer, got {multiplier!r}")
        with self._lock:
            self.speed = int(speed)

    def set_reduction_interval(self, interval):
        with self._lock:
            self.reduction.interval = max(1, int(interval))

    def set_noise_seed(self, seed):
        """Reseed the context RNG (None for OS entropy)."""
        with self._lock:
            self.noise_seed = seed
            self.rng = np.random.default_rng(seed)

    # -----------------------------------------------------------------------
    # Field
    # -----------------------------------------------------------------------

    def resize_grid(self, size):
        """Reprovision both grids at a new size and reseed.

        UnsupportedGridSizeError leaves the current grid running.
        """
        with self._lock:
            self.field.resize(size, rng=self.rng)
            self._reset_reduction()
            print(f"[EL] Grid resized to {self.field.size}^3")

    def reseed(self):
        with self._lock:
            self.field.reseed(self.rng)
            self._reset_reduction()

    def _reset_reduction(self):
        self.reduction.reset()
        self.params.update_global_average(0.0)
        self._upload()

    # -----------------------------------------------------------------------
    # Camera
    # -----------------------------------------------------------------------

    def set_camera_rotation(self, yaw, pitch):
        with self._lock:
            self.camera.set_rotation(yaw, pitch)

    def adjust_rotation(self, dx, dy):
        with self._lock:
            self.camera.adjust_rotation(dx, dy)

    def set_camera_distance(self, distance):
        with self._lock:
            self.camera.set_distance(distance)

    def adjust_distance(self, delta):
        with self._lock:
            self.camera.adjust_distance(delta)

    def set_pan_key_state(self, direction, pressed):
        with self._lock:
            self.camera.set_pan_key(direction, pressed)

    def set_render_size(self, width, height):
        with self._lock:
            self.renderer.resize(width, height)

    # -----------------------------------------------------------------------
    # Persistence
    # -----------------------------------------------------------------------

    def export_state(self) -> SimulationState:
        with self._lock:
            return SimulationState(
                grid_size=self.field.size,
                params={k: float(v) for k, v in self.params.as_dict().items()},
                camera=CameraRecord(**self.camera.snapshot()),
            )

    def load_state(self, state):
        """Apply a SimulationState (or a dict of the same shape).

        Unknown parameter names are skipped with a warning. The grid is
        resized (and reseeded) only when the saved size differs.
        """
        if not isinstance(state, SimulationState):
            state = SimulationState.model_validate(state)
        with self._lock:
            for key, val in state.params.items():
                if key not in PARAM_SPEC_BY_KEY:
                    print(f"[EL] Skipping unknown parameter in saved state: {key}")
                    continue
                self.params.set(key, val)
            if state.camera is not None:
                cam = state.camera
                self.camera.set_rotation(cam.yaw, cam.pitch)
                self.camera.set_distance(cam.distance)
                self.camera.set_pan(cam.pan_x, cam.pan_y)
            if state.grid_size != self.field.size:
                self.resize_grid(state.grid_size)
            else:
                self._upload()

    def save_state(self, path):
        with open(path, "w") as f:
            f.write(self.export_state().to_json())
        return path

    def load_state_file(self, path):
        with open(path) as f:
            state = SimulationState.from_json(f.read())
        self.load_state(state)
        return state

    def export_snapshot(self, directory, stem=None):
        """Write <stem>.png (current view) and <stem>.json (state + stats).

        Returns:
            (png_path, json_path)
        """
        os.makedirs(directory, exist_ok=True)
        if stem is None:
            stem = f"energy_life_{time.strftime('%Y%m%d_%H%M%S')}"

        with self._lock:
            image = self.last_image
            if image is None:
                image = self.renderer.render(self.field.current, self._block)
            doc = self.export_state().model_dump()
            doc["stats"] = self.stats

        png_path = os.path.join(directory, f"{stem}.png")
        json_path = os.path.join(directory, f"{stem}.json")
        Image.fromarray(image).save(png_path)
        with open(json_path, "w") as f:
            json.dump(doc, f, indent=2)
        print(f"[EL] Snapshot saved: {png_path}")
        return png_path, json_path

    # -----------------------------------------------------------------------
    # Introspection
    # -----------------------------------------------------------------------

    @property
    def block(self):
        """The live packed parameter block."""
        return self._block

    @property
    def stats(self):
        grid = self.field.stats()
        return {
            "generation": self.generation,
            "frame": self.frame_index,
            "sim_time": self.sim_time,
            "grid_size": grid["size"],
            "speed": self.speed,
            "global_average": self.params.global_average,
            "mean": grid["mean"],
            "max": grid["max"],
            "alive_pct": grid["alive_pct"],
            "fps": self.fps,
            "reductions_dropped": self.reduction.dropped,
        }

    def close(self):
        self.reduction.close()
