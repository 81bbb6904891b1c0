"""
Parameter block packing

One fixed 128-byte record shared by the update kernel and the renderer:
eight groups of four little-endian 32-bit scalars (16 bytes each, so
every group starts on a 16-byte boundary).

    dims     u32  (N, N, N, frame_index)
    inner    f32  (inner_radius, inner_strength, outer_radius, outer_strength)
    growth   f32  (growth_center, growth_width, growth_rate, suppression_factor)
    economy  f32  (global_average, decay_rate, diffusion_rate * cfl, fission_threshold)
    instab   f32  (instability_factor, growth_width_norm, neighbor_mode, ray_steps)
    misc     f32  (yaw_rad, pitch_rad, distance, seed)
    camera   f32  (pan_x, pan_y, time, palette_mode | energy_filter << 2)
    derived  f32  (width_eff, cfl_scale, diffusion_rate, width_scale)
"""

import math

import numpy as np

from .kernel import cfl_scale, effective_growth_width, snap_neighbor_mode, width_scale

PARAMS_DTYPE = np.dtype([
    ("dims", "<u4", (4,)),
    ("inner", "<f4", (4,)),
    ("growth", "<f4", (4,)),
    ("economy", "<f4", (4,)),
    ("instab", "<f4", (4,)),
    ("misc", "<f4", (4,)),
    ("camera", "<f4", (4,)),
    ("derived", "<f4", (4,)),
])

BLOCK_SIZE = PARAMS_DTYPE.itemsize   # 128


def pack_filters(palette_mode, energy_filter) -> int:
    """Fold palette (2 bits) and band mask (4 bits) into one integer."""
    return (int(palette_mode) & 0x3) | ((int(energy_filter) & 0xF) << 2)


def unpack_filters(packed):
    """Inverse of pack_filters: returns (palette_mode, energy_filter)."""
    packed = int(round(float(packed)))
    return packed & 0x3, (packed >> 2) & 0xF


def new_block():
    return np.zeros((), dtype=PARAMS_DTYPE)


def to_bytes(block) -> bytes:
    return np.asarray(block, dtype=PARAMS_DTYPE).tobytes()


def from_bytes(data):
    """Parse a 128-byte buffer back into a (writable) record."""
    if len(data) != BLOCK_SIZE:
        raise ValueError(f"Parameter block must be {BLOCK_SIZE} bytes, got {len(data)}")
    return np.frombuffer(data, dtype=PARAMS_DTYPE, count=1).reshape(()).copy()


class ParameterPacker:
    """Turns a parameter snapshot plus camera state into the record."""

    def pack(self, params, camera, grid_size, seed=0.0, time=0.0, frame_index=0):
        """Build the record for one frame.

        Args:
            params: dict from ParameterRecord.snapshot() (includes
                global_average)
            camera: dict from CameraState.snapshot()
            grid_size: current side length N
            seed: per-frame noise seed in [0, 1)
            time: simulation time in seconds (drives fission chaos)
            frame_index: frame counter, stored in dims[3]

        Returns:
            0-d structured array of dtype PARAMS_DTYPE
        """
        mode = snap_neighbor_mode(params["neighbor_mode"])
        cfl = cfl_scale(mode)
        scale = width_scale(float(params["inner_radius"]), float(params["inner_strength"]),
                            float(params["outer_radius"]), float(params["outer_strength"]))

        block = new_block()
        block["dims"] = (grid_size, grid_size, grid_size, int(frame_index) & 0xFFFFFFFF)
        block["inner"] = (params["inner_radius"], params["inner_strength"],
                          params["outer_radius"], params["outer_strength"])
        block["growth"] = (params["growth_center"], params["growth_width"],
                           params["growth_rate"], params["suppression_factor"])
        block["economy"] = (params.get("global_average", 0.0), params["decay_rate"],
                            params["diffusion_rate"] * cfl, params["fission_threshold"])
        block["instab"] = (params["instability_factor"], params["growth_width_norm"],
                           mode, params["ray_steps"])
        block["misc"] = (math.radians(camera["yaw"]), math.radians(camera["pitch"]),
                         camera["distance"], seed)
        block["camera"] = (camera["pan_x"], camera["pan_y"], time,
                           pack_filters(params["palette_mode"], params["energy_filter"]))
        block["derived"] = (effective_growth_width(params), cfl,
                            params["diffusion_rate"], scale)
        return block

    def unpack(self, block):
        """Recover host-side values from a record (or its bytes).

        Returns:
            (params, camera, frame) dicts; frame holds grid_size, seed,
            time and frame_index
        """
        if isinstance(block, (bytes, bytearray, memoryview)):
            block = from_bytes(bytes(block))

        inner = [float(v) for v in block["inner"]]
        growth = [float(v) for v in block["growth"]]
        economy = [float(v) for v in block["economy"]]
        instab = [float(v) for v in block["instab"]]
        misc = [float(v) for v in block["misc"]]
        cam = [float(v) for v in block["camera"]]
        derived = [float(v) for v in block["derived"]]
        dims = [int(v) for v in block["dims"]]
        palette, band_mask = unpack_filters(cam[3])

        params = {
            "inner_radius": inner[0],
            "inner_strength": inner[1],
            "outer_radius": inner[2],
            "outer_strength": inner[3],
            "growth_center": growth[0],
            "growth_width": growth[1],
            "growth_rate": growth[2],
            "suppression_factor": growth[3],
            "global_average": economy[0],
            "decay_rate": economy[1],
            "diffusion_rate": derived[2],
            "fission_threshold": economy[3],
            "instability_factor": instab[0],
            "growth_width_norm": instab[1],
            "neighbor_mode": int(round(instab[2])),
            "ray_steps": int(round(instab[3])),
            "palette_mode": palette,
            "energy_filter": band_mask,
        }
        camera = {
            "yaw": math.degrees(misc[0]),
            "pitch": math.degrees(misc[1]),
            "distance": misc[2],
            "pan_x": cam[0],
            "pan_y": cam[1],
        }
        frame = {
            "grid_size": dims[0],
            "frame_index": dims[3],
            "seed": misc[3],
            "time": cam[2],
            "width_eff": derived[0],
            "cfl_scale": derived[1],
            "scaled_diffusion": economy[2],
        }
        return params, camera, frame
