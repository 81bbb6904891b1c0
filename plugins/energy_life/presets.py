"""
Energy Life Parameter Presets

Parameter definitions (slider-style specs with domains and defaults), the
named presets built on top of them, and the grid/speed choices offered by
the viewer and the pipeline.
"""

# Grid sides offered by the viewer; resize accepts any side in [2, MAX_GRID_SIZE]
GRID_SIZE_PRESETS = [32, 64, 96, 128, 256]
DEFAULT_GRID_SIZE = 64
MAX_GRID_SIZE = 256

SPEED_OPTIONS = [0, 1, 2, 5]

GLOBAL_AVG_INTERVAL = 2    # kernel sub-steps between reductions
SEED_ENERGY_MAX = 0.05     # reseed draws uniform energy in [0, this)


# Each entry matches the slider definition format used by the viewer:
#   {"key", "label", "section", "min", "max", "default", "fmt", "step"}
# Entries with "choices" accept only those values.
PARAM_SPECS = [
    # --- Kernel shape ---
    {"key": "inner_radius", "label": "Inner Radius", "section": "KERNEL",
     "min": 1.0, "max": 10.0, "default": 3.5, "fmt": ".1f", "step": 0.1},
    {"key": "inner_strength", "label": "Attraction", "section": "KERNEL",
     "min": 0.0, "max": 2.0, "default": 0.9, "fmt": ".2f", "step": 0.01},
    {"key": "outer_radius", "label": "Outer Radius", "section": "KERNEL",
     "min": 2.0, "max": 15.0, "default": 7.5, "fmt": ".1f", "step": 0.1},
    {"key": "outer_strength", "label": "Repulsion", "section": "KERNEL",
     "min": -2.0, "max": 0.0, "default": -0.4, "fmt": ".2f", "step": 0.01},

    # --- Growth ---
    {"key": "growth_center", "label": "Growth Center", "section": "GROWTH",
     "min": -2.0, "max": 2.0, "default": -0.17, "fmt": ".3f", "step": 0.001},
    {"key": "growth_width", "label": "Growth Width", "section": "GROWTH",
     "min": 0.0001, "max": 1.0, "default": 0.0183, "fmt": ".4f", "step": 0.0001},
    {"key": "growth_rate", "label": "Growth Rate", "section": "GROWTH",
     "min": 0.0, "max": 1.0, "default": 0.607, "fmt": ".3f", "step": 0.001},
    {"key": "suppression_factor", "label": "Suppression", "section": "GROWTH",
     "min": 0.0, "max": 2.0, "default": 1.0, "fmt": ".2f", "step": 0.01},
    {"key": "growth_width_norm", "label": "Width Norm", "section": "GROWTH",
     "min": 0.0, "max": 2.0, "default": 0.0, "fmt": ".2f", "step": 0.01},

    # --- Energy economy ---
    {"key": "decay_rate", "label": "Metabolism", "section": "ECONOMY",
     "min": 0.0, "max": 1.0, "default": 0.378, "fmt": ".3f", "step": 0.001},
    {"key": "diffusion_rate", "label": "Diffusion", "section": "ECONOMY",
     "min": 0.0, "max": 1.0, "default": 0.333, "fmt": ".3f", "step": 0.001},
    {"key": "fission_threshold", "label": "Fission", "section": "ECONOMY",
     "min": 0.5, "max": 0.95, "default": 0.796, "fmt": ".3f", "step": 0.001},
    {"key": "instability_factor", "label": "Instability", "section": "ECONOMY",
     "min": 0.0, "max": 3.0, "default": 1.5, "fmt": ".2f", "step": 0.01},
    {"key": "neighbor_mode", "label": "Neighbors", "section": "ECONOMY",
     "min": 6, "max": 26, "default": 6, "fmt": ".0f", "step": 1,
     "choices": (6, 18, 26)},

    # --- Rendering ---
    {"key": "ray_steps", "label": "Ray Steps", "section": "RENDER",
     "min": 16, "max": 256, "default": 64, "fmt": ".0f", "step": 1},
    {"key": "palette_mode", "label": "Palette", "section": "RENDER",
     "min": 0, "max": 2, "default": 0, "fmt": ".0f", "step": 1,
     "choices": (0, 1, 2)},
    {"key": "energy_filter", "label": "Energy Bands", "section": "RENDER",
     "min": 0, "max": 15, "default": 15, "fmt": ".0f", "step": 1},
]

PARAM_SPEC_BY_KEY = {spec["key"]: spec for spec in PARAM_SPECS}

DEFAULT_PARAMS = {spec["key"]: spec["default"] for spec in PARAM_SPECS}


PRESETS = {
    "default": {
        "name": "Energy Life",
        "description": "Balanced attraction/repulsion with 6-neighbor diffusion",
        "params": {},
    },
    "dense_stencil": {
        "name": "Dense Stencil",
        "description": "26-neighbor diffusion, softer rounder structures",
        "params": {"neighbor_mode": 26, "diffusion_rate": 0.45},
    },
    "structure": {
        "name": "Structure",
        "description": "Narrow growth band with width normalization, high-contrast palette",
        "params": {"growth_width_norm": 1.0, "palette_mode": 2,
                   "ray_steps": 96},
    },
    "hot_core": {
        "name": "Hot Core",
        "description": "Low fission threshold, cells split and scatter",
        "params": {"fission_threshold": 0.62, "instability_factor": 2.2,
                   "palette_mode": 1},
    },
    "quiet": {
        "name": "Quiet",
        "description": "Slow metabolism and weak repulsion, long-lived blobs",
        "params": {"decay_rate": 0.2, "outer_strength": -0.2,
                   "growth_rate": 0.35, "neighbor_mode": 18},
    },
}

PRESET_ORDER = ["default", "dense_stencil", "structure", "hot_core", "quiet"]


def get_preset(name):
    """Get a preset by name. Returns None if not found."""
    return PRESETS.get(name)


def preset_params(name):
    """Full parameter dict for a preset (defaults overlaid with its values)."""
    preset = PRESETS[name]
    params = dict(DEFAULT_PARAMS)
    params.update(preset["params"])
    return params


def list_presets():
    """Return list of (key, name, description) for presets."""
    return [(k, PRESETS[k]["name"], PRESETS[k]["description"])
            for k in PRESET_ORDER if k in PRESETS]
