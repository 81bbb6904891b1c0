"""
ParameterRecord - named simulation parameters

Holds the current value of every settable parameter plus the
global average fed back from the reduction. Values are clamped into
their domain on write; garbage (unknown names, NaN, choices outside
their set) is rejected instead of stored.
"""

import math

import numpy as np

from .errors import InvalidParameterError
from .presets import DEFAULT_PARAMS, PARAM_SPEC_BY_KEY


def to_float32(value, lo=None, hi=None) -> float:
    """Round value to the nearest float32 that stays inside [lo, hi].

    Stored values match what the packed block holds bit for bit, so a
    pack/unpack round trip returns them unchanged.
    """
    q = np.float32(value)
    if hi is not None and float(q) > hi:
        q = np.nextafter(q, np.float32(-np.inf))
    if lo is not None and float(q) < lo:
        q = np.nextafter(q, np.float32(np.inf))
    return float(q)


class ParameterRecord:
    """Mutable parameter set with per-field validation."""

    def __init__(self, values=None):
        self._values = {}
        self.global_average = 0.0
        self.update(DEFAULT_PARAMS)
        if values:
            self.update(values)

    def set(self, key, value):
        """Store a parameter value and return the value actually stored.

        Continuous fields are clamped to [min, max]; integer fields are
        rounded first. Choice fields must match one of their choices.

        Raises:
            InvalidParameterError: unknown key, non-numeric or non-finite
                value, choice not in set, or an attempt to write
                global_average directly.
        """
        if key == "global_average":
            raise InvalidParameterError(
                "global_average is written by the reduction, not by callers")
        spec = PARAM_SPEC_BY_KEY.get(key)
        if spec is None:
            raise InvalidParameterError(f"Unknown parameter: {key!r}")

        try:
            value = float(value)
        except (TypeError, ValueError):
            raise InvalidParameterError(
                f"{key} must be numeric, got {value!r}") from None
        if not math.isfinite(value):
            raise InvalidParameterError(f"{key} must be finite, got {value}")

        if "choices" in spec:
            if value not in spec["choices"]:
                raise InvalidParameterError(
                    f"{key} must be one of {spec['choices']}, got {value:g}")
            stored = int(value)
        elif spec.get("step") == 1:
            stored = int(min(max(round(value), spec["min"]), spec["max"]))
        else:
            stored = to_float32(min(max(value, spec["min"]), spec["max"]),
                                spec["min"], spec["max"])

        self._values[key] = stored
        return stored

    def get(self, key):
        if key == "global_average":
            return self.global_average
        if key not in self._values:
            raise InvalidParameterError(f"Unknown parameter: {key!r}")
        return self._values[key]

    def __getitem__(self, key):
        return self.get(key)

    def update(self, values):
        """Set several parameters; returns dict of stored values."""
        return {k: self.set(k, v) for k, v in values.items()}

    def update_global_average(self, value):
        """Overwrite the fed-back global average (reduction results only)."""
        value = float(value)
        if math.isfinite(value):
            self.global_average = to_float32(min(max(value, 0.0), 1.0), 0.0, 1.0)

    def snapshot(self):
        """Copy of all values including global_average."""
        snap = dict(self._values)
        snap["global_average"] = self.global_average
        return snap

    def as_dict(self):
        """Copy of the settable values only."""
        return dict(self._values)
