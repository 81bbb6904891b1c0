"""
Orbit camera state

Yaw/pitch in degrees, distance from the volume centre and a pan offset
that slides the orbit centre inside the unit cube. Held pan keys are
integrated once per frame with a capped delta time.
"""

import math

import numpy as np

from .errors import InvalidParameterError
from .params import to_float32

INITIAL_DISTANCE = 2.2
MIN_DISTANCE = 1.2
MAX_DISTANCE = 4.0
PITCH_LIMIT = 179.0
PAN_LIMIT = 0.5
PAN_SPEED = 0.35             # units per second
ROTATE_SENSITIVITY = 0.004   # radians per input unit

PAN_KEYS = ("forward", "back", "left", "right")
_PAN_ALIASES = {"w": "forward", "s": "back", "a": "left", "d": "right",
                "up": "forward", "down": "back"}


def _clamp(v, lo, hi):
    return lo if v < lo else hi if v > hi else v


def _finite(name, value):
    try:
        value = float(value)
    except (TypeError, ValueError):
        raise InvalidParameterError(f"Camera {name} must be numeric, got {value!r}") from None
    if not math.isfinite(value):
        raise InvalidParameterError(f"Camera {name} must be finite, got {value}")
    return value


def _snap_degrees(deg, lo, hi):
    """Nearest angle whose radians are an exact float32, kept in [lo, hi]."""
    rad = np.float32(math.radians(deg))
    while math.degrees(float(rad)) > hi:
        rad = np.nextafter(rad, np.float32(-np.inf))
    while math.degrees(float(rad)) < lo:
        rad = np.nextafter(rad, np.float32(np.inf))
    return math.degrees(float(rad))


class CameraState:
    """Camera pose plus held pan keys."""

    def __init__(self, yaw=0.0, pitch=0.0, distance=INITIAL_DISTANCE,
                 pan_x=0.0, pan_y=0.0):
        self.yaw = 0.0
        self.pitch = 0.0
        self.distance = INITIAL_DISTANCE
        self.pan_x = 0.0
        self.pan_y = 0.0
        self.keys = {k: False for k in PAN_KEYS}
        self.set_rotation(yaw, pitch)
        self.set_distance(distance)
        self.set_pan(pan_x, pan_y)

    # ── Rotation / zoom ──────────────────────────────────────────────────

    def set_rotation(self, yaw, pitch):
        """Absolute yaw/pitch in degrees; pitch clamped to +-179.

        Both angles are stored so their radians are exact float32 values,
        which is what the packed block carries.

        Raises:
            InvalidParameterError: non-numeric or non-finite angle
        """
        yaw = _finite("yaw", yaw) % 360.0
        pitch = _clamp(_finite("pitch", pitch), -PITCH_LIMIT, PITCH_LIMIT)
        yaw = _snap_degrees(yaw, 0.0, math.inf)
        self.yaw = 0.0 if yaw >= 360.0 else yaw
        self.pitch = _snap_degrees(pitch, -PITCH_LIMIT, PITCH_LIMIT)

    def adjust_rotation(self, dx, dy):
        """Rotate from a pointer delta (pixels or any input units)."""
        dx, dy = _finite("dx", dx), _finite("dy", dy)
        self.set_rotation(
            self.yaw + math.degrees(dx * ROTATE_SENSITIVITY),
            self.pitch + math.degrees(dy * ROTATE_SENSITIVITY),
        )

    def set_distance(self, distance):
        distance = _clamp(_finite("distance", distance), MIN_DISTANCE, MAX_DISTANCE)
        self.distance = to_float32(distance, MIN_DISTANCE, MAX_DISTANCE)

    def adjust_distance(self, delta):
        """Zoom by a wheel delta. Positive delta moves away.

        Scales multiplicatively so zoom feels the same at any distance.
        """
        step = _clamp(_finite("zoom delta", delta) * 0.1, -50.0, 50.0)
        self.set_distance(self.distance * math.exp(step))

    # ── Pan ──────────────────────────────────────────────────────────────

    def set_pan(self, pan_x, pan_y):
        pan_x = _clamp(_finite("pan_x", pan_x), -PAN_LIMIT, PAN_LIMIT)
        pan_y = _clamp(_finite("pan_y", pan_y), -PAN_LIMIT, PAN_LIMIT)
        self.pan_x = to_float32(pan_x, -PAN_LIMIT, PAN_LIMIT)
        self.pan_y = to_float32(pan_y, -PAN_LIMIT, PAN_LIMIT)

    def set_pan_key(self, direction, pressed):
        key = _PAN_ALIASES.get(str(direction).lower(), str(direction).lower())
        if key not in self.keys:
            raise InvalidParameterError(f"Unknown pan direction: {direction!r}")
        self.keys[key] = bool(pressed)

    def integrate_pan(self, dt):
        """Move the pan offset from held keys over dt seconds.

        Forward/back follow the camera's yaw heading projected on the pan
        plane; left/right are perpendicular to it.
        """
        dt = _finite("dt", dt)
        mx = (1.0 if self.keys["right"] else 0.0) - (1.0 if self.keys["left"] else 0.0)
        mz = (1.0 if self.keys["forward"] else 0.0) - (1.0 if self.keys["back"] else 0.0)
        if mx == 0.0 and mz == 0.0:
            return False

        yaw = math.radians(self.yaw)
        fx, fy = math.sin(yaw), math.cos(yaw)
        rx, ry = fy, -fx
        step = PAN_SPEED * dt
        self.set_pan(self.pan_x + (fx * mz + rx * mx) * step,
                     self.pan_y + (fy * mz + ry * mx) * step)
        return True

    # ── Snapshot ─────────────────────────────────────────────────────────

    def snapshot(self):
        return {
            "yaw": self.yaw,
            "pitch": self.pitch,
            "distance": self.distance,
            "pan_x": self.pan_x,
            "pan_y": self.pan_y,
        }
