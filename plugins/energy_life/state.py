"""
Saved simulation state

A JSON document of {version, grid_size, params, camera}. Validation
lives in pydantic models so bad files fail with a readable error before
anything touches the running simulation.
"""

from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from .camera import INITIAL_DISTANCE, MAX_DISTANCE, MIN_DISTANCE, PAN_LIMIT, PITCH_LIMIT
from .presets import DEFAULT_GRID_SIZE, MAX_GRID_SIZE

STATE_VERSION = 1


class CameraRecord(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    yaw: float = Field(default=0.0, description="Degrees around Y")
    pitch: float = Field(default=0.0, ge=-PITCH_LIMIT, le=PITCH_LIMIT)
    distance: float = Field(default=INITIAL_DISTANCE, ge=MIN_DISTANCE, le=MAX_DISTANCE)
    pan_x: float = Field(default=0.0, ge=-PAN_LIMIT, le=PAN_LIMIT)
    pan_y: float = Field(default=0.0, ge=-PAN_LIMIT, le=PAN_LIMIT)


class SimulationState(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    version: int = STATE_VERSION
    grid_size: int = Field(default=DEFAULT_GRID_SIZE, ge=2, le=MAX_GRID_SIZE)
    params: Dict[str, float] = Field(default_factory=dict)
    camera: Optional[CameraRecord] = None

    def to_json(self) -> str:
        return self.model_dump_json(indent=2)

    @classmethod
    def from_json(cls, text):
        return cls.model_validate_json(text)
