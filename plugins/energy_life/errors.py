"""
Energy Life error types.

Every error raised on purpose by the simulation derives from
EnergyLifeError, so hosts can catch the whole family in one place.
"""


class EnergyLifeError(Exception):
    """Base class for simulation errors."""


class InvalidParameterError(EnergyLifeError, ValueError):
    """Unknown parameter name, non-finite value, or a choice outside its set."""


class UnsupportedGridSizeError(EnergyLifeError, ValueError):
    """Requested grid side is outside what the host can allocate."""


class DeviceError(EnergyLifeError, RuntimeError):
    """Allocation or compute failure inside a simulation pass.

    The loop pauses when one of these surfaces and waits for an explicit
    reinitialize() call.
    """
