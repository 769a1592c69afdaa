"""
Error kinds raised by the generation pipeline.

Every error carries a ``context`` dict naming the offending site/cell ids or
parameter values, so callers can retry with corrected input.
"""

from typing import Any


class WorldgenError(Exception):
    """Base class for all generation errors."""

    def __init__(self, message: str, **context: Any):
        self.message = message
        self.context = context
        super().__init__(message)

    def __str__(self) -> str:
        if not self.context:
            return self.message
        details = ", ".join(f"{key}={value!r}" for key, value in sorted(self.context.items()))
        return f"{self.message} ({details})"


class InvalidParameter(WorldgenError, ValueError):
    """Malformed configuration (sampler bounds/count, raster resolution)."""


class DegenerateInput(WorldgenError):
    """Geometric input insufficient for triangulation."""


class GeometryError(WorldgenError):
    """Numerical instability produced a degenerate cell."""


class IllConditioned(WorldgenError):
    """Interpolation system is singular or near-singular."""


class CycleDetected(WorldgenError):
    """The downslope relation is not acyclic."""


class AttributeMissing(WorldgenError, RuntimeError):
    """A stage was invoked on a cell that has not reached the required state.

    This is a programming error, not a user-recoverable condition.
    """
