import enum
import typing

import numpy as np
from typing_extensions import TypeAlias


__all__ = [
    "NDimension",
    "OneDimension",
    "TwoDimensions",
    "ThreeDimensions",
    "NDimensionalGrid",
    "FloatOrArray",
    "FluidPhase",
    "GridKind",
    "Orientation",
    "OutputHandler",
    "SaturationUpdate",
]

T = typing.TypeVar("T")

NDimension = typing.TypeVar("NDimension", bound=typing.Tuple[int, ...])

ThreeDimensions: TypeAlias = typing.Tuple[int, int, int]
"""3D indices"""
TwoDimensions: TypeAlias = typing.Tuple[int, int]
"""2D indices"""
OneDimension: TypeAlias = typing.Tuple[int]
"""1D index"""

NDimensionalGrid = np.ndarray
"""Array of floats laid out over control volumes, faces or time levels."""
FloatOrArray = typing.Union[float, np.typing.NDArray[np.floating]]


class FluidPhase(enum.Enum):
    """Fluid phases of the black-oil model, in primary-variable order."""

    WATER = "water"
    GAS = "gas"
    OIL = "oil"


class Orientation(enum.Enum):
    """Coordinate axes of a Cartesian grid."""

    X = "x"
    Y = "y"
    Z = "z"


GridKind = typing.Literal["cell", "vertex"]
"""
Where unknowns live on a structured grid.

- "cell": cell-centred finite volumes (the transport grid)
- "vertex": vertex-centred control volumes of the box scheme
"""


class OutputHandler(typing.Protocol):
    """Anything that consumes model snapshots at the output cadence."""

    def __call__(self, state: typing.Any, /) -> None: ...


class SaturationUpdate(typing.Protocol):
    """Explicit saturation-update operator driven by the transport loop."""

    def __call__(
        self,
        problem: typing.Any,
        saturation: np.ndarray,
        time_step_size: float,
        time_step: int,
    ) -> typing.Any: ...
