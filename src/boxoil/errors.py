__all__ = [
    "BoxOilError",
    "ValidationError",
    "InvariantViolation",
    "ComputationError",
    "SingularMatrixError",
    "DiscretizationError",
    "SimulationError",
    "TimingError",
    "StorageError",
]


class BoxOilError(Exception):
    """Base class for all boxoil errors."""

    pass


class ValidationError(BoxOilError, ValueError):
    """Raised when input data or configuration fails validation checks."""

    pass


class InvariantViolation(BoxOilError, AssertionError):
    """
    Raised when an internal index invariant is broken.

    This always indicates a programming defect (e.g. asking for the name of a
    primary variable slot that does not exist) and is never retried.
    """

    pass


class ComputationError(BoxOilError):
    """Raised when there is an error during numerical computations."""

    pass


class SingularMatrixError(ComputationError):
    """Raised when a local matrix is singular below the configured threshold."""

    pass


class DiscretizationError(ComputationError):
    """Raised when a collaborator returns a non-physical value during assembly."""

    pass


class SimulationError(BoxOilError):
    """Base class for simulation-related errors."""

    pass


class TimingError(SimulationError):
    """Raised when the time step cannot be reduced any further."""

    pass


class StorageError(BoxOilError):
    """Raised when an output store cannot read or write data."""

    pass
