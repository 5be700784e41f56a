from os import PathLike
import typing

import attrs
import yaml

from boxoil.constants import Constants, c
from boxoil.errors import ValidationError

__all__ = ["Config"]


def _to_constants(value: typing.Any) -> Constants:
    if isinstance(value, Constants):
        return value
    return Constants(overrides=value)


@attrs.frozen
class Config:
    """Simulation run configuration and parameters."""

    end_time: float = attrs.field(converter=float)
    """Time (s) at which the transport loop terminates."""
    start_time: float = attrs.field(default=0.0, converter=float)
    """Time (s) at which the transport loop starts."""
    cfl_factor: float = attrs.field(
        default=0.99,
        converter=float,
        validator=attrs.validators.and_(attrs.validators.gt(0), attrs.validators.lt(1)),
    )
    """
    Safety margin applied to the CFL bound on the explicit step size.

    Must be strictly below 1.0 to absorb discretization and round-off error.
    """
    max_step_size: float = attrs.field(
        default=float("inf"), converter=float, validator=attrs.validators.gt(0)
    )
    """Upper cap (s) on every step size regardless of the CFL bound."""
    min_step_size: float = attrs.field(
        default=0.0, converter=float, validator=attrs.validators.ge(0)
    )
    """Step size (s) below which a rejected step is not retried."""
    max_rejects: int = attrs.field(default=10, validator=attrs.validators.ge(1))
    """
    Maximum number of consecutive step halvings before the run is aborted.

    Bounds the retry policy so that persistent instability terminates.
    """
    max_steps: typing.Optional[int] = attrs.field(
        default=None,
        validator=attrs.validators.optional(attrs.validators.ge(1)),
    )
    """Optional cap on the number of accepted steps."""
    output_frequency: int = attrs.field(default=1, validator=attrs.validators.ge(1))
    """Number of accepted steps between snapshots delivered to output handlers."""
    output_initial_state: bool = True
    """Whether the state at `start_time` is delivered to output handlers."""
    singular_limit: float = attrs.field(
        factory=lambda: float(c.SINGULAR_LIMIT),
        converter=float,
        validator=attrs.validators.ge(0),
    )
    """Determinant magnitude below which local matrices are treated as singular."""
    velocity_module: str = "darcy"
    """Name of the registered velocity module used by the residual assembler."""
    log_interval: int = attrs.field(default=3, validator=attrs.validators.ge(1))
    """Interval (in time steps) at which to log simulation progress."""
    constants: Constants = attrs.field(factory=Constants, converter=_to_constants)
    """Physical constants used in the simulation."""

    def __attrs_post_init__(self) -> None:
        if self.end_time <= self.start_time:
            raise ValidationError(
                f"end_time ({self.end_time}) must be greater than start_time ({self.start_time})"
            )
        if self.min_step_size > self.max_step_size:
            raise ValidationError(
                f"min_step_size ({self.min_step_size}) exceeds max_step_size ({self.max_step_size})"
            )

    @property
    def duration(self) -> float:
        """Total simulated time span in seconds."""
        return self.end_time - self.start_time

    @classmethod
    def from_dict(cls, data: typing.Mapping[str, typing.Any]) -> "Config":
        """
        Build a configuration from a plain mapping.

        :param data: Mapping of field names to values.
        :return: The validated `Config`.
        :raises ValidationError: If the mapping has unknown keys or invalid values.
        """
        known = {field.name for field in attrs.fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValidationError(
                f"Unknown configuration option(s): {', '.join(sorted(unknown))}"
            )
        try:
            return cls(**data)
        except (TypeError, ValueError) as exc:
            if isinstance(exc, ValidationError):
                raise
            raise ValidationError(f"Invalid configuration: {exc}") from exc

    @classmethod
    def from_file(
        cls, filepath: typing.Union[str, PathLike], **defaults: typing.Any
    ) -> "Config":
        """
        Load a configuration from a YAML file.

        :param filepath: Path to a YAML document holding a single mapping.
        :param defaults: Values used for options the file does not set.
        :return: The validated `Config`.
        """
        with open(filepath, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
        if not isinstance(data, dict):
            raise ValidationError(
                f"Configuration file '{filepath}' must contain a mapping, got {type(data).__name__}"
            )
        return cls.from_dict({**defaults, **data})
