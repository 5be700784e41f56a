"""Physical constants and numerical thresholds"""

from contextvars import ContextVar
import typing

import attrs


__all__ = ["Constant", "Constants", "c", "ConstantsContext", "get_constant"]


@attrs.frozen(slots=True)
class Constant:
    """A constant value with optional description and unit."""

    value: typing.Any
    """The actual value of the constant."""

    description: typing.Optional[str] = None
    """Optional description of what this constant represents."""

    unit: typing.Optional[str] = None
    """Optional unit of measurement for this constant."""

    def __str__(self) -> str:
        return f"{self.value}{self.unit or ''}"


DEFAULT_CONSTANTS: typing.Dict[str, Constant] = {
    "REFERENCE_PRESSURE": Constant(
        value=1.0e5,
        description="Pressure at which surface (reference) densities are defined",
        unit="Pa",
    ),
    "ACCELERATION_DUE_TO_GRAVITY": Constant(
        value=9.80665, description="Standard acceleration due to gravity", unit="m/s²"
    ),
    "SINGULAR_LIMIT": Constant(
        value=1e-35,
        description="Determinant magnitude below which a local matrix is treated as singular",
    ),
    "SATURATION_EPSILON": Constant(
        value=1e-10,
        description="Round-off tolerance when checking saturations against [0, 1]",
        unit="fraction",
    ),
    "WATER_MOLAR_MASS": Constant(
        value=18.015e-3, description="Molar mass of the water component", unit="kg/mol"
    ),
    "GAS_MOLAR_MASS": Constant(
        value=16.04e-3,
        description="Molar mass of the gas component (methane)",
        unit="kg/mol",
    ),
    "OIL_MOLAR_MASS": Constant(
        value=175.0e-3,
        description="Molar mass of the oil component (dead oil)",
        unit="kg/mol",
    ),
}


class Constants:
    """
    Store of physical constants.

    Values are read with attribute access (`constants.SINGULAR_LIMIT`), the
    `Constant` record with item access (`constants["SINGULAR_LIMIT"]`).
    Calling an instance returns a context manager that makes it the active
    set for the global proxy `boxoil.c`.
    """

    __slots__ = ("_store",)

    def __init__(
        self, overrides: typing.Optional[typing.Mapping[str, typing.Any]] = None
    ) -> None:
        store: typing.Dict[str, Constant] = dict(DEFAULT_CONSTANTS)
        for name, value in (overrides or {}).items():
            store[name] = value if isinstance(value, Constant) else Constant(value)
        object.__setattr__(self, "_store", store)

    def __getattr__(self, name: str) -> typing.Any:
        if name.startswith("_"):
            return object.__getattribute__(self, name)
        try:
            return self._store[name].value
        except KeyError:
            raise AttributeError(
                f"'{type(self).__name__}' object has no attribute '{name}'"
            ) from None

    def __setattr__(self, name: str, value: typing.Any) -> None:
        self._store[name] = value if isinstance(value, Constant) else Constant(value)

    def __getitem__(self, name: str) -> Constant:
        return self._store[name]

    def __contains__(self, name: str) -> bool:
        return name in self._store

    def __len__(self) -> int:
        return len(self._store)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Constants):
            return NotImplemented
        return self._store == other._store

    def __repr__(self) -> str:
        return f"{type(self).__name__}(constants={len(self._store)})"

    def keys(self) -> typing.KeysView[str]:
        return self._store.keys()

    def get(self, name: str, default: typing.Any = None) -> typing.Any:
        constant = self._store.get(name)
        return default if constant is None else constant.value

    def get_constant(
        self, name: str, default: typing.Optional[Constant] = None
    ) -> typing.Optional[Constant]:
        return self._store.get(name, default)

    def __call__(self) -> "ConstantsContext":
        """
        Create a context manager under which the global proxy `boxoil.c`
        resolves to this `Constants` instance.
        """
        return ConstantsContext(self)


_constants_context: ContextVar[Constants] = ContextVar(
    "constants_context", default=Constants()
)


class ConstantsContext:
    """Context manager for temporary global `Constants` overrides."""

    def __init__(self, constants: Constants) -> None:
        self._new_constants = constants
        self._token = None

    def __enter__(self) -> Constants:
        self._token = _constants_context.set(self._new_constants)
        return self._new_constants

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        if self._token is not None:
            _constants_context.reset(self._token)


class _ConstantsProxy:
    """Proxy resolving to the `Constants` instance active in the current context."""

    @property
    def _constants(self) -> Constants:
        return _constants_context.get()

    def __getattr__(self, name: str) -> typing.Any:
        return getattr(self._constants, name)

    def __getitem__(self, name: str) -> Constant:
        return self._constants[name]


c = _ConstantsProxy()
"""Global proxy to access physical constants."""


def get_constant(name: str) -> typing.Optional[Constant]:
    """Get a `Constant` record by name from the active constants."""
    return c._constants.get_constant(name)
