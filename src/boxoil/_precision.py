from contextlib import contextmanager
from contextvars import ContextVar

import numpy as np


__all__ = [
    "get_dtype",
    "set_dtype",
    "with_precision",
    "use_64bit_precision",
    "use_32bit_precision",
    "get_floating_point_info",
]

_boxoil_dtype: ContextVar[np.typing.DTypeLike] = ContextVar(
    "_boxoil_dtype", default=np.float64
)


def get_dtype() -> np.typing.DTypeLike:
    """
    Get the floating point type used for grid-valued data in boxoil.

    :return: The current data type.
    """
    return _boxoil_dtype.get()


def set_dtype(dtype: np.typing.DTypeLike) -> None:
    """
    Set the floating point type for the current context.

    :param dtype: The data type to set as default.
    """
    _boxoil_dtype.set(dtype)


@contextmanager
def with_precision(dtype: np.typing.DTypeLike):
    """
    Context manager to temporarily change the precision of boxoil computations.

    :param dtype: The data type to use within the context.
    """
    token = _boxoil_dtype.set(dtype)
    try:
        yield
    finally:
        _boxoil_dtype.reset(token)


def use_64bit_precision() -> None:
    """
    Use float64 for boxoil computations.

    Default precision for boxoil. The singular-matrix threshold (1e-35)
    is only meaningful in double precision.
    """
    set_dtype(np.float64)


def use_32bit_precision() -> None:
    """Use float32 for boxoil computations."""
    set_dtype(np.float32)


def get_floating_point_info() -> np.finfo:
    """
    Get machine limits for the current floating point type.

    :return: The floating point information.
    """
    return np.finfo(get_dtype())  # type: ignore
