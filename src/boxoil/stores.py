"""Output handlers for model snapshots."""

import functools
import logging
from os import PathLike
from pathlib import Path
import typing

import h5py
import numpy as np
from typing_extensions import ParamSpec

from boxoil.errors import StorageError
from boxoil.states import ModelState


__all__ = ["HDF5Store", "LoggingHandler"]

logger = logging.getLogger(__name__)


def _validate_filepath(
    filepath: typing.Union[PathLike, str],
    expected_extension: typing.Optional[str] = None,
    create_parent: bool = False,
) -> Path:
    """
    Validate and normalize a filepath for snapshot storage.

    :param filepath: Path to validate
    :param expected_extension: Expected file extension (e.g., '.h5').
        If None, no extension validation is performed
    :param create_parent: If True, creates the parent directory if it does not exist
    :return: Validated Path object
    :raises StorageError: If filepath is invalid or has wrong extension
    """
    path = Path(filepath)

    if not str(path).strip():
        raise StorageError("Filepath cannot be empty")
    if "\x00" in str(path):
        raise StorageError("Filepath contains null characters")

    if expected_extension:
        if not path.suffix:
            path = path.with_suffix(expected_extension)
            logger.debug(f"Added extension: {path}")
        elif expected_extension not in path.suffixes:
            raise StorageError(
                f"Expected file extension '{expected_extension}', got '{''.join(path.suffixes)}'. "
                f"Use '{path.with_suffix(expected_extension)}' instead."
            )

    if create_parent and not path.parent.exists():
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            logger.debug(f"Created parent directory: {path.parent}")
        except OSError as exc:
            raise StorageError(
                f"Failed to create parent directory '{path.parent}': {exc}"
            ) from exc
    return path


P = ParamSpec("P")
R = typing.TypeVar("R")


def _raise_storage_error(func: typing.Callable[P, R]) -> typing.Callable[P, R]:
    """
    Wraps a function to raise StorageError on exceptions.

    :param func: Function to wrap
    """

    @functools.wraps(func)
    def _wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        try:
            return func(*args, **kwargs)
        except StorageError:
            raise
        except Exception as exc:
            raise StorageError(exc) from exc

    return _wrapper


class HDF5Store:
    """
    HDF5 snapshot writer.

    Each snapshot becomes one group named after its step, holding one
    dataset per named field ("saturation_water", "pressure_water", ...) and
    the step, time and step size as attributes. The store is an output
    handler: calling it with a `ModelState` appends that snapshot.
    """

    def __init__(
        self,
        filepath: typing.Union[PathLike, str],
        compression: typing.Optional[typing.Literal["gzip", "lzf"]] = "gzip",
        compression_opts: typing.Optional[int] = 3,
        overwrite: bool = True,
    ):
        """
        Initialize the store

        :param filepath: Path to the HDF5 file
        :param compression: Compression algorithm - 'gzip', 'lzf' or None
        :param compression_opts: Compression level (1-9 for gzip)
        :param overwrite: Truncate an existing file on the first write of this store
        :raises StorageError: If filepath is invalid or has wrong extension
        """
        self.filepath = _validate_filepath(
            filepath, expected_extension=".h5", create_parent=True
        )
        self.compression = compression
        self.compression_opts = compression_opts if compression == "gzip" else None
        self._truncate = overwrite

    @staticmethod
    def group_name(state: ModelState) -> str:
        return f"step_{state.step:08d}"

    def _open_for_writing(self) -> h5py.File:
        mode = "w" if self._truncate else "a"
        self._truncate = False
        return h5py.File(name=str(self.filepath), mode=mode)

    def _write_state(self, f: h5py.File, state: ModelState) -> None:
        name = self.group_name(state)
        if name in f:
            del f[name]
        group = f.create_group(name)
        group.attrs["step"] = state.step
        group.attrs["time"] = state.time
        group.attrs["step_size"] = state.step_size
        for field_name, values in state.fields.items():
            group.create_dataset(
                name=field_name,
                data=np.asarray(values),
                compression=self.compression,
                compression_opts=self.compression_opts,
            )
        logger.debug(f"Wrote step {state.step} to group '{name}' in {self.filepath}")

    @_raise_storage_error
    def dump(self, states: typing.Iterable[ModelState]) -> int:
        """
        Write snapshots to the store.

        :param states: Snapshots to write.
        :return: Number of snapshots written.
        :raises StorageError: If unable to write to file
        """
        count = 0
        with self._open_for_writing() as f:
            for state in states:
                self._write_state(f, state)
                count += 1
        logger.debug(f"Completed dump of {count} states to {self.filepath}")
        return count

    def __call__(self, state: ModelState) -> None:
        self.dump([state])

    @_raise_storage_error
    def load(self) -> typing.List[ModelState]:
        """
        Read snapshots back in step order.

        :return: List of `ModelState` instances.
        """
        states = []
        with h5py.File(name=str(self.filepath), mode="r") as f:
            for key in sorted(f.keys()):
                group = typing.cast(h5py.Group, f[key])
                fields = {name: np.asarray(group[name][()]) for name in group.keys()}
                states.append(
                    ModelState(
                        step=int(group.attrs["step"]),
                        time=float(group.attrs["time"]),
                        step_size=float(group.attrs["step_size"]),
                        fields=fields,
                    )
                )
        return states

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(filepath={self.filepath}, "
            f"compression={self.compression}, compression_opts={self.compression_opts})"
        )


class LoggingHandler:
    """Output handler that logs a one-line summary of every snapshot."""

    def __init__(
        self, logger: typing.Optional[logging.Logger] = None, level: int = logging.INFO
    ):
        self.logger = logger or logging.getLogger(__name__)
        self.level = level

    def __call__(self, state: ModelState) -> None:
        ranges = ", ".join(
            f"{name} in [{np.min(values):.4f}, {np.max(values):.4f}]"
            for name, values in state.fields.items()
        )
        self.logger.log(
            self.level,
            f"Output at step {state.step} (t = {state.time:.6e} s, dt = {state.step_size:.6e} s): {ranges}",
        )
