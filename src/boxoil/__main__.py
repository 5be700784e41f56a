"""
Run the reference transport benchmark.

Usage: python -m boxoil [config.yaml] [output.h5]

Options in the YAML file override the benchmark's run configuration. If an
output path is given, every snapshot is also written to that HDF5 file.
"""

import logging
import sys
import typing

from boxoil.config import Config
from boxoil.errors import BoxOilError
from boxoil.scenarios import (
    REFERENCE_CONFIG_OPTIONS,
    build_reference_transport_problem,
    reference_transport_config,
)
from boxoil.simulate import TransportTimeLoop
from boxoil.stores import HDF5Store, LoggingHandler
from boxoil.types import OutputHandler

__all__ = ["main"]

logger = logging.getLogger("boxoil")


def main(argv: typing.Optional[typing.Sequence[str]] = None) -> int:
    """
    Process entry point.

    :param argv: Command line arguments without the program name. Defaults to `sys.argv[1:]`.
    :return: Exit code, 0 on normal termination and 1 on failure.
    """
    logging.basicConfig(level=logging.INFO)
    args = list(sys.argv[1:] if argv is None else argv)
    try:
        if len(args) > 2:
            raise BoxOilError(
                f"Expected at most two arguments (config file, output file), got {len(args)}"
            )
        if args:
            config = Config.from_file(args[0], **REFERENCE_CONFIG_OPTIONS)
        else:
            config = reference_transport_config()

        handlers: typing.List[OutputHandler] = [LoggingHandler()]
        if len(args) == 2:
            handlers.append(HDF5Store(args[1]))

        loop = TransportTimeLoop(
            problem=build_reference_transport_problem(),
            config=config,
            handlers=handlers,
        )
        final = loop.execute()
        if final is not None:
            logger.info(
                f"Finished at t = {final.time:.6e} s after {final.step} steps "
                f"({loop.total_rejections} rejected attempts)"
            )
    except BoxOilError as exc:
        logger.error(f"boxoil reported error: {exc}")
        return 1
    except Exception:
        logger.exception("Unknown exception thrown!")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
