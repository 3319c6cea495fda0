"""File output helpers shared by the table and figure writers.

- catch_IOError(): log and re-raise I/O failures of a writer
- prepare_outdir(): create or validate the output directory
- get_output_basename(): output path prefix for an input file
- warn_overwrite(): warn about output files that already exist
"""
import logging
import os
from functools import wraps
from pathlib import Path
from typing import Any, Callable, Iterable, TypeVar, Union

F = TypeVar('F', bound=Callable[..., Any])


def catch_IOError(logger: logging.Logger) -> Callable[[F], F]:
    """Decorator logging I/O errors of the wrapped writer before re-raising."""
    def _inner(func: F) -> F:
        @wraps(func)
        def _io_func(*args: Any, **kwargs: Any) -> Any:
            try:
                return func(*args, **kwargs)
            except IOError as e:
                logger.error("Failed to output '{}':\n[Errno {}] {}".format(
                    e.filename, e.errno, e.strerror or '')
                )
                raise
        return _io_func  # type: ignore
    return _inner


def prepare_outdir(outdir: Union[str, Path], logger: logging.Logger) -> bool:
    """Create the output directory if needed and check it is writable.

    Returns:
        True if the directory can be used, False otherwise (the reason is
        logged as CRITICAL)
    """
    outdir_path = Path(outdir)
    if outdir_path.exists():
        if not outdir_path.is_dir():
            logger.critical("Specified path as a output directory is not directory.")
            logger.critical(str(outdir))
            return False
    else:
        logger.info("Make output directory: {}".format(outdir))
        try:
            outdir_path.mkdir(parents=True, exist_ok=True)
        except IOError as e:
            logger.critical("Failed to make output directory: [Errno {}] {}".format(
                e.errno, e.strerror or ""))
            return False

    if not os.access(str(outdir), os.W_OK):
        logger.critical("Output directory '{}' is not writable.".format(outdir))
        return False

    return True


def get_output_basename(outdir: Union[str, Path], source: Union[str, Path],
                        name: Union[str, None] = None) -> str:
    """'<outdir>/<name>', name defaulting to the source file name without extension."""
    if name is None:
        name = Path(source).stem
    return str(Path(outdir) / name)


def warn_overwrite(basename: str, suffixes: Iterable[str], logger: logging.Logger) -> None:
    for suffix in suffixes:
        path = Path(basename + suffix)
        if path.exists():
            logger.warning("Existing file '{}' will be overwritten.".format(path))
