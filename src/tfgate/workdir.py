"""Scoped switch into the Terraform working directory."""
from __future__ import annotations

import logging
import os
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

LOGGER = logging.getLogger(__name__)


class WorkingDirectoryError(RuntimeError):
    """Raised when the target working directory cannot be entered."""


@contextmanager
def working_directory(target: Path | str) -> Iterator[Path]:
    """Switch into *target* and restore the caller's directory on exit."""
    original = Path.cwd()
    try:
        os.chdir(target)
    except OSError as exc:
        raise WorkingDirectoryError(
            f"Cannot switch to working directory {target}: {exc.strerror or exc}"
        ) from exc
    entered = Path.cwd()
    LOGGER.debug("entered %s (from %s)", entered, original)
    try:
        yield entered
    finally:
        os.chdir(original)
        LOGGER.debug("restored %s", original)


__all__ = ["WorkingDirectoryError", "working_directory"]
