"""Wrapper around ``tfenv`` for installing and selecting Terraform versions."""
from __future__ import annotations

import logging
import os
import shutil
import subprocess
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

LOGGER = logging.getLogger(__name__)


class VersionManagerError(RuntimeError):
    """Raised when the version manager fails to install or select a version."""


@dataclass(slots=True)
class VersionManagerProvider:
    """Drive ``tfenv install`` / ``tfenv use``."""

    manager_bin: str = "tfenv"

    def is_available(self) -> bool:
        """Return whether the helper can be resolved.

        Bare names are looked up on PATH only; the filesystem is consulted
        directly for absolute paths or paths containing a separator.
        """
        candidate = Path(self.manager_bin)
        if candidate.is_absolute() or os.sep in self.manager_bin:
            return candidate.exists()
        return shutil.which(self.manager_bin) is not None

    def install(self, version: str) -> None:
        """Install *version* (``latest`` is passed through verbatim)."""
        self._run(["install", version])

    def use(self, version: str) -> None:
        """Select *version* as the active Terraform."""
        self._run(["use", version])

    def _run(self, args: Sequence[str]) -> None:
        command = [self.manager_bin, *args]
        LOGGER.debug("running %s", " ".join(command))
        try:
            result = subprocess.run(  # noqa: S603,S607
                command,
                check=False,
                capture_output=True,
                text=True,
            )
        except FileNotFoundError as exc:
            raise VersionManagerError(
                f"'{self.manager_bin}' binary not found: {exc}"
            ) from exc
        if result.returncode != 0:
            message = (result.stderr or result.stdout or "").strip() or "unknown error"
            raise VersionManagerError(f"'{self.manager_bin} {' '.join(args)}' failed: {message}")
        LOGGER.debug("%s", (result.stdout or "").strip())


__all__ = ["VersionManagerError", "VersionManagerProvider"]
