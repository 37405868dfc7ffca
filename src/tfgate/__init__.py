"""Gate and sequence Terraform init, plan, apply and destroy runs.

Only version metadata lives here so that :mod:`tfgate.logging` and the CLI can
import it without pulling in the rest of the package.
"""
from __future__ import annotations

__all__ = ["__version__", "get_version"]

# Kept in sync with ``[project].version`` in pyproject.toml.
__version__ = "0.1.0"


def get_version() -> str:
    """Return the installed tfgate version string."""
    return __version__
