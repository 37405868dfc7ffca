"""Provider interfaces for tfgate."""
from __future__ import annotations

from .terraform import (
    TerraformError,
    TerraformNotFoundError,
    TerraformProvider,
    ToolInfo,
    describe_failure,
)
from .version_manager import VersionManagerError, VersionManagerProvider

__all__ = [
    "TerraformError",
    "TerraformNotFoundError",
    "TerraformProvider",
    "ToolInfo",
    "VersionManagerError",
    "VersionManagerProvider",
    "describe_failure",
]
