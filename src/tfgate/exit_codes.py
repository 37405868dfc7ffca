"""Process exit statuses returned by every ``tfgate`` command."""
from __future__ import annotations

from enum import IntEnum


class ExitCode(IntEnum):
    """Exit statuses; a run whose phases were merely skipped still exits ``OK``."""

    OK = 0
    # Bad intent literal, gate violation, blank backend identifier, bad config.
    VALIDATION = 2
    # Terraform binary missing or working directory unusable.
    ENVIRONMENT = 3
    # Explicit version pinning failed, or a Terraform phase failed or was blocked.
    PROVIDER = 4
