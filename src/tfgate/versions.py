"""Pin the Terraform version through the optional version manager."""
from __future__ import annotations

import logging
from dataclasses import dataclass

from packaging.version import InvalidVersion, Version

from .providers.version_manager import VersionManagerError, VersionManagerProvider

LOGGER = logging.getLogger(__name__)

LATEST = "latest"


@dataclass(frozen=True, slots=True)
class ResolvedVersion:
    """The version manager installed and selected *version*."""

    requested: str
    warnings: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class SkippedVersion:
    """Version pinning did not happen; Terraform on PATH is used as-is."""

    requested: str
    reason: str


def normalize_version_request(raw: str | None) -> str:
    """Return ``latest`` or the explicit version with any leading ``v`` removed."""
    text = (raw or "").strip()
    if not text or text.lower() == LATEST:
        return LATEST
    if text[0] in "vV" and text[1:2].isdigit():
        return text[1:]
    return text


def resolve_version(
    manager: VersionManagerProvider | None,
    request: str | None,
) -> ResolvedVersion | SkippedVersion:
    """Install and select the requested Terraform version.

    Parameters
    ----------
    manager:
        The version manager, or ``None`` when it is disabled by configuration.
    request:
        ``latest`` or an explicit version string.

    Returns
    -------
    ResolvedVersion | SkippedVersion
        ``SkippedVersion`` when the helper is unavailable.

    Raises
    ------
    VersionManagerError
        When installing or selecting an explicit version fails.
    """
    requested = normalize_version_request(request)
    if manager is None:
        return SkippedVersion(requested=requested, reason="version manager disabled")
    if not manager.is_available():
        return SkippedVersion(
            requested=requested,
            reason=f"'{manager.manager_bin}' not found on PATH; using the installed Terraform",
        )

    if requested == LATEST:
        try:
            manager.install(LATEST)
            manager.use(LATEST)
        except VersionManagerError as exc:
            LOGGER.warning("could not select latest Terraform: %s", exc)
            return ResolvedVersion(requested=requested, warnings=(str(exc),))
        return ResolvedVersion(requested=requested)

    manager.install(requested)
    manager.use(requested)
    return ResolvedVersion(requested=requested)


def version_mismatch(requested: str, detected: str | None) -> str | None:
    """Return a warning when *detected* differs from an explicit *requested*."""
    if requested == LATEST or not detected:
        return None
    try:
        matches = Version(requested) == Version(detected)
    except InvalidVersion:
        matches = requested == detected
    if matches:
        return None
    return f"Requested Terraform {requested} but {detected} is active."


__all__ = [
    "LATEST",
    "ResolvedVersion",
    "SkippedVersion",
    "normalize_version_request",
    "resolve_version",
    "version_mismatch",
]
