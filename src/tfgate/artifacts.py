"""Plan artifact paths and end-of-run cleanup."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PlanArtifacts:
    """The binary plan and its JSON rendering, relative to the working directory."""

    plan_path: Path
    json_path: Path

    def plan_exists(self) -> bool:
        """Return whether the binary plan is present right now."""
        return self.plan_path.is_file()

    def paths(self) -> tuple[Path, Path]:
        """Return both artifact paths, binary plan first."""
        return (self.plan_path, self.json_path)

    def discard_stale(self) -> list[str]:
        """Remove artifacts left by an earlier run; return warnings."""
        return _remove_all(self.paths())

    def write_json(self, document: str) -> None:
        """Write the JSON rendering of the plan."""
        self.json_path.write_text(document, encoding="utf-8")


@dataclass(slots=True)
class CleanupResult:
    """Outcome of the artifact janitor."""

    requested: bool
    removed: list[Path] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def cleanup_artifacts(artifacts: PlanArtifacts, *, enabled: bool) -> CleanupResult:
    """Best-effort removal of plan artifacts when *enabled*.

    Each file is handled independently; a missing file is not an error and a
    removal failure only produces a warning.
    """
    result = CleanupResult(requested=enabled)
    if not enabled:
        return result
    for path in artifacts.paths():
        existed = path.exists()
        warnings = _remove_all((path,))
        if warnings:
            result.warnings.extend(warnings)
        elif existed:
            result.removed.append(path)
    return result


def _remove_all(paths: tuple[Path, ...]) -> list[str]:
    warnings: list[str] = []
    for path in paths:
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            message = f"Could not remove {path}: {exc}"
            LOGGER.warning(message)
            warnings.append(message)
    return warnings


__all__ = ["CleanupResult", "PlanArtifacts", "cleanup_artifacts"]
