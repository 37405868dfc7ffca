"""End-to-end run: intent, gates, version pinning, phases, cleanup."""
from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from rich.console import Console

from .artifacts import CleanupResult, PlanArtifacts, cleanup_artifacts
from .backend import BackendError, BackendReference
from .config import AppConfig, ConfigError
from .exit_codes import ExitCode
from .gates import GateViolationError, validate_gates
from .intent import Intent, IntentError, parse_intent
from .logging import OperationScope, StructuredLogger
from .phases import Phase, PhaseExecutor, RunReport
from .providers.terraform import (
    TerraformError,
    TerraformNotFoundError,
    TerraformProvider,
    ToolInfo,
)
from .providers.version_manager import VersionManagerError, VersionManagerProvider
from .versions import ResolvedVersion, SkippedVersion, resolve_version, version_mismatch
from .workdir import WorkingDirectoryError, working_directory

LOGGER = logging.getLogger(__name__)

FATAL_ERRORS: tuple[type[Exception], ...] = (
    IntentError,
    GateViolationError,
    BackendError,
    ConfigError,
    WorkingDirectoryError,
    VersionManagerError,
    TerraformError,
)


def exit_code_for(exc: Exception) -> ExitCode:
    """Map a fatal error to the CLI exit code."""
    if isinstance(exc, (IntentError, GateViolationError, BackendError, ConfigError)):
        return ExitCode.VALIDATION
    if isinstance(exc, (WorkingDirectoryError, TerraformNotFoundError)):
        return ExitCode.ENVIRONMENT
    return ExitCode.PROVIDER


def error_lines(exc: Exception) -> list[str]:
    """Return the individual problems carried by *exc*."""
    if isinstance(exc, IntentError):
        return list(exc.problems)
    if isinstance(exc, GateViolationError):
        return [item.message for item in exc.violations]
    return [str(exc)]


@dataclass(frozen=True, slots=True)
class RunRequest:
    """Caller input for a single run; *flags* are raw intent literals."""

    flags: Mapping[str, object]
    backend: BackendReference
    working_directory: Path = Path(".")
    tool_version: str = "latest"


@dataclass(slots=True)
class RunResult:
    """Everything a completed run produced."""

    intent: Intent
    version: ResolvedVersion | SkippedVersion
    tool: ToolInfo
    report: RunReport
    cleanup: CleanupResult

    @property
    def changed(self) -> int:
        """Return how many infrastructure-changing phases succeeded."""
        return sum(1 for phase in (Phase.APPLY, Phase.DESTROY) if self.report.succeeded(phase))

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "intent": self.intent.to_dict(),
            "version": {
                "requested": self.version.requested,
                "resolved": isinstance(self.version, ResolvedVersion),
            },
            "terraform": {"path": self.tool.path, "version": self.tool.version},
            "report": self.report.to_dict(),
            "cleanup": {
                "requested": self.cleanup.requested,
                "removed": [str(path) for path in self.cleanup.removed],
                "warnings": list(self.cleanup.warnings),
            },
        }


@dataclass(slots=True)
class Runner:
    """Sequence a full tfgate run."""

    config: AppConfig
    logger: StructuredLogger
    console: Console

    def run(self, request: RunRequest, op: OperationScope) -> RunResult:
        """Execute *request*; fatal problems raise one of :data:`FATAL_ERRORS`.

        The working directory is restored and plan artifacts are cleaned up
        (when requested) before any error propagates.
        """
        intent = parse_intent(request.flags)
        op.add_step("intent.parse", detail=intent.to_dict())
        self.logger.set_verbose(intent.debug)

        validate_gates(intent)
        op.add_step("gates.validate")
        request.backend.require_complete()

        artifacts = PlanArtifacts(
            plan_path=self.config.terraform.plan_file,
            json_path=self.config.terraform.plan_json_file,
        )
        terraform = TerraformProvider(
            terraform_bin=self.config.terraform.bin,
            no_color=self.config.terraform.no_color,
            env={"TF_LOG": "DEBUG"} if intent.debug else {},
        )
        report = RunReport()

        with working_directory(request.working_directory) as cwd:
            op.add_step("workdir.enter", detail=str(cwd))
            try:
                version = self._resolve_version(request.tool_version, report, op)
                tool = terraform.ensure_present()
                op.add_step("terraform.locate", detail={"path": tool.path, "version": tool.version})
                mismatch = version_mismatch(version.requested, tool.version)
                if mismatch:
                    self._warn(report, mismatch)

                executor = PhaseExecutor(
                    terraform=terraform,
                    artifacts=artifacts,
                    backend=request.backend,
                    console=self.console,
                    op=op,
                )
                executor.run(intent, report)
            finally:
                cleanup = cleanup_artifacts(artifacts, enabled=intent.delete_plan_files)
                for warning in cleanup.warnings:
                    self._warn(report, warning)
                op.add_step(
                    "artifacts.cleanup",
                    status="success" if cleanup.requested else "skipped",
                    detail=[str(path) for path in cleanup.removed],
                )
        op.add_step("workdir.restore")

        return RunResult(
            intent=intent,
            version=version,
            tool=tool,
            report=report,
            cleanup=cleanup,
        )

    def _resolve_version(
        self,
        request: str,
        report: RunReport,
        op: OperationScope,
    ) -> ResolvedVersion | SkippedVersion:
        manager_config = self.config.version_manager
        manager = (
            VersionManagerProvider(manager_bin=manager_config.bin)
            if manager_config.enabled
            else None
        )
        try:
            version = resolve_version(manager, request)
        except VersionManagerError:
            op.add_step("version.resolve", status="error", detail=request)
            raise
        if isinstance(version, SkippedVersion):
            self._warn(report, f"Version pinning skipped: {version.reason}.")
            op.add_step("version.resolve", status="skipped", detail=version.reason)
            return version
        for warning in version.warnings:
            self._warn(report, f"Version manager: {warning}")
        op.add_step(
            "version.resolve",
            status="warning" if version.warnings else "success",
            detail=version.requested,
        )
        return version

    def _warn(self, report: RunReport, message: str) -> None:
        report.warnings.append(message)
        LOGGER.warning(message)


__all__ = [
    "FATAL_ERRORS",
    "RunRequest",
    "RunResult",
    "Runner",
    "error_lines",
    "exit_code_for",
]
