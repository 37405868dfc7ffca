"""Phase executor: the gated Init → Plan/PlanDestroy → Apply/Destroy chain.

Phases always run in the same order. Each one is gated by its own intent flag
and, for dependent phases, by the outcome of its prerequisite:

* ``init`` failing blocks every later requested phase.
* ``plan`` and ``plan-destroy`` only run after a successful ``init`` in the
  same invocation; they succeed when the binary plan exists afterwards.
* ``apply`` needs a successful ``plan`` and ``destroy`` a successful
  ``plan-destroy``. Both re-check that the binary plan exists right before
  invoking ``terraform apply``; destroy is an apply of the destroy-mode plan.

Failures never raise. Each phase reduces to a :class:`PhaseOutcome` that the
later gates consume.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum

from rich.console import Console
from rich.markup import escape

from .artifacts import PlanArtifacts
from .backend import BackendReference
from .intent import Intent
from .logging import OperationScope
from .providers.terraform import TerraformProvider, describe_failure

LOGGER = logging.getLogger(__name__)


class Phase(str, Enum):
    """Lifecycle phases in execution order."""

    INIT = "init"
    PLAN = "plan"
    PLAN_DESTROY = "plan-destroy"
    APPLY = "apply"
    DESTROY = "destroy"


class PhaseStatus(str, Enum):
    """How a phase ended."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"
    BLOCKED = "blocked"


_STATUS_STYLE = {
    PhaseStatus.SUCCEEDED: "green",
    PhaseStatus.FAILED: "red",
    PhaseStatus.BLOCKED: "red",
    PhaseStatus.SKIPPED: "dim",
}


@dataclass(frozen=True, slots=True)
class PhaseOutcome:
    """Result of a single phase."""

    phase: Phase
    status: PhaseStatus
    detail: str = ""

    @property
    def is_error(self) -> bool:
        """Return whether this outcome should fail the run."""
        return self.status in {PhaseStatus.FAILED, PhaseStatus.BLOCKED}

    def to_dict(self) -> dict[str, str]:
        """Return a serialisable representation."""
        return {"phase": self.phase.value, "status": self.status.value, "detail": self.detail}


@dataclass(slots=True)
class RunReport:
    """Per-phase outcomes plus non-fatal warnings collected during a run."""

    outcomes: list[PhaseOutcome] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def outcome(self, phase: Phase) -> PhaseOutcome | None:
        """Return the recorded outcome for *phase*."""
        for item in self.outcomes:
            if item.phase is phase:
                return item
        return None

    def succeeded(self, phase: Phase) -> bool:
        """Return whether *phase* ran and succeeded."""
        outcome = self.outcome(phase)
        return outcome is not None and outcome.status is PhaseStatus.SUCCEEDED

    @property
    def failed(self) -> bool:
        """Return whether any phase failed or was blocked."""
        return any(item.is_error for item in self.outcomes)

    @property
    def errors(self) -> list[str]:
        """Return error messages for failed and blocked phases."""
        return [f"{item.phase.value}: {item.detail}" for item in self.outcomes if item.is_error]

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "failed": self.failed,
            "phases": [item.to_dict() for item in self.outcomes],
            "warnings": list(self.warnings),
        }


@dataclass(slots=True)
class PhaseExecutor:
    """Run the phases requested by an :class:`Intent`."""

    terraform: TerraformProvider
    artifacts: PlanArtifacts
    backend: BackendReference
    console: Console = field(default_factory=Console)
    op: OperationScope | None = None

    def run(self, intent: Intent, report: RunReport | None = None) -> RunReport:
        """Execute every phase in order and return the collected outcomes."""
        report = report if report is not None else RunReport()

        if intent.init:
            self._record(report, self._init())
        else:
            self._record(report, _skipped(Phase.INIT, "not requested"))

        planning = (
            (Phase.PLAN, intent.plan, False),
            (Phase.PLAN_DESTROY, intent.plan_destroy, True),
        )
        for phase, requested, destroy in planning:
            if not requested:
                self._record(report, _skipped(phase, "not requested"))
            elif not intent.init:
                message = "init did not run in this invocation"
                report.warnings.append(f"{phase.value} skipped: {message}")
                self._record(report, _skipped(phase, message))
            elif not report.succeeded(Phase.INIT):
                self._record(report, _blocked(phase, "init failed"))
            else:
                self._record(report, self._plan(phase, report, destroy=destroy))

        terminal = (
            (Phase.APPLY, intent.apply, Phase.PLAN),
            (Phase.DESTROY, intent.destroy, Phase.PLAN_DESTROY),
        )
        for phase, requested, prerequisite in terminal:
            if not requested:
                self._record(report, _skipped(phase, "not requested"))
            elif not report.succeeded(prerequisite):
                self._record(report, _blocked(phase, f"{prerequisite.value} did not succeed"))
            else:
                self._record(report, self._apply(phase))

        return report

    # ------------------------------------------------------------------
    def _init(self) -> PhaseOutcome:
        self._banner(Phase.INIT, "terraform init")
        result = self.terraform.init(self.backend)
        if result.returncode != 0:
            return PhaseOutcome(Phase.INIT, PhaseStatus.FAILED, describe_failure(result))
        return PhaseOutcome(Phase.INIT, PhaseStatus.SUCCEEDED)

    def _plan(self, phase: Phase, report: RunReport, *, destroy: bool) -> PhaseOutcome:
        self._banner(phase, "terraform plan -destroy" if destroy else "terraform plan")
        report.warnings.extend(self.artifacts.discard_stale())
        if self.artifacts.plan_exists():
            return PhaseOutcome(
                phase,
                PhaseStatus.FAILED,
                f"stale plan file {self.artifacts.plan_path} could not be removed; "
                "terraform plan not invoked",
            )

        result = self.terraform.plan(self.artifacts.plan_path, destroy=destroy)
        if not self.artifacts.plan_exists():
            return PhaseOutcome(
                phase,
                PhaseStatus.FAILED,
                f"plan file {self.artifacts.plan_path} was not produced "
                f"({describe_failure(result)})",
            )
        if result.returncode != 0:
            report.warnings.append(
                f"{phase.value}: terraform exited {result.returncode} but wrote a plan file"
            )

        warning = self._render_json()
        if warning:
            report.warnings.append(f"{phase.value}: {warning}")
        return PhaseOutcome(phase, PhaseStatus.SUCCEEDED, str(self.artifacts.plan_path))

    def _render_json(self) -> str | None:
        shown = self.terraform.show_json(self.artifacts.plan_path)
        if shown.returncode != 0:
            return f"could not render plan as JSON ({describe_failure(shown)})"
        try:
            self.artifacts.write_json(shown.stdout or "")
        except OSError as exc:
            return f"could not write {self.artifacts.json_path}: {exc}"
        return None

    def _apply(self, phase: Phase) -> PhaseOutcome:
        if not self.artifacts.plan_exists():
            return PhaseOutcome(
                phase,
                PhaseStatus.FAILED,
                f"plan file {self.artifacts.plan_path} is missing; terraform apply not invoked",
            )
        self._banner(phase, f"terraform apply {self.artifacts.plan_path}")
        result = self.terraform.apply(self.artifacts.plan_path)
        if result.returncode != 0:
            return PhaseOutcome(phase, PhaseStatus.FAILED, describe_failure(result))
        return PhaseOutcome(phase, PhaseStatus.SUCCEEDED)

    def _banner(self, phase: Phase, command: str) -> None:
        self.console.print(f"[bold cyan]==> {phase.value}[/bold cyan] ({escape(command)})")

    def _record(self, report: RunReport, outcome: PhaseOutcome) -> None:
        report.outcomes.append(outcome)
        LOGGER.info("phase %s %s %s", outcome.phase.value, outcome.status.value, outcome.detail)
        if self.op is not None:
            self.op.add_step(
                f"phase.{outcome.phase.value}",
                status=outcome.status.value,
                detail=outcome.detail or None,
            )
        style = _STATUS_STYLE[outcome.status]
        line = f"[{style}]{outcome.phase.value}: {outcome.status.value}[/{style}]"
        if outcome.detail:
            line += f" {escape(outcome.detail)}"
        self.console.print(line)


def _skipped(phase: Phase, reason: str) -> PhaseOutcome:
    return PhaseOutcome(phase, PhaseStatus.SKIPPED, reason)


def _blocked(phase: Phase, reason: str) -> PhaseOutcome:
    return PhaseOutcome(phase, PhaseStatus.BLOCKED, reason)


__all__ = [
    "Phase",
    "PhaseExecutor",
    "PhaseOutcome",
    "PhaseStatus",
    "RunReport",
]
