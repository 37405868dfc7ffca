"""Mutual-exclusion and pairing rules between lifecycle phases."""
from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from .intent import Intent


class GateViolationError(ValueError):
    """Raised when the requested phases cannot be combined."""

    def __init__(self, violations: list[GateViolation]) -> None:
        """Store the violated rules."""
        self.violations = list(violations)
        super().__init__("; ".join(item.message for item in self.violations))


@dataclass(frozen=True, slots=True)
class GateRule:
    """A named predicate that must not hold for a valid intent."""

    id: str
    message: str
    violated: Callable[[Intent], bool]


@dataclass(frozen=True, slots=True)
class GateViolation:
    """A rule broken by a specific intent."""

    rule: str
    message: str


GATE_RULES: tuple[GateRule, ...] = (
    GateRule(
        id="plan-exclusive",
        message="runPlan and runPlanDestroy cannot both be true.",
        violated=lambda intent: intent.plan and intent.plan_destroy,
    ),
    GateRule(
        id="apply-exclusive",
        message="runApply and runDestroy cannot both be true.",
        violated=lambda intent: intent.apply and intent.destroy,
    ),
    GateRule(
        id="apply-requires-plan",
        message="runApply requires runPlan to be true in the same run.",
        violated=lambda intent: intent.apply and not intent.plan,
    ),
    GateRule(
        id="destroy-requires-plan-destroy",
        message="runDestroy requires runPlanDestroy to be true in the same run.",
        violated=lambda intent: intent.destroy and not intent.plan_destroy,
    ),
)


def find_gate_violations(intent: Intent) -> list[GateViolation]:
    """Return every rule *intent* breaks, in rule order."""
    return [
        GateViolation(rule=rule.id, message=rule.message)
        for rule in GATE_RULES
        if rule.violated(intent)
    ]


def validate_gates(intent: Intent) -> None:
    """Raise :class:`GateViolationError` if *intent* breaks any rule."""
    violations = find_gate_violations(intent)
    if violations:
        raise GateViolationError(violations)


__all__ = [
    "GATE_RULES",
    "GateRule",
    "GateViolation",
    "GateViolationError",
    "find_gate_violations",
    "validate_gates",
]
