"""Parse textual intent flags into a strict boolean vector."""
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import asdict, dataclass

TRUE_LITERAL = "true"
FALSE_LITERAL = "false"

# Flag name -> CLI spelling used in error messages.
INTENT_FLAGS: dict[str, str] = {
    "init": "runInit",
    "plan": "runPlan",
    "plan_destroy": "runPlanDestroy",
    "apply": "runApply",
    "destroy": "runDestroy",
    "delete_plan_files": "deletePlanFiles",
    "debug": "debugMode",
}


class IntentError(ValueError):
    """Raised when a flag value is not a boolean literal."""

    def __init__(self, problems: list[str]) -> None:
        """Store every invalid flag so they can be reported together."""
        self.problems = list(problems)
        super().__init__("; ".join(self.problems))


@dataclass(frozen=True, slots=True)
class Intent:
    """What the caller asked this run to do."""

    init: bool = True
    plan: bool = True
    plan_destroy: bool = False
    apply: bool = False
    destroy: bool = False
    delete_plan_files: bool = True
    debug: bool = False

    def to_dict(self) -> dict[str, bool]:
        """Return a serialisable representation."""
        return asdict(self)


def parse_boolean(raw: object, *, flag: str = "value") -> bool:
    """Return the boolean spelled by *raw* (``true``/``false``, any case)."""
    if isinstance(raw, str):
        text = raw.strip().lower()
        if text == TRUE_LITERAL:
            return True
        if text == FALSE_LITERAL:
            return False
    raise IntentError([f"{flag} must be 'true' or 'false', got {raw!r}."])


def parse_intent(raw_flags: Mapping[str, object]) -> Intent:
    """Build an :class:`Intent` from raw flag values keyed by field name.

    Missing flags keep their defaults. Every flag is parsed independently and
    all invalid literals are reported in a single :class:`IntentError`.
    """
    unknown = set(raw_flags) - set(INTENT_FLAGS)
    if unknown:
        raise IntentError([f"Unknown intent flag: {name}." for name in sorted(unknown)])

    values: dict[str, bool] = {}
    problems: list[str] = []
    for name, label in INTENT_FLAGS.items():
        if name not in raw_flags:
            continue
        try:
            values[name] = parse_boolean(raw_flags[name], flag=label)
        except IntentError as exc:
            problems.extend(exc.problems)
    if problems:
        raise IntentError(problems)
    return Intent(**values)


__all__ = ["INTENT_FLAGS", "Intent", "IntentError", "parse_boolean", "parse_intent"]
