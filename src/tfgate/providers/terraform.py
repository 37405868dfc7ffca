"""Terraform CLI provider."""
from __future__ import annotations

import json
import logging
import os
import shutil
import subprocess
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from ..backend import BackendReference

LOGGER = logging.getLogger(__name__)


class TerraformError(RuntimeError):
    """Raised when Terraform cannot be executed."""


class TerraformNotFoundError(TerraformError):
    """Raised when the Terraform binary cannot be located."""


@dataclass(frozen=True, slots=True)
class ToolInfo:
    """Location and reported version of the Terraform binary."""

    path: str
    version: str | None


@dataclass(slots=True)
class TerraformProvider:
    """Invoke Terraform subcommands as blocking subprocesses."""

    terraform_bin: str = "terraform"
    no_color: bool = False
    env: Mapping[str, str] = field(default_factory=dict)

    def locate(self) -> str | None:
        """Return the resolved binary path, or ``None`` when absent."""
        candidate = Path(self.terraform_bin)
        if candidate.is_absolute() or os.sep in self.terraform_bin:
            return str(candidate) if candidate.exists() else None
        return shutil.which(self.terraform_bin)

    def ensure_present(self) -> ToolInfo:
        """Return :class:`ToolInfo` or raise :class:`TerraformNotFoundError`."""
        path = self.locate()
        if path is None:
            raise TerraformNotFoundError(
                f"Terraform binary '{self.terraform_bin}' not found. "
                "Install Terraform and ensure it is on PATH."
            )
        return ToolInfo(path=path, version=self.version())

    def version(self) -> str | None:
        """Return the version reported by ``terraform version -json``."""
        try:
            result = self._execute(["version", "-json"], capture_output=True)
        except TerraformError:
            return None
        if result.returncode != 0:
            return None
        try:
            payload = json.loads(result.stdout or "{}")
        except json.JSONDecodeError:
            return None
        version = payload.get("terraform_version") if isinstance(payload, dict) else None
        return str(version) if version else None

    def init(self, backend: BackendReference) -> subprocess.CompletedProcess[str]:
        """Run ``terraform init`` against the remote *backend*."""
        return self._execute(["init", "-input=false", *backend.init_arguments()])

    def plan(self, plan_file: Path, *, destroy: bool = False) -> subprocess.CompletedProcess[str]:
        """Run ``terraform plan`` writing the binary plan to *plan_file*."""
        args = ["plan", "-input=false", f"-out={plan_file}"]
        if destroy:
            args.append("-destroy")
        return self._execute(args)

    def show_json(self, plan_file: Path) -> subprocess.CompletedProcess[str]:
        """Render *plan_file* as JSON; the document is in ``stdout``."""
        return self._execute(["show", "-json", str(plan_file)], capture_output=True)

    def apply(self, plan_file: Path) -> subprocess.CompletedProcess[str]:
        """Apply the saved plan in *plan_file* without prompting."""
        return self._execute(["apply", "-input=false", "-auto-approve", str(plan_file)])

    # ------------------------------------------------------------------
    def _command(self, args: Sequence[str]) -> list[str]:
        command = [self.terraform_bin, *args]
        if self.no_color and args and args[0] != "version":
            command.insert(2, "-no-color")
        return command

    def _execute(
        self,
        args: Sequence[str],
        *,
        capture_output: bool = False,
    ) -> subprocess.CompletedProcess[str]:
        command = self._command(args)
        LOGGER.debug("running %s", " ".join(command))
        env = os.environ.copy()
        env.update(self.env)
        try:
            if capture_output:
                result = subprocess.run(  # noqa: S603
                    command,
                    capture_output=True,
                    text=True,
                    check=False,
                    env=env,
                )
            else:
                result = subprocess.run(  # noqa: S603
                    command,
                    text=True,
                    check=False,
                    env=env,
                )
        except FileNotFoundError as exc:
            raise TerraformNotFoundError(f"{self.terraform_bin} not found: {exc}") from exc
        LOGGER.debug("%s exited with %s", " ".join(command[:2]), result.returncode)
        return result


def describe_failure(result: subprocess.CompletedProcess[str]) -> str:
    """Return a one-line description of a failed Terraform invocation."""
    stdout = (getattr(result, "stdout", "") or "").strip()
    stderr = (getattr(result, "stderr", "") or "").strip()
    args = result.args if isinstance(result.args, (list, tuple)) else [str(result.args)]
    detail = f"command={' '.join(str(arg) for arg in args[:2])} rc={result.returncode}"
    if stderr:
        detail += f" stderr={stderr.splitlines()[-1]}"
    elif stdout:
        detail += f" stdout={stdout.splitlines()[-1]}"
    return detail


__all__ = [
    "TerraformError",
    "TerraformNotFoundError",
    "TerraformProvider",
    "ToolInfo",
    "describe_failure",
]
