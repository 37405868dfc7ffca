"""Pytest configuration helpers for the test suite."""

from __future__ import annotations

import json
import subprocess
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

import pytest

from tfgate.providers.terraform import TerraformProvider
from tfgate.providers.version_manager import VersionManagerProvider


@dataclass
class FakeTerraform:
    """Scriptable stand-in for the Terraform binary."""

    init_rc: int = 0
    plan_rc: int = 0
    writes_plan: bool = True
    show_rc: int = 0
    apply_rc: int = 0
    remove_plan_after_show: bool = False
    version: str = "1.5.0"
    calls: list[list[str]] = field(default_factory=list)

    def execute(self, args: Sequence[str]) -> subprocess.CompletedProcess[str]:
        command = list(args)
        self.calls.append(command)
        subcommand = command[0]
        if subcommand == "version":
            payload = json.dumps({"terraform_version": self.version})
            return subprocess.CompletedProcess(command, 0, stdout=payload, stderr="")
        if subcommand == "init":
            return _completed(command, self.init_rc, "backend unreachable")
        if subcommand == "plan":
            if self.writes_plan:
                out = next(arg for arg in command if arg.startswith("-out="))
                Path(out.split("=", 1)[1]).write_bytes(b"binary-plan")
            return _completed(command, self.plan_rc, "plan failed")
        if subcommand == "show":
            if self.remove_plan_after_show:
                Path(command[-1]).unlink()
            if self.show_rc != 0:
                return _completed(command, self.show_rc, "cannot read plan")
            return subprocess.CompletedProcess(
                command, 0, stdout='{"format_version": "1.2"}', stderr=""
            )
        if subcommand == "apply":
            return _completed(command, self.apply_rc, "apply failed")
        raise AssertionError(f"unexpected terraform call: {command}")

    def subcommands(self) -> list[str]:
        """Return invoked subcommands, ignoring version probes."""
        return [call[0] for call in self.calls if call[0] != "version"]


def _completed(command: list[str], rc: int, error: str) -> subprocess.CompletedProcess[str]:
    return subprocess.CompletedProcess(
        command,
        rc,
        stdout="",
        stderr=error if rc != 0 else "",
    )


@pytest.fixture
def fake_terraform(monkeypatch: pytest.MonkeyPatch) -> FakeTerraform:
    """Route every Terraform invocation to a :class:`FakeTerraform`."""
    fake = FakeTerraform()
    monkeypatch.setattr(TerraformProvider, "locate", lambda self: "/usr/local/bin/terraform")
    monkeypatch.setattr(
        TerraformProvider,
        "_execute",
        lambda self, args, capture_output=False: fake.execute(args),
    )
    monkeypatch.setattr(VersionManagerProvider, "is_available", lambda self: False)
    return fake


@pytest.fixture
def stack_dir(tmp_path: Path) -> Path:
    """Return an empty directory standing in for a Terraform configuration."""
    path = tmp_path / "stack"
    path.mkdir()
    return path


@pytest.fixture
def cli_env(tmp_path: Path) -> dict[str, str]:
    """Environment isolating the CLI config file and logs under *tmp_path*."""
    return {
        "TFGATE_CONFIG_FILE": str(tmp_path / "config.yml"),
        "TFGATE_LOGS_DIR": str(tmp_path / "logs"),
    }
