"""Behaviour tests for the tfgate command line: runs, exit codes, check and config."""
from __future__ import annotations

import json
from collections.abc import Sequence
from pathlib import Path

import pytest
from typer.testing import CliRunner

from tfgate import __version__
from tfgate.cli import app
from tfgate.providers.terraform import TerraformProvider
from tfgate.providers.version_manager import VersionManagerError, VersionManagerProvider

from tests.conftest import FakeTerraform

runner = CliRunner()

BACKEND_ARGS = [
    "--state-name",
    "network.tfstate",
    "--backend-subscription-id",
    "00000000-0000-0000-0000-000000000000",
    "--backend-resource-group",
    "rg-state",
    "--backend-storage-account",
    "ststate",
    "--backend-container",
    "tfstate",
]


def _run(
    cli_env: dict[str, str],
    stack_dir: Path,
    *extra: str,
    backend: Sequence[str] = BACKEND_ARGS,
):
    return runner.invoke(
        app,
        ["run", "--working-directory", str(stack_dir), *backend, *extra],
        env=cli_env,
    )


def _json_payload(output: str) -> dict[str, object]:
    return json.loads(output[output.index("{") : output.rindex("}") + 1])


def _operations(cli_env: dict[str, str]) -> list[dict[str, object]]:
    path = Path(cli_env["TFGATE_LOGS_DIR"]) / "operations.jsonl"
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]


def test_root_help_displays_usage(cli_env: dict[str, str]) -> None:
    """Invoking the CLI without arguments prints help text."""
    result = runner.invoke(app, [], env=cli_env)
    assert result.exit_code == 0
    assert "Gate and sequence Terraform" in result.stdout


def test_version_flag_reports_package_version(cli_env: dict[str, str]) -> None:
    """``--version`` prints the package version and exits successfully."""
    result = runner.invoke(app, ["--version"], env=cli_env)
    assert result.exit_code == 0
    assert __version__ in result.stdout


def test_run_init_and_plan_leaves_no_artifacts(
    cli_env: dict[str, str],
    stack_dir: Path,
    fake_terraform: FakeTerraform,
) -> None:
    """Default flags init and plan, never apply, and clean up plan files."""
    result = _run(cli_env, stack_dir)

    assert result.exit_code == 0, result.output
    assert fake_terraform.subcommands() == ["init", "plan", "show"]
    assert not (stack_dir / "tfplan").exists()
    assert not (stack_dir / "tfplan.json").exists()
    assert "Plan files cleaned up" in result.stdout


def test_run_keeps_artifacts_when_cleanup_disabled(
    cli_env: dict[str, str],
    stack_dir: Path,
    fake_terraform: FakeTerraform,
) -> None:
    """Plan files survive when deletePlanFiles is false."""
    result = _run(cli_env, stack_dir, "--delete-plan-files", "false")

    assert result.exit_code == 0, result.output
    assert (stack_dir / "tfplan").exists()
    assert (stack_dir / "tfplan.json").exists()


def test_run_init_failure_blocks_later_phases(
    cli_env: dict[str, str],
    stack_dir: Path,
    fake_terraform: FakeTerraform,
) -> None:
    """A failing init exits non-zero without planning or applying."""
    fake_terraform.init_rc = 1

    result = _run(cli_env, stack_dir, "--run-apply", "true")

    assert result.exit_code == 4
    assert fake_terraform.subcommands() == ["init"]
    assert "One or more phases failed." in result.stdout


def test_run_apply_failure_still_removes_artifacts(
    cli_env: dict[str, str],
    stack_dir: Path,
    fake_terraform: FakeTerraform,
) -> None:
    """A failed apply exits non-zero and the plan files are still deleted."""
    fake_terraform.apply_rc = 1

    result = _run(cli_env, stack_dir, "--run-apply", "true")

    assert result.exit_code == 4, result.output
    assert fake_terraform.subcommands() == ["init", "plan", "show", "apply"]
    assert not (stack_dir / "tfplan").exists()
    assert not (stack_dir / "tfplan.json").exists()
    assert "One or more phases failed." in result.stdout


def test_run_plan_without_artifact_blocks_apply(
    cli_env: dict[str, str],
    stack_dir: Path,
    fake_terraform: FakeTerraform,
) -> None:
    """No plan file means apply is reported blocked and never invoked."""
    fake_terraform.writes_plan = False
    fake_terraform.plan_rc = 1

    result = _run(cli_env, stack_dir, "--run-apply", "true")

    assert result.exit_code == 4, result.output
    assert "apply" not in fake_terraform.subcommands()
    assert "apply: blocked" in result.stdout
    assert "BLOCKED" in result.stdout


def test_run_apply_without_plan_is_rejected(
    cli_env: dict[str, str],
    stack_dir: Path,
    fake_terraform: FakeTerraform,
) -> None:
    """Gate violations abort before Terraform is touched."""
    result = _run(cli_env, stack_dir, "--run-plan", "false", "--run-apply", "true")

    assert result.exit_code == 2
    assert fake_terraform.calls == []
    assert "runApply requires runPlan" in result.stdout


def test_run_reports_every_gate_violation(
    cli_env: dict[str, str],
    stack_dir: Path,
    fake_terraform: FakeTerraform,
) -> None:
    """All broken rules are listed together."""
    result = _run(
        cli_env,
        stack_dir,
        "--run-plan-destroy",
        "true",
        "--run-apply",
        "true",
        "--run-destroy",
        "true",
    )

    assert result.exit_code == 2
    assert "Run aborted." in result.stdout
    assert "runPlan and runPlanDestroy" in result.stdout
    assert "runApply and runDestroy" in result.stdout


def test_run_rejects_non_literal_boolean(
    cli_env: dict[str, str],
    stack_dir: Path,
    fake_terraform: FakeTerraform,
) -> None:
    """Flag values other than true/false are a validation error."""
    result = _run(cli_env, stack_dir, "--run-init", "yes")

    assert result.exit_code == 2
    assert fake_terraform.calls == []
    assert "runInit must be 'true' or 'false'" in result.stdout


def test_run_rejects_empty_backend_identifier(
    cli_env: dict[str, str],
    stack_dir: Path,
    fake_terraform: FakeTerraform,
) -> None:
    """Blank backend identifiers are rejected before init."""
    backend = list(BACKEND_ARGS)
    backend[backend.index("tfstate")] = " "

    result = _run(cli_env, stack_dir, backend=backend)

    assert result.exit_code == 2
    assert fake_terraform.calls == []
    assert "container" in result.stdout


def test_run_explicit_version_failure_is_fatal(
    cli_env: dict[str, str],
    stack_dir: Path,
    fake_terraform: FakeTerraform,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Failing to select an explicit Terraform version stops the run."""
    monkeypatch.setattr(VersionManagerProvider, "is_available", lambda self: True)

    def fake_run(self: VersionManagerProvider, args: Sequence[str]) -> None:
        if args[0] == "use":
            raise VersionManagerError("'tfenv use 9.9.9' failed: No versions matching")

    monkeypatch.setattr(VersionManagerProvider, "_run", fake_run)

    result = _run(cli_env, stack_dir, "--tool-version", "9.9.9")

    assert result.exit_code == 4
    assert fake_terraform.calls == []
    assert "No versions matching" in result.stdout


def test_run_missing_terraform_is_environment_error(
    cli_env: dict[str, str],
    stack_dir: Path,
    fake_terraform: FakeTerraform,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """No Terraform binary means exit 3 and the caller's directory is restored."""
    monkeypatch.setattr(TerraformProvider, "locate", lambda self: None)
    (stack_dir / "tfplan").write_bytes(b"stale")
    origin = Path.cwd()

    result = _run(cli_env, stack_dir)

    assert result.exit_code == 3
    assert "not found" in result.stdout
    assert Path.cwd() == origin
    assert not (stack_dir / "tfplan").exists()


def test_run_missing_working_directory(
    cli_env: dict[str, str],
    tmp_path: Path,
    fake_terraform: FakeTerraform,
) -> None:
    """An unusable working directory is an environment error."""
    result = _run(cli_env, tmp_path / "missing")

    assert result.exit_code == 3
    assert fake_terraform.calls == []


def test_run_accepts_camel_case_options(
    cli_env: dict[str, str],
    stack_dir: Path,
    fake_terraform: FakeTerraform,
) -> None:
    """camelCase spellings drive the destroy path."""
    result = runner.invoke(
        app,
        [
            "run",
            "--workingDirectory",
            str(stack_dir),
            "--stateName",
            "network.tfstate",
            "--backendSubscriptionId",
            "sub",
            "--backendResourceGroup",
            "rg",
            "--backendStorageAccount",
            "acct",
            "--backendContainer",
            "tfstate",
            "--runPlan",
            "false",
            "--runPlanDestroy",
            "true",
            "--runDestroy",
            "true",
        ],
        env=cli_env,
    )

    assert result.exit_code == 0, result.output
    assert fake_terraform.subcommands() == ["init", "plan", "show", "apply"]
    assert "-destroy" in fake_terraform.calls[1]


def test_run_json_output(
    cli_env: dict[str, str],
    stack_dir: Path,
    fake_terraform: FakeTerraform,
) -> None:
    """``--json`` emits the run result as a JSON document."""
    result = _run(cli_env, stack_dir, "--run-apply", "true", "--json")

    assert result.exit_code == 0, result.output
    payload = _json_payload(result.stdout)
    assert payload["intent"]["apply"] is True  # type: ignore[index]
    assert payload["terraform"] == {"path": "/usr/local/bin/terraform", "version": "1.5.0"}
    statuses = {item["phase"]: item["status"] for item in payload["report"]["phases"]}  # type: ignore[index]
    assert statuses == {
        "init": "succeeded",
        "plan": "succeeded",
        "plan-destroy": "skipped",
        "apply": "succeeded",
        "destroy": "skipped",
    }
    assert payload["cleanup"]["requested"] is True  # type: ignore[index]


def test_run_writes_operation_record(
    cli_env: dict[str, str],
    stack_dir: Path,
    fake_terraform: FakeTerraform,
) -> None:
    """Each run appends a structured record to operations.jsonl."""
    result = _run(cli_env, stack_dir, "--run-apply", "true")
    assert result.exit_code == 0, result.output

    record = _operations(cli_env)[-1]
    assert record["command"] == "run"
    assert record["result"]["changed"] == 1  # type: ignore[index]
    step_names = [step["name"] for step in record["steps"]]  # type: ignore[union-attr]
    assert step_names[:2] == ["intent.parse", "gates.validate"]
    assert "phase.apply" in step_names
    assert step_names[-2:] == ["artifacts.cleanup", "workdir.restore"]


def test_check_valid_flags(cli_env: dict[str, str]) -> None:
    """``check`` accepts a consistent flag set."""
    result = runner.invoke(app, ["check", "--run-apply", "true"], env=cli_env)

    assert result.exit_code == 0, result.output
    assert "Intent flags are valid." in result.stdout


def test_check_reports_violations_as_json(cli_env: dict[str, str]) -> None:
    """``check --json`` lists violated rules and exits with a validation error."""
    result = runner.invoke(
        app,
        ["check", "--runPlan", "false", "--runDestroy", "true", "--json"],
        env=cli_env,
    )

    assert result.exit_code == 2
    payload = _json_payload(result.stdout)
    assert [item["rule"] for item in payload["violations"]] == [  # type: ignore[union-attr]
        "destroy-requires-plan-destroy"
    ]


def test_check_rejects_invalid_literal(cli_env: dict[str, str]) -> None:
    """``check`` reports unparsable flag values."""
    result = runner.invoke(app, ["check", "--debug-mode", "1"], env=cli_env)

    assert result.exit_code == 2
    assert "debugMode must be 'true' or 'false'" in result.stdout


def test_config_show_json(cli_env: dict[str, str]) -> None:
    """``config show --json`` renders the resolved configuration."""
    result = runner.invoke(app, ["config", "show", "--json"], env=cli_env)

    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert payload["logs_dir"] == cli_env["TFGATE_LOGS_DIR"]
    assert payload["terraform"]["plan_file"] == "tfplan"


def test_invalid_config_file_is_reported(cli_env: dict[str, str]) -> None:
    """Unknown keys in the config file abort with a validation error."""
    Path(cli_env["TFGATE_CONFIG_FILE"]).write_text("bogus: 1\n", encoding="utf-8")

    result = runner.invoke(app, ["config", "show"], env=cli_env)

    assert result.exit_code == 2
    assert "Unknown configuration keys: bogus." in result.stdout
