"""Typer-powered command line for ``tfgate``.

``tfgate run`` sequences ``terraform init``, ``plan``/``plan -destroy`` and
``apply`` according to textual intent flags, pins the Terraform version via
``tfenv`` when available and cleans up the plan artifacts afterwards.
``tfgate check`` evaluates the same flags without running anything.
"""
from __future__ import annotations

import json
import textwrap
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import NoReturn

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from . import get_version
from .backend import BackendReference
from .config import AppConfig, ConfigError, load_config
from .exit_codes import ExitCode
from .gates import find_gate_violations
from .intent import INTENT_FLAGS, IntentError, parse_intent
from .logging import OperationScope, StructuredLogger
from .phases import PhaseStatus
from .runner import FATAL_ERRORS, RunRequest, RunResult, Runner, error_lines, exit_code_for

console = Console()

CONFIG_FILE_OPTION = typer.Option(
    None,
    "--config-file",
    dir_okay=False,
    help="Override the path to tfgate's YAML config file.",
)

RUN_INIT_OPTION = typer.Option(
    "true",
    "--run-init",
    "--runInit",
    help="Run 'terraform init' against the remote backend (true/false).",
)
RUN_PLAN_OPTION = typer.Option(
    "true",
    "--run-plan",
    "--runPlan",
    help="Run 'terraform plan' and save the plan file (true/false).",
)
RUN_PLAN_DESTROY_OPTION = typer.Option(
    "false",
    "--run-plan-destroy",
    "--runPlanDestroy",
    help="Run 'terraform plan -destroy' and save the plan file (true/false).",
)
RUN_APPLY_OPTION = typer.Option(
    "false",
    "--run-apply",
    "--runApply",
    help="Apply the plan produced in this run. Requires --run-plan true.",
)
RUN_DESTROY_OPTION = typer.Option(
    "false",
    "--run-destroy",
    "--runDestroy",
    help="Apply the destroy plan produced in this run. Requires --run-plan-destroy true.",
)
DELETE_PLAN_FILES_OPTION = typer.Option(
    "true",
    "--delete-plan-files",
    "--deletePlanFiles",
    help="Remove the plan file and its JSON rendering when the run ends (true/false).",
)
DEBUG_MODE_OPTION = typer.Option(
    "false",
    "--debug-mode",
    "--debugMode",
    help="Emit debug diagnostics and set TF_LOG=DEBUG for Terraform (true/false).",
)
WORKING_DIRECTORY_OPTION = typer.Option(
    Path("."),
    "--working-directory",
    "--workingDirectory",
    help="Directory containing the Terraform configuration.",
)
TOOL_VERSION_OPTION = typer.Option(
    "latest",
    "--tool-version",
    "--toolVersion",
    help="Terraform version to install and select via tfenv ('latest' or e.g. 1.5.0).",
)
STATE_NAME_OPTION = typer.Option(
    ...,
    "--state-name",
    "--stateName",
    help="State file key inside the backend container.",
)
BACKEND_SUBSCRIPTION_OPTION = typer.Option(
    ...,
    "--backend-subscription-id",
    "--backendSubscriptionId",
    help="Subscription holding the state storage account.",
)
BACKEND_RESOURCE_GROUP_OPTION = typer.Option(
    ...,
    "--backend-resource-group",
    "--backendResourceGroup",
    help="Resource group of the state storage account.",
)
BACKEND_STORAGE_ACCOUNT_OPTION = typer.Option(
    ...,
    "--backend-storage-account",
    "--backendStorageAccount",
    help="Storage account holding the state container.",
)
BACKEND_CONTAINER_OPTION = typer.Option(
    ...,
    "--backend-container",
    "--backendContainer",
    help="Blob container holding the state file.",
)
JSON_OPTION = typer.Option(
    False,
    "--json",
    help="Emit structured JSON instead of human-readable output.",
)

app = typer.Typer(
    add_completion=False,
    help=textwrap.dedent(
        """
        Gate and sequence Terraform init, plan, apply and destroy runs.

        Intent flags take the literals 'true' or 'false'. Plan and plan-destroy
        are mutually exclusive, as are apply and destroy; apply and destroy
        only act on a plan computed in the same invocation.
        """
    ).strip(),
)
config_app = typer.Typer(help="Inspect tfgate configuration.")
app.add_typer(config_app, name="config")


@dataclass
class RuntimeContext:
    """Aggregated runtime objects shared by commands."""

    config: AppConfig
    logger: StructuredLogger


def _ensure_runtime(ctx: typer.Context, config_file: Path | None) -> RuntimeContext:
    runtime = ctx.obj
    if isinstance(runtime, RuntimeContext):
        return runtime

    try:
        config = load_config(config_file=config_file)
    except ConfigError as exc:
        console.print(f"[red]Configuration error:[/red] {escape(str(exc))}")
        raise typer.Exit(code=ExitCode.VALIDATION) from exc
    logger = StructuredLogger(config.logs_dir)
    runtime = RuntimeContext(config=config, logger=logger)
    ctx.obj = runtime
    return runtime


def _get_runtime(ctx: typer.Context) -> RuntimeContext:
    runtime = ctx.obj
    if isinstance(runtime, RuntimeContext):
        return runtime
    return _ensure_runtime(ctx, None)


@app.callback(invoke_without_command=True)
def _root(  # noqa: D401 - Typer displays help for us, docstring optional.
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show the tfgate version and exit.",
    ),
    config_file: Path | None = CONFIG_FILE_OPTION,
) -> None:
    """Entry point callback invoked for every CLI execution."""
    if version:
        runtime = _ensure_runtime(ctx, config_file)
        with runtime.logger.operation(
            "root --version",
            args={"version": True},
            target={"kind": "meta", "scope": "version"},
        ) as op:
            console.print(f"tfgate {get_version()}")
            op.success("Reported CLI version.", changed=0)
        raise typer.Exit(code=ExitCode.OK)

    _ensure_runtime(ctx, config_file)

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())
        raise typer.Exit(code=ExitCode.OK)


def _command_error(
    op: OperationScope,
    message: str,
    *,
    rc: int = ExitCode.VALIDATION,
    errors: Sequence[str] | None = None,
    warnings: Sequence[str] = (),
) -> NoReturn:
    """Emit a structured error and terminate the command."""
    console.print(f"[red]{escape(message)}[/red]")
    for line in errors or ():
        if line != message:
            console.print(f"  [red]-[/red] {escape(line)}")
    op.error(message, errors=list(errors or [message]), warnings=warnings, rc=int(rc))
    raise typer.Exit(code=int(rc))


def _status_markup(status: PhaseStatus) -> str:
    if status is PhaseStatus.SUCCEEDED:
        return "[green]OK[/green]"
    if status is PhaseStatus.SKIPPED:
        return "[dim]SKIPPED[/dim]"
    if status is PhaseStatus.BLOCKED:
        return "[red]BLOCKED[/red]"
    return "[red]FAILED[/red]"


def _render_result(result: RunResult, *, json_output: bool) -> None:
    if json_output:
        typer.echo(json.dumps(result.to_dict(), indent=2))
        return

    table = Table("Phase", "Status", "Detail")
    for outcome in result.report.outcomes:
        table.add_row(outcome.phase.value, _status_markup(outcome.status), escape(outcome.detail))
    console.print(table)
    for warning in result.report.warnings:
        console.print(f"[yellow]Warning:[/yellow] {escape(warning)}")
    if result.cleanup.requested:
        removed = ", ".join(str(path) for path in result.cleanup.removed) or "nothing to remove"
        console.print(f"Plan files cleaned up: {escape(removed)}")


@app.command()
def run(
    ctx: typer.Context,
    run_init: str = RUN_INIT_OPTION,
    run_plan: str = RUN_PLAN_OPTION,
    run_plan_destroy: str = RUN_PLAN_DESTROY_OPTION,
    run_apply: str = RUN_APPLY_OPTION,
    run_destroy: str = RUN_DESTROY_OPTION,
    working_directory: Path = WORKING_DIRECTORY_OPTION,
    debug_mode: str = DEBUG_MODE_OPTION,
    delete_plan_files: str = DELETE_PLAN_FILES_OPTION,
    tool_version: str = TOOL_VERSION_OPTION,
    state_name: str = STATE_NAME_OPTION,
    backend_subscription_id: str = BACKEND_SUBSCRIPTION_OPTION,
    backend_resource_group: str = BACKEND_RESOURCE_GROUP_OPTION,
    backend_storage_account: str = BACKEND_STORAGE_ACCOUNT_OPTION,
    backend_container: str = BACKEND_CONTAINER_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Run the requested Terraform phases against the remote backend."""
    runtime = _get_runtime(ctx)
    flags = {
        "init": run_init,
        "plan": run_plan,
        "plan_destroy": run_plan_destroy,
        "apply": run_apply,
        "destroy": run_destroy,
        "delete_plan_files": delete_plan_files,
        "debug": debug_mode,
    }
    backend = BackendReference(
        subscription_id=backend_subscription_id,
        resource_group=backend_resource_group,
        storage_account=backend_storage_account,
        container=backend_container,
        key=state_name,
    )
    request = RunRequest(
        flags=flags,
        backend=backend,
        working_directory=working_directory,
        tool_version=tool_version,
    )
    with runtime.logger.operation(
        "run",
        args={**flags, "tool_version": tool_version, "json": json_output},
        target={
            "kind": "terraform",
            "working_directory": str(working_directory),
            "backend": backend.to_dict(),
        },
    ) as op:
        progress = Console(stderr=True) if json_output else console
        runner = Runner(config=runtime.config, logger=runtime.logger, console=progress)
        try:
            result = runner.run(request, op)
        except FATAL_ERRORS as exc:
            _command_error(
                op,
                str(exc) if len(error_lines(exc)) == 1 else "Run aborted.",
                rc=exit_code_for(exc),
                errors=error_lines(exc),
            )

        _render_result(result, json_output=json_output)
        report = result.report
        if report.failed:
            _command_error(
                op,
                "One or more phases failed.",
                rc=ExitCode.PROVIDER,
                errors=report.errors,
                warnings=report.warnings,
            )
        if report.warnings:
            op.warning(
                "Run completed with warnings.",
                warnings=report.warnings,
                changed=result.changed,
                context=result.to_dict(),
            )
        else:
            op.success("Run completed.", changed=result.changed, context=result.to_dict())


@app.command()
def check(
    ctx: typer.Context,
    run_init: str = RUN_INIT_OPTION,
    run_plan: str = RUN_PLAN_OPTION,
    run_plan_destroy: str = RUN_PLAN_DESTROY_OPTION,
    run_apply: str = RUN_APPLY_OPTION,
    run_destroy: str = RUN_DESTROY_OPTION,
    debug_mode: str = DEBUG_MODE_OPTION,
    delete_plan_files: str = DELETE_PLAN_FILES_OPTION,
    json_output: bool = JSON_OPTION,
) -> None:
    """Validate intent flags and phase pairing without running Terraform."""
    runtime = _get_runtime(ctx)
    flags = {
        "init": run_init,
        "plan": run_plan,
        "plan_destroy": run_plan_destroy,
        "apply": run_apply,
        "destroy": run_destroy,
        "delete_plan_files": delete_plan_files,
        "debug": debug_mode,
    }
    with runtime.logger.operation(
        "check",
        args={**flags, "json": json_output},
        target={"kind": "intent"},
    ) as op:
        try:
            intent = parse_intent(flags)
        except IntentError as exc:
            _command_error(op, "Invalid intent flags.", rc=ExitCode.VALIDATION, errors=exc.problems)

        violations = find_gate_violations(intent)
        payload = {
            "intent": intent.to_dict(),
            "violations": [{"rule": item.rule, "message": item.message} for item in violations],
        }
        if json_output:
            typer.echo(json.dumps(payload, indent=2))
        else:
            table = Table("Flag", "Value")
            for name, label in INTENT_FLAGS.items():
                value = getattr(intent, name)
                table.add_row(label, "[green]true[/green]" if value else "[dim]false[/dim]")
            console.print(table)

        if violations:
            _command_error(
                op,
                "Phase gating rules violated.",
                rc=ExitCode.VALIDATION,
                errors=[item.message for item in violations],
            )
        if not json_output:
            console.print("[green]Intent flags are valid.[/green]")
        op.success("Intent flags are valid.", changed=0, context=payload)


@config_app.command("show")
def config_show(
    ctx: typer.Context,
    json_output: bool = JSON_OPTION,
) -> None:
    """Display the resolved configuration."""
    runtime = _get_runtime(ctx)
    with runtime.logger.operation(
        "config show",
        args={"json": json_output},
        target={"kind": "config"},
    ) as op:
        data = runtime.config.to_dict()
        if json_output:
            typer.echo(json.dumps(data, indent=2))
        else:
            table = Table("Key", "Value")
            for key, value in data.items():
                rendered = json.dumps(value) if isinstance(value, dict) else str(value)
                table.add_row(key, escape(rendered))
            console.print(table)
        op.success("Rendered configuration.", changed=0)


def main() -> None:
    """Console script entry point."""
    app()
