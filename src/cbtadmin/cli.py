"""Typer-powered command line for ``cbtadmin``.

The command walks through the Cloud Bigtable instance admin API: it checks
whether an instance exists, creates it when missing, lists instances, fetches
the instance, lists its clusters and finally deletes it again.
"""
from __future__ import annotations

import textwrap
from collections.abc import Callable
from pathlib import Path
from typing import NoReturn

import typer
from google.auth.exceptions import GoogleAuthError
from rich.console import Console
from rich.markup import escape

from . import __version__
from .config import AppConfig, ConfigError, load_config
from .exit_codes import ExitCode
from .logging import OperationScope, StructuredLogger
from .providers import BigtableInstanceAdmin
from .walkthrough import Reporter, WalkthroughRequest, build_instance_config, run_walkthrough

console = Console()
err_console = Console(stderr=True)

USAGE_ARGUMENTS = "<project-id> <instance-id> <cluster-id> <zone>"
EXAMPLE_ARGUMENTS = "my-project my-instance my-instance-c1 us-central1-f"

CONFIG_FILE_OPTION = typer.Option(
    None,
    "--config-file",
    dir_okay=False,
    help="Override the path to cbtadmin's YAML config file.",
)

ARGUMENTS_ARGUMENT = typer.Argument(
    None,
    metavar="PROJECT_ID INSTANCE_ID CLUSTER_ID ZONE",
    help="Project, instance, cluster and zone to walk through.",
    show_default=False,
)

app = typer.Typer(
    add_completion=False,
    help=textwrap.dedent(
        """
        Cloud Bigtable instance admin walkthrough.

        Creates the instance when it does not exist yet, lists instances,
        shows the instance and its clusters, then deletes the instance.
        """
    ).strip(),
)

AdminFactory = Callable[[str, AppConfig], BigtableInstanceAdmin]


def _connect_admin(project_id: str, config: AppConfig) -> BigtableInstanceAdmin:
    return BigtableInstanceAdmin.connect(
        project_id,
        credentials_file=config.credentials_file,
        admin_endpoint=config.admin_endpoint,
    )


# Swapped out by tests to run against a stand-in service.
admin_factory: AdminFactory = _connect_admin


def _usage(program: str) -> str:
    return (
        f"\nUsage: {program} {USAGE_ARGUMENTS}\n\n"
        f"Example: {program} {EXAMPLE_ARGUMENTS}\n"
    )


def _program_name(ctx: typer.Context) -> str:
    info_name = ctx.find_root().info_name or "cbtadmin"
    return Path(info_name).name


def _command_error(
    op: OperationScope,
    message: str,
    *,
    rc: int = ExitCode.FAILURE,
) -> NoReturn:
    """Emit a structured error and terminate the command."""
    err_console.print(f"[red]Error:[/red] {escape(message)}", soft_wrap=True)
    op.error(message, errors=[message], rc=rc)
    raise typer.Exit(code=rc)


@app.command()
def walkthrough(
    ctx: typer.Context,
    arguments: list[str] | None = ARGUMENTS_ARGUMENT,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show the cbtadmin version and exit.",
    ),
    config_file: Path | None = CONFIG_FILE_OPTION,
) -> None:
    """Create, inspect and delete a Cloud Bigtable instance."""
    if version:
        console.print(f"cbtadmin {__version__}")
        raise typer.Exit(code=ExitCode.OK)

    values = list(arguments or [])
    if len(values) != 4:
        err_console.print(_usage(_program_name(ctx)), markup=False, highlight=False)
        raise typer.Exit(code=ExitCode.FAILURE)

    request = WalkthroughRequest(*values)

    try:
        config = load_config(config_file=config_file)
    except ConfigError as exc:
        err_console.print(f"[red]Error:[/red] {escape(str(exc))}", soft_wrap=True)
        raise typer.Exit(code=ExitCode.FAILURE) from exc

    logger = StructuredLogger(config.logs_dir)
    with logger.operation(
        "walkthrough",
        args={
            "project_id": request.project_id,
            "instance_id": request.instance_id,
            "cluster_id": request.cluster_id,
            "zone": request.zone,
        },
        target={"kind": "instance", "name": request.instance_id},
    ) as op:
        try:
            admin = admin_factory(request.project_id, config)
        except (GoogleAuthError, OSError) as exc:
            _command_error(op, f"Could not connect to the instance admin API: {exc}")
        op.add_step("admin.connect", status="success", detail=admin.project_name())

        outcome = run_walkthrough(
            admin,
            request,
            build_instance_config(request, config.instance, config.cluster),
            Reporter(out=console, err=err_console),
            op,
            create_timeout=config.create_timeout,
        )
        if not outcome.ok:
            _command_error(op, outcome.error or "unknown error")

        created = any(
            step["name"] == "instance.create" and step["status"] == "success"
            for step in op.steps
        )
        changed = 2 if created else 1
        partial = [
            f"{step['name']}: {step.get('detail', '')}"
            for step in op.steps
            if step["status"] == "warning"
        ]
        if partial:
            op.warning(
                "Instance walkthrough complete; some locations were unavailable.",
                warnings=partial,
                changed=changed,
            )
        else:
            op.success("Instance walkthrough complete.", changed=changed)


def main() -> None:
    """Console script entry point."""
    app()
