"""Deployment commands.

These commands drive an existing cluster: read or update the synchronized
settings, install charts, wait for workloads and run commands inside them.
"""

from __future__ import annotations

import asyncio
import json
import sys
from collections.abc import Callable, Coroutine
from typing import TypeVar

import click

from ..bootstrap import ArmCredentialProvider, BlobDocumentStore, KubernetesManager
from ..config import DeployerConfig, load_config
from ..errors import DeployerError
from ..shared.auth import ARM_TOKEN_ENV, STORAGE_SAS_TOKEN_ENV, get_token

T = TypeVar("T")


def _get_config(ctx: click.Context) -> DeployerConfig:
    try:
        config = load_config(ctx.obj.get("config_path"), ctx.obj.get("overrides"))
    except DeployerError as e:
        click.echo(f"✗ {e}", err=True)
        sys.exit(1)
    if ctx.obj.get("verbose"):
        config.debug_logging = True
    return config


def _run(coro: Coroutine[object, object, T]) -> T:
    """Run a coroutine, turning deployer errors into a one-line failure."""
    try:
        return asyncio.run(coro)
    except DeployerError as e:
        click.echo(f"✗ {e}", err=True)
        sys.exit(1)


def cluster_options(func: Callable) -> Callable:
    """Add the options every cluster-facing command needs."""
    options = [
        click.option("--resource-group", "-g", default=None, help="Resource group holding the cluster"),
        click.option("--arm-token", default=None, help=f"Resource Manager token (or ${ARM_TOKEN_ENV})"),
        click.option("--sas-token", default=None, help=f"Configuration container SAS (or ${STORAGE_SAS_TOKEN_ENV})"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _build_manager(
    config: DeployerConfig,
    resource_group: str | None,
    arm_token: str | None,
    sas_token: str | None,
) -> KubernetesManager:
    if resource_group:
        config.resource_group_name = resource_group
    if not config.resource_group_name:
        click.echo("✗ No resource group given. Use --resource-group or set resource_group_name.", err=True)
        sys.exit(1)

    arm = get_token("arm", arm_token, ARM_TOKEN_ENV)
    store = BlobDocumentStore(
        config.storage_account_url,
        sas_token=get_token("storage", sas_token, STORAGE_SAS_TOKEN_ENV),
        bearer_token=arm,
    )
    credentials = ArmCredentialProvider(config.subscription_id, arm)
    return KubernetesManager(config, store, credentials)


@click.group("config")
def config_group() -> None:
    """Inspect deployer configuration."""


@config_group.command("show")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def config_show(ctx: click.Context, as_json: bool) -> None:
    """Show effective configuration and where each value came from."""
    config = _get_config(ctx)
    values = config.values()

    if as_json:
        data = {
            "values": values,
            "sources": {key: config.get_source(key) for key in values},
        }
        click.echo(json.dumps(data, indent=2))
        return

    click.echo("Deployer Configuration\n")
    for key, value in values.items():
        click.echo(f"  {key}: {value}  ({config.get_source(key)})")


@click.group()
def settings() -> None:
    """Read the synchronized deployment settings."""


@settings.command("show")
@cluster_options
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def settings_show(ctx, resource_group, arm_token, sas_token, as_json):
    """Print the settings held by the stored values document."""
    manager = _build_manager(_get_config(ctx), resource_group, arm_token, sas_token)
    current = _run(manager.get_settings())

    if as_json:
        click.echo(json.dumps(current, indent=2))
        return
    for key, value in current.items():
        click.echo(f"{key}={value}")


def _parse_assignments(assignments: tuple[str, ...]) -> dict[str, str]:
    updates: dict[str, str] = {}
    for item in assignments:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected KEY=VALUE, got '{item}'", param_hint="--set")
        updates[key.strip()] = value
    return updates


@click.command()
@cluster_options
@click.option("--set", "assignments", multiple=True, help="Setting to change, as KEY=VALUE")
@click.pass_context
def upgrade(ctx, resource_group, arm_token, sas_token, assignments):
    """Update stored settings and upgrade the release.

    Examples:

        # Move to a new release version
        coa-deployer upgrade -g my-rg --set CromwellOnAzureVersion=2.1
    """
    updates = _parse_assignments(assignments)
    manager = _build_manager(_get_config(ctx), resource_group, arm_token, sas_token)

    async def _upgrade() -> None:
        await manager.get_kubernetes_client()
        await manager.upgrade_deployment(updates)
        await manager.wait_for_cromwell()

    _run(_upgrade())
    click.echo("✓ Deployment upgraded.")


@click.group()
def dependencies() -> None:
    """Manage cluster dependency charts."""


@dependencies.command("install")
@cluster_options
@click.pass_context
def dependencies_install(ctx, resource_group, arm_token, sas_token):
    """Install aad-pod-identity and blob-csi-driver."""
    manager = _build_manager(_get_config(ctx), resource_group, arm_token, sas_token)

    async def _install() -> None:
        await manager.get_kubernetes_client()
        await manager.deploy_dependencies()

    _run(_install())
    click.echo("✓ Dependency charts installed.")


@click.command()
@click.argument("workload")
@cluster_options
@click.option("--timeout", "timeout_seconds", default=180.0, type=float, help="Advisory timeout in seconds")
@click.pass_context
def wait(ctx, workload, resource_group, arm_token, sas_token, timeout_seconds):
    """Wait until WORKLOAD reports a ready replica."""
    manager = _build_manager(_get_config(ctx), resource_group, arm_token, sas_token)

    async def _wait():
        await manager.get_kubernetes_client()
        return await manager.wait_for_workload(workload, timeout_seconds)

    result = _run(_wait())
    if not result.ready:
        click.echo(f"✗ Timed out waiting for {workload} ({result.attempts} attempts)", err=True)
        sys.exit(1)
    click.echo(f"✓ {workload} ready ({result.ready_replicas} replicas, {result.attempts} attempts)")


@click.command("exec")
@click.argument("workload")
@click.argument("command", nargs=-1, required=True)
@cluster_options
@click.option("--selector", "-l", default=None, help="Label selector picking exactly one pod")
@click.option("--timeout", "timeout_seconds", default=180.0, type=float, help="Advisory readiness timeout")
@click.pass_context
def exec_command(ctx, workload, command, resource_group, arm_token, sas_token, selector, timeout_seconds):
    """Run COMMAND inside the pod of WORKLOAD.

    Examples:

        coa-deployer exec cromwell -g my-rg -- ls /cromwell-app
    """
    manager = _build_manager(_get_config(ctx), resource_group, arm_token, sas_token)

    async def _exec() -> int:
        await manager.get_kubernetes_client()
        return await manager.execute_commands_on_pod(
            workload, [list(command)], timeout_seconds, label_selector=selector
        )

    attempts = _run(_exec())
    click.echo(f"✓ Command completed ({attempts} attempt{'s' if attempts != 1 else ''})")
