"""CLI main entry point."""

import click

from .commands import config_group, dependencies, exec_command, settings, upgrade, wait
from .shared.logging import configure_logging


@click.group()
@click.option("-c", "--config", type=click.Path(), help="Config file path (default: ./config.yaml)")
@click.option("-v", "--verbose", is_flag=True, help="Stream helm and pod output")
@click.option("--json-logs", is_flag=True, help="Emit logs as JSON")
@click.option("--log-file", type=click.Path(dir_okay=False), default=None, help="Write logs to a file instead of stderr")
@click.option("--namespace", default=None, help="Override the CoA namespace")
@click.option("--helm", "helm_binary_path", default=None, help="Override the helm binary path")
@click.pass_context
def cli(
    ctx: click.Context,
    config: str | None,
    verbose: bool,
    json_logs: bool,
    log_file: str | None,
    namespace: str | None,
    helm_binary_path: str | None,
) -> None:
    """Cromwell on Azure Kubernetes deployer."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config
    ctx.obj["verbose"] = verbose
    ctx.obj["overrides"] = {
        "aks_coa_namespace": namespace,
        "helm_binary_path": helm_binary_path,
    }
    configure_logging("debug" if verbose else "info", log_file=log_file, json_output=json_logs)


cli.add_command(config_group)
cli.add_command(settings)
cli.add_command(upgrade)
cli.add_command(dependencies)
cli.add_command(wait)
cli.add_command(exec_command)


def main() -> None:
    """Main entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
