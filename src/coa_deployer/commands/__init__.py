"""Command-line commands for coa-deployer."""

from .deploy import config_group, dependencies, exec_command, settings, upgrade, wait

__all__ = [
    "config_group",
    "dependencies",
    "exec_command",
    "settings",
    "upgrade",
    "wait",
]
