"""Pre-flight checks run before any resource is touched.

Start, stop, restart and status abort with a non-zero exit when one of
these fails, so a broken host never sees a partial run.
"""

import logging
import os
import shutil
from pathlib import Path
from typing import Optional

from plan import Plan

logger = logging.getLogger(__name__)

# Host tooling needed per concern
GUEST_TOOLS = {
    'qm': 'Proxmox VE VM manager',
    'pct': 'Proxmox VE container toolkit',
}
MOUNT_TOOLS = {
    'mount': 'util-linux',
    'umount': 'util-linux',
    'mountpoint': 'util-linux',
}
PROBE_TOOLS = {
    'ping': 'iputils-ping',
}


def validate_root() -> list[str]:
    """Check the process runs with root privileges."""
    if os.geteuid() != 0:
        return ["This command must be run as root\n  Run with sudo or as root"]
    return []


def validate_tools(tools: dict[str, str]) -> list[str]:
    """Check each command is on PATH.

    Args:
        tools: Mapping of command name to the package that provides it

    Returns:
        List of validation error messages (empty if valid)
    """
    errors = []
    for tool, package in tools.items():
        if shutil.which(tool) is None:
            errors.append(f"Required command '{tool}' not found\n  Install: {package}")
    return errors


def required_tools(plan: Plan) -> dict[str, str]:
    """Commands the plan will invoke."""
    tools: dict[str, str] = {}
    if plan.vm is not None or plan.containers:
        tools.update(GUEST_TOOLS)
    if plan.mounts or any(c.depends_on_mount for c in plan.containers):
        tools.update(MOUNT_TOOLS)
    if plan.vm is not None and plan.vm.health_check and plan.vm.health_check.kind == 'ping':
        tools.update(PROBE_TOOLS)
    return tools


def validate_readiness(plan: Plan, check_root: bool = True) -> list[str]:
    """Combined pre-flight validation for a loaded plan.

    Args:
        plan: Validated plan
        check_root: Require root privileges

    Returns:
        List of validation error messages (empty if ready)
    """
    errors: list[str] = []
    if check_root:
        errors.extend(validate_root())
    errors.extend(validate_tools(required_tools(plan)))

    for mount in plan.mounts:
        if mount.credentials and not Path(mount.credentials).is_file():
            logger.warning(f"Credentials file for {mount.target} not found: {mount.credentials}")

    return errors


def format_errors(errors: list[str], heading: Optional[str] = None) -> str:
    """Format validation errors for display."""
    lines = [heading or "\nPre-flight validation failed:"]
    for error in errors:
        # Indent multi-line errors
        for i, line in enumerate(error.split('\n')):
            prefix = "  ✗ " if i == 0 else "    "
            lines.append(f"{prefix}{line}")
    return '\n'.join(lines)
