"""Console rendering of run outcomes and status snapshots."""

from orchestrator.outcome import (
    ALREADY_RUNNING,
    ALREADY_STOPPED,
    FAILED,
    SKIPPED,
    STARTED,
    STOPPED,
    ExecutionOutcome,
    StatusSnapshot,
)

_MARKERS = {
    STARTED: '✓',
    ALREADY_RUNNING: '✓',
    STOPPED: '✓',
    ALREADY_STOPPED: '✓',
    SKIPPED: '-',
    FAILED: '✗',
}

_STATUS_LABELS = {
    STARTED: 'started',
    ALREADY_RUNNING: 'already running',
    STOPPED: 'stopped',
    ALREADY_STOPPED: 'already stopped',
    SKIPPED: 'skipped',
    FAILED: 'failed',
}


def format_outcome(outcome: ExecutionOutcome) -> str:
    """Format a start/stop outcome as one line per resource plus a summary."""
    lines = [f"\nPVE Orchestrator {outcome.operation}:\n"]

    for r in outcome.resources:
        marker = _MARKERS.get(r.status, '?')
        label = _STATUS_LABELS.get(r.status, r.status)
        ident = r.ident if r.kind == 'mount' else f"{r.name} ({r.ident})"
        line = f"{marker} {r.kind:<10} {ident}: {label}"
        if r.message:
            line += f" - {r.message}"
        lines.append(line)

    if not outcome.resources:
        lines.append("  (nothing to do)")

    lines.append("")
    if outcome.aborted:
        lines.append(f"Result: FAILED ({outcome.abort_reason})")
    else:
        lines.append(f"Result: {outcome.status.replace('_', ' ').upper()}")
    return '\n'.join(lines)


def format_status(snapshot: StatusSnapshot) -> str:
    """Format a status snapshot as a table of VM, mounts and containers."""
    lines = ["\nPVE Orchestrator Status\n"]

    if snapshot.vm is not None:
        lines.append(f"Storage VM {snapshot.vm.name} ({snapshot.vm.ident}): {snapshot.vm.state}")
        lines.append("")

    lines.append("Mounts:")
    if not snapshot.mounts:
        lines.append("  (none configured)")
    for m in snapshot.mounts:
        marker = '✓' if m.state == 'mounted' else '✗'
        lines.append(f"  {marker} {m.ident}: {m.state.replace('_', ' ')}")
    lines.append("")

    lines.append("Containers:")
    if not snapshot.containers:
        lines.append("  (none configured)")
    for c in snapshot.containers:
        marker = '✓' if c.state == 'running' else '✗'
        lines.append(f"  {marker} {c.name} ({c.ident}): {c.state}")

    return '\n'.join(lines)
