"""Orchestration engine for the storage VM, its shares and containers.

Turns a validated Plan into an ordered, fault-tolerant sequence of
start/stop operations with readiness polling.
"""

from orchestrator.engine import Engine, mount_options
from orchestrator.outcome import ExecutionOutcome, ResourceOutcome, StatusSnapshot

__all__ = [
    'Engine',
    'mount_options',
    'ExecutionOutcome',
    'ResourceOutcome',
    'StatusSnapshot',
]
