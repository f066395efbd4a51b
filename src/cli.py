#!/usr/bin/env python3
"""CLI entry point for pve-orchestrator.

Commands:
- start:    Start the storage VM, mount shares, start containers
- stop:     Stop containers, unmount shares, stop the storage VM
- restart:  stop, then start
- status:   Show the state of every managed resource
- validate: Load and validate the plan without touching the host

Exit codes: 0 success, 1 failed or aborted, 2 partial success.
"""

import argparse
import contextlib
import json
import logging
import sys
from importlib.metadata import PackageNotFoundError, version

from adapters import PveAdapters
from config import ConfigError, ConfigMissing, debug_enabled, get_config_path, get_log_path
from orchestrator import Engine
from orchestrator.outcome import PARTIAL_SUCCESS, RUN_FAILED, SUCCESS, ExecutionOutcome
from plan import Plan, load_plan
from reporting import format_outcome, format_status
from validation import format_errors, validate_readiness

COMMANDS = {
    "start": "Start VM, mount shares, and start containers",
    "stop": "Stop containers, unmount shares, and stop VM",
    "restart": "Stop and then start all services",
    "status": "Show status of all managed resources",
    "validate": "Validate the configuration file",
}

EXIT_CODES = {
    SUCCESS: 0,
    RUN_FAILED: 1,
    PARTIAL_SUCCESS: 2,
}

LOG_FORMAT = '%(asctime)s [%(levelname)s] %(message)s'
LOG_DATEFMT = '%Y-%m-%d %H:%M:%S'

logger = logging.getLogger(__name__)


def get_version() -> str:
    """Installed package version, or 'dev' when running from a checkout."""
    try:
        return version('pve-orchestrator')
    except PackageNotFoundError:
        return 'dev'


def _build_parser() -> argparse.ArgumentParser:
    epilog = "Commands:\n" + "\n".join(f"  {name:<10} {desc}" for name, desc in COMMANDS.items())
    parser = argparse.ArgumentParser(
        prog='pve-orchestrator',
        description='Orchestrates startup and shutdown of a storage VM, its shares, and LXC containers',
        epilog=epilog,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        'command',
        choices=list(COMMANDS),
        metavar='command',
        help=f'One of: {", ".join(COMMANDS)}',
    )
    parser.add_argument(
        '--version',
        action='version',
        version=f'pve-orchestrator {get_version()}',
    )
    parser.add_argument(
        '--config', '-c',
        help='Plan file (default: $PVE_ORCHESTRATOR_CONFIG or /etc/pve-orchestrator/config.yaml)',
    )
    parser.add_argument(
        '--log-file',
        help='Append log output to this file (default: $PVE_ORCHESTRATOR_LOG or /var/log/pve-orchestrator.log)',
    )
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose logging (also DEBUG=1)',
    )
    parser.add_argument(
        '--json-output',
        action='store_true',
        help='Output structured JSON to stdout (logs go to stderr)',
    )
    parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Show what would be executed without running commands',
    )
    return parser


def _setup_logging(verbose: bool, json_output: bool, log_file) -> None:
    """Configure console and file logging."""
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT)
    # With --json-output stdout carries only the JSON document
    console = logging.StreamHandler(sys.stderr if json_output else sys.stdout)
    console.setFormatter(formatter)
    root_logger.addHandler(console)
    root_logger.setLevel(logging.DEBUG if verbose else logging.INFO)

    if log_file is not None:
        try:
            file_handler = logging.FileHandler(log_file, encoding='utf-8')
        except OSError as e:
            logger.warning(f"Cannot write log file {log_file}: {e}")
        else:
            file_handler.setFormatter(formatter)
            root_logger.addHandler(file_handler)


def _load(args) -> tuple[Plan | None, int | None]:
    """Load the plan. Returns (plan, None) or (None, exit_code)."""
    path = get_config_path(args.config)
    try:
        plan = load_plan(path)
    except ConfigMissing as e:
        print(f"Error: {e}", file=sys.stderr)
        return None, 1
    except ConfigError as e:
        print(f"Error loading configuration: {e}", file=sys.stderr)
        return None, 1
    return plan, None


def _emit(args, outcomes: list[ExecutionOutcome]) -> None:
    if args.json_output:
        if len(outcomes) == 1:
            data = outcomes[0].to_dict()
        else:
            data = {o.operation: o.to_dict() for o in outcomes}
        print(json.dumps(data, indent=2))
    else:
        for outcome in outcomes:
            print(format_outcome(outcome))


def _exit_code(outcomes: list[ExecutionOutcome]) -> int:
    """Worst status across outcomes: failed > partial success > success."""
    statuses = {o.status for o in outcomes}
    if RUN_FAILED in statuses:
        return EXIT_CODES[RUN_FAILED]
    if PARTIAL_SUCCESS in statuses:
        return EXIT_CODES[PARTIAL_SUCCESS]
    return EXIT_CODES[SUCCESS]


def _run(engine: Engine, command: str) -> list[ExecutionOutcome]:
    """Run start, stop or restart and return the outcomes in order."""
    if command == 'start':
        return [engine.start()]
    if command == 'stop':
        return [engine.stop()]
    return list(engine.restart())


def main(argv: list[str] | None = None) -> int:
    """CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    verbose = args.verbose or debug_enabled()
    log_file = None if args.command == 'validate' or args.dry_run else get_log_path(args.log_file)
    _setup_logging(verbose, args.json_output, log_file)

    plan, exit_code = _load(args)
    if exit_code is not None:
        return exit_code
    assert plan is not None
    if plan.is_empty:
        logger.warning(f"No VM, mounts or containers configured in {plan.source_path}, nothing to manage")

    if args.command == 'validate':
        if args.json_output:
            print(json.dumps(plan.to_dict(), indent=2))
        else:
            vm_desc = f"{plan.vm.display_name} ({plan.vm.vmid})" if plan.vm else "none"
            print(f"Configuration valid: {plan.source_path}")
            print(f"  VM: {vm_desc}")
            print(f"  Mounts: {len(plan.mounts)}")
            print(f"  Containers: {len(plan.containers)}")
        return 0

    if not args.dry_run:
        errors = validate_readiness(plan)
        if errors:
            print(format_errors(errors), file=sys.stderr)
            return 1
        logger.debug("Pre-flight validation passed")

    engine = Engine(plan=plan, adapters=PveAdapters(), dry_run=args.dry_run)

    if args.command == 'status':
        snapshot = engine.status()
        if args.json_output:
            print(json.dumps(snapshot.to_dict(), indent=2))
        else:
            print(format_status(snapshot))
        return 0

    if args.dry_run and args.json_output:
        # Preview text goes to stderr so stdout carries only the JSON document
        with contextlib.redirect_stdout(sys.stderr):
            _run(engine, args.command)
        print(json.dumps({'dry_run': True, 'command': args.command, 'plan': plan.to_dict()}, indent=2))
        return 0

    outcomes = _run(engine, args.command)
    if args.dry_run:
        return 0

    _emit(args, outcomes)
    return _exit_code(outcomes)


if __name__ == '__main__':
    sys.exit(main())
