#!/usr/bin/env python3
"""Tests for run outcomes and console reporting."""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

import pytest

from orchestrator.outcome import (
    ALREADY_RUNNING,
    CONTAINER,
    FAILED,
    MOUNT,
    PARTIAL_SUCCESS,
    RUN_FAILED,
    SKIPPED,
    STARTED,
    SUCCESS,
    VM,
    ExecutionOutcome,
    ResourceStatus,
    StatusSnapshot,
)
from reporting import format_outcome, format_status


class TestExecutionOutcome:
    """Test overall status aggregation."""

    def test_empty_run_is_success(self):
        assert ExecutionOutcome('start').status == SUCCESS

    def test_all_ok(self):
        outcome = ExecutionOutcome('start')
        outcome.record(VM, 100, 'truenas', STARTED)
        outcome.record(CONTAINER, 101, 'media', ALREADY_RUNNING)
        assert outcome.status == SUCCESS

    @pytest.mark.parametrize('status', [FAILED, SKIPPED])
    def test_failed_or_skipped_is_partial(self, status):
        outcome = ExecutionOutcome('start')
        outcome.record(VM, 100, 'truenas', STARTED)
        outcome.record(CONTAINER, 101, 'media', status)
        assert outcome.status == PARTIAL_SUCCESS

    def test_abort_is_failed(self):
        outcome = ExecutionOutcome('start')
        outcome.record(VM, 100, 'truenas', FAILED, reason='readiness_timeout')
        outcome.abort('readiness_timeout')
        assert outcome.status == RUN_FAILED

    def test_get_by_kind_and_id(self):
        outcome = ExecutionOutcome('start')
        outcome.record(MOUNT, '/mnt/a', 'nas:/a', STARTED)
        outcome.record(CONTAINER, 101, 'media', STARTED)
        assert outcome.get(CONTAINER, 101).name == 'media'
        assert outcome.get(MOUNT, '/mnt/a').ok

    def test_get_missing_raises(self):
        with pytest.raises(KeyError):
            ExecutionOutcome('stop').get(VM, 100)

    def test_resources_is_a_copy(self):
        outcome = ExecutionOutcome('start')
        outcome.record(VM, 100, 'truenas', STARTED)
        outcome.resources.clear()
        assert len(outcome.resources) == 1

    def test_to_dict(self):
        outcome = ExecutionOutcome('start')
        outcome.start()
        outcome.record(CONTAINER, 102, 'web', SKIPPED, reason='dependency_unmet',
                       message='/mnt/a not mounted')
        outcome.finish()
        data = outcome.to_dict()
        assert data['operation'] == 'start'
        assert data['status'] == PARTIAL_SUCCESS
        assert data['resources'] == [{
            'kind': 'container', 'id': '102', 'name': 'web', 'status': 'skipped',
            'reason': 'dependency_unmet', 'message': '/mnt/a not mounted',
        }]
        assert 'abort_reason' not in data


class TestFormatOutcome:
    """Test console rendering."""

    def test_lines_and_summary(self):
        outcome = ExecutionOutcome('start')
        outcome.record(VM, 100, 'truenas', STARTED)
        outcome.record(MOUNT, '/mnt/a', 'nas:/a', FAILED, message='access denied')
        outcome.record(CONTAINER, 101, 'media', SKIPPED)
        text = format_outcome(outcome)
        assert '✓ vm         truenas (100): started' in text
        assert '✗ mount      /mnt/a: failed - access denied' in text
        assert '- container  media (101): skipped' in text
        assert 'Result: PARTIAL SUCCESS' in text

    def test_aborted(self):
        outcome = ExecutionOutcome('start')
        outcome.abort('readiness_timeout')
        assert 'Result: FAILED (readiness_timeout)' in format_outcome(outcome)

    def test_nothing_to_do(self):
        text = format_outcome(ExecutionOutcome('stop'))
        assert '(nothing to do)' in text
        assert 'Result: SUCCESS' in text


class TestFormatStatus:
    def test_table(self):
        snapshot = StatusSnapshot(
            vm=ResourceStatus(VM, '100', 'truenas', 'running'),
            mounts=[ResourceStatus(MOUNT, '/mnt/a', 'nas:/a', 'not_mounted')],
            containers=[ResourceStatus(CONTAINER, '101', 'media', 'stopped')],
        )
        text = format_status(snapshot)
        assert 'Storage VM truenas (100): running' in text
        assert '✗ /mnt/a: not mounted' in text
        assert '✗ media (101): stopped' in text

    def test_empty(self):
        text = format_status(StatusSnapshot())
        assert 'Storage VM' not in text
        assert text.count('(none configured)') == 2
