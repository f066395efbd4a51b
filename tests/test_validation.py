#!/usr/bin/env python3
"""Tests for pre-flight validation."""

import sys
from pathlib import Path
from unittest.mock import patch

sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from plan import ContainerSpec, HealthCheck, ManagedVM, MountSpec, Plan
from validation import (
    format_errors,
    required_tools,
    validate_readiness,
    validate_root,
    validate_tools,
)


class TestValidateRoot:
    def test_root(self):
        with patch('validation.os.geteuid', return_value=0):
            assert validate_root() == []

    def test_non_root(self):
        with patch('validation.os.geteuid', return_value=1000):
            errors = validate_root()
            assert len(errors) == 1
            assert 'root' in errors[0]


class TestValidateTools:
    def test_all_present(self):
        with patch('validation.shutil.which', return_value='/usr/sbin/qm'):
            assert validate_tools({'qm': 'pve-manager'}) == []

    def test_missing_tool(self):
        with patch('validation.shutil.which', side_effect=lambda t: None if t == 'pct' else f'/usr/sbin/{t}'):
            errors = validate_tools({'qm': 'a', 'pct': 'Proxmox VE container toolkit'})
            assert len(errors) == 1
            assert "'pct'" in errors[0]
            assert 'Proxmox VE container toolkit' in errors[0]


class TestRequiredTools:
    """Test which commands a plan needs."""

    def test_empty_plan(self):
        assert required_tools(Plan()) == {}

    def test_vm_only(self):
        tools = required_tools(Plan(vm=ManagedVM(vmid=100)))
        assert set(tools) == {'qm', 'pct'}

    def test_mounts_need_mount_tools(self):
        plan = Plan(mounts=[MountSpec(kind='nfs', source='a:/x', target='/mnt/a')])
        assert set(required_tools(plan)) == {'mount', 'umount', 'mountpoint'}

    def test_ping_check_needs_ping(self):
        vm = ManagedVM(vmid=100, health_check=HealthCheck(kind='ping', host='nas'))
        assert 'ping' in required_tools(Plan(vm=vm))

    def test_http_check_does_not_need_ping(self):
        vm = ManagedVM(vmid=100, health_check=HealthCheck(kind='http', host='nas'))
        assert 'ping' not in required_tools(Plan(vm=vm))

    def test_containers_need_guest_tools(self):
        plan = Plan(containers=[ContainerSpec(ctid=101)])
        assert 'pct' in required_tools(plan)


class TestValidateReadiness:
    def test_ready(self):
        with patch('validation.os.geteuid', return_value=0), \
             patch('validation.shutil.which', return_value='/usr/bin/x'):
            assert validate_readiness(Plan(vm=ManagedVM(vmid=100))) == []

    def test_collects_all_errors(self):
        with patch('validation.os.geteuid', return_value=1000), \
             patch('validation.shutil.which', return_value=None):
            errors = validate_readiness(Plan(vm=ManagedVM(vmid=100)))
            # root + qm + pct
            assert len(errors) == 3

    def test_skip_root_check(self):
        with patch('validation.os.geteuid', return_value=1000), \
             patch('validation.shutil.which', return_value='/usr/bin/x'):
            assert validate_readiness(Plan(), check_root=False) == []

    def test_missing_credentials_is_only_a_warning(self, caplog):
        plan = Plan(mounts=[MountSpec(kind='cifs', source='//nas/x', target='/mnt/x',
                                      credentials='/nonexistent/creds')])
        with patch('validation.os.geteuid', return_value=0), \
             patch('validation.shutil.which', return_value='/usr/bin/x'):
            assert validate_readiness(plan) == []
        assert 'Credentials file' in caplog.text


class TestFormatErrors:
    def test_multiline_errors_indented(self):
        text = format_errors(["Required command 'qm' not found\n  Install: pve"])
        assert "  ✗ Required command 'qm' not found" in text
        assert "      Install: pve" in text

    def test_custom_heading(self):
        assert format_errors(['x'], heading='Problems:').startswith('Problems:')
