"""Tests for rmdbctl.executor module."""

from __future__ import annotations

import shutil
import subprocess
from unittest.mock import MagicMock

import pytest

from conftest import FakeAuthenticator
from rmdbctl.capabilities import HostCapabilities
from rmdbctl.credentials import CredentialSession
from rmdbctl.exceptions import Failed, MissingEscalation, NotAllowed
from rmdbctl.executor import CommandExecutor
from rmdbctl.models import TrustLevel


class TestPolicyGate:
    @pytest.mark.parametrize("trust", [TrustLevel.READ_ONLY, TrustLevel.SAFE])
    def test_refused_privileged_command_never_spawns(self, trust, capabilities, session, runner):
        executor = CommandExecutor(trust, capabilities, session, runner=runner)
        with pytest.raises(NotAllowed):
            executor.run("lxc-destroy -f -n web01", requires_privilege=True)
        assert runner.spawns == 0

    def test_missing_sudo_never_spawns(self, session, runner):
        caps = HostCapabilities(tools=frozenset({"lxc-ls"}))
        executor = CommandExecutor(TrustLevel.ADMIN, caps, session, runner=runner)
        with pytest.raises(MissingEscalation):
            executor.run("lxc-ls -1", requires_privilege=True)
        assert runner.spawns == 0

    def test_admin_without_session_refused(self, capabilities, runner):
        executor = CommandExecutor(TrustLevel.ADMIN, capabilities, runner=runner)
        with pytest.raises(NotAllowed, match="not authenticated"):
            executor.run("lxc-ls -1", requires_privilege=True)
        assert runner.spawns == 0

    def test_admin_with_unauthenticated_session_refused(self, capabilities, runner):
        session = CredentialSession(FakeAuthenticator(submit_codes=[1]), settle_delay=0)
        executor = CommandExecutor(TrustLevel.ADMIN, capabilities, session, runner=runner)
        assert executor.can_escalate() is False
        with pytest.raises(NotAllowed):
            executor.run("lxc-ls -1", requires_privilege=True)

    def test_readonly_may_run_unprivileged(self, readonly_executor, runner):
        runner.on("lxc-ls -1", stdout="web01\n")
        result = readonly_executor.run("lxc-ls -1")
        assert result.ok
        assert result.stdout == "web01\n"
        assert runner.spawns == 1


class TestCommandWrapping:
    def test_privileged_goes_through_non_interactive_sudo(self, admin_executor, runner):
        admin_executor.run("lxc-ls -1", requires_privilege=True)
        assert runner.calls[-1] == ["sudo", "-n", "sh", "-c", "lxc-ls -1"]

    def test_unprivileged_runs_as_user(self, admin_executor, runner):
        admin_executor.run("lxc-ls -1")
        assert runner.calls[-1] == ["sh", "-lc", "lxc-ls -1"]

    def test_timeout_forwarded(self, capabilities, session, runner):
        executor = CommandExecutor(TrustLevel.ADMIN, capabilities, session, runner=runner, timeout=5.0)
        executor.run("true")
        assert runner.kwargs[-1]["timeout"] == 5.0
        assert runner.kwargs[-1]["capture_output"] is True


class TestResults:
    def test_exit_code_and_streams(self, admin_executor, runner):
        runner.on("lxc-info", returncode=3, stdout="out", stderr="err")
        result = admin_executor.run("lxc-info -n web01 -s")
        assert result.exit_code == 3
        assert result.ok is False
        assert (result.stdout, result.stderr) == ("out", "err")

    def test_killed_by_signal_has_no_exit_code(self, capabilities):
        fake = MagicMock(return_value=subprocess.CompletedProcess([], -9, "", ""))
        executor = CommandExecutor(TrustLevel.SAFE, capabilities, runner=fake)
        assert executor.run("sleep 100").exit_code is None

    def test_timeout_raises_failed(self, capabilities):
        fake = MagicMock(side_effect=subprocess.TimeoutExpired(["sh"], 5))
        executor = CommandExecutor(TrustLevel.SAFE, capabilities, runner=fake, timeout=5)
        with pytest.raises(Failed, match="timed out"):
            executor.run("sleep 100")

    def test_launch_failure_raises_failed(self, capabilities):
        fake = MagicMock(side_effect=FileNotFoundError("sh"))
        executor = CommandExecutor(TrustLevel.SAFE, capabilities, runner=fake)
        with pytest.raises(Failed, match="Unable to run command"):
            executor.run("true")

    def test_undecodable_output_is_replaced(self, capabilities):
        def run(argv, **kwargs):
            raw = b"web01\n\xff\xfe garbage\n"
            return subprocess.CompletedProcess(argv, 0, raw.decode(kwargs["encoding"], kwargs["errors"]), "")

        executor = CommandExecutor(TrustLevel.READ_ONLY, capabilities, runner=run)
        result = executor.run("lxc-ls -1")
        assert result.ok
        assert result.stdout.splitlines()[0] == "web01"
        assert "\ufffd" in result.stdout

    @pytest.mark.skipif(shutil.which("sh") is None, reason="needs a POSIX shell")
    def test_undecodable_output_from_real_process(self, capabilities):
        executor = CommandExecutor(TrustLevel.READ_ONLY, capabilities)
        result = executor.run(r"printf 'web01\n\377\376 garbage\n'")
        assert "web01" in result.stdout.splitlines()
        assert "\ufffd\ufffd garbage" in result.stdout


class TestSucceeds:
    def test_true_on_zero_exit(self, admin_executor, runner):
        runner.on("test -d")
        assert admin_executor.succeeds("test -d /var/lib/lxc/web01", requires_privilege=True) is True

    def test_refusal_counts_as_failure(self, readonly_executor, runner):
        assert readonly_executor.succeeds("test -d /x", requires_privilege=True) is False
        assert runner.spawns == 0
