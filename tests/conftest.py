"""Shared test fixtures: fake process runner, fake authenticator, settings on tmp_path."""

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Callable, List, Optional

import pytest

from rmdbctl.capabilities import HostCapabilities
from rmdbctl.credentials import Authenticator, CredentialSession
from rmdbctl.executor import CommandExecutor
from rmdbctl.models import Settings, TrustLevel


class FakeRunner:
    """Stands in for ``subprocess.run``.

    Answers by matching a fragment against the shell command (the last argv
    item). Rules added later take precedence. Anything unmatched exits 1
    with no output, like a missing tool would.
    """

    def __init__(self) -> None:
        self.calls: List[List[str]] = []
        self.kwargs: List[dict] = []
        self._rules: list = []

    def on(
        self,
        fragment: str,
        returncode: int = 0,
        stdout: str = "",
        stderr: str = "",
        privileged: Optional[bool] = None,
        effect: Optional[Callable[[], None]] = None,
    ) -> "FakeRunner":
        self._rules.append((fragment, privileged, returncode, stdout, stderr, effect))
        return self

    def __call__(self, argv, **kwargs):
        self.calls.append(list(argv))
        self.kwargs.append(kwargs)
        command = argv[-1]
        privileged = argv[0] == "sudo"
        for fragment, want_privileged, returncode, stdout, stderr, effect in reversed(self._rules):
            if fragment not in command:
                continue
            if want_privileged is not None and want_privileged != privileged:
                continue
            if effect is not None:
                effect()
            return subprocess.CompletedProcess(argv, returncode, stdout, stderr)
        return subprocess.CompletedProcess(argv, 1, "", "")

    @property
    def spawns(self) -> int:
        return len(self.calls)

    @property
    def commands(self) -> List[str]:
        return [argv[-1] for argv in self.calls]

    def ran(self, fragment: str) -> bool:
        return any(fragment in command for command in self.commands)


class FakeAuthenticator(Authenticator):
    """Scripted authenticator that never touches real credentials.

    ``submit_codes`` are consumed one per submission; the last one repeats.
    """

    def __init__(self, submit_codes=(0,), valid: bool = True) -> None:
        self.submit_codes = list(submit_codes)
        self.valid = valid
        self.submitted: List[str] = []
        self.validations = 0

    def submit(self, secret: str) -> Optional[int]:
        self.submitted.append(secret)
        if len(self.submit_codes) > 1:
            return self.submit_codes.pop(0)
        return self.submit_codes[0]

    def validate(self) -> bool:
        self.validations += 1
        return self.valid


ALL_TOOLS = frozenset(
    {"sudo", "lxc-create", "lxc-ls", "lxc-info", "lxc-attach", "lxc-start", "lxc-stop", "lxc-destroy"}
)


def make_container(root: Path, name: str, config: bool = True, rootfs: bool = False) -> Path:
    path = root / name
    path.mkdir(parents=True, exist_ok=True)
    if config:
        (path / "config").write_text(f"lxc.uts.name = {name}\n")
    if rootfs:
        (path / "rootfs").mkdir(exist_ok=True)
    return path


@pytest.fixture
def storage_roots(tmp_path):
    roots = (tmp_path / "lxc", tmp_path / "user-lxc")
    for root in roots:
        root.mkdir()
    return roots


@pytest.fixture
def settings(tmp_path, storage_roots) -> Settings:
    """Settings rooted in tmp_path with every delay at zero."""
    return Settings(
        trust=TrustLevel.ADMIN,
        storage_roots=storage_roots,
        keepalive_interval=60.0,
        command_timeout=None,
        verify_attempts=3,
        template="alpine",
        release="3.19",
        dist="alpine",
        arch="amd64",
        template_dirs=(tmp_path / "templates",),
        verify_initial_delay=0.0,
        verify_backoff=0.0,
        destroy_settle=0.0,
        auth_settle=0.0,
    )


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def capabilities() -> HostCapabilities:
    return HostCapabilities(tools=ALL_TOOLS, distro="debian")


@pytest.fixture
def authenticator() -> FakeAuthenticator:
    return FakeAuthenticator()


@pytest.fixture
def session(authenticator) -> CredentialSession:
    """An authenticated session without a keep-alive thread."""
    session = CredentialSession(authenticator, settle_delay=0, sleep=lambda _: None)
    session.authenticate("hunter2")
    yield session
    session.shutdown()


@pytest.fixture
def admin_executor(capabilities, session, runner) -> CommandExecutor:
    return CommandExecutor(TrustLevel.ADMIN, capabilities, session, runner=runner)


@pytest.fixture
def readonly_executor(capabilities, runner) -> CommandExecutor:
    return CommandExecutor(TrustLevel.READ_ONLY, capabilities, runner=runner)


# Every environment variable parse_settings() reads.
_SETTINGS_ENV_VARS = [
    "RMDB_MODE",
    "RMDB_CONFIG",
    "RMDB_STORAGE_ROOTS",
    "RMDB_KEEPALIVE_INTERVAL",
    "RMDB_COMMAND_TIMEOUT",
    "RMDB_VERIFY_ATTEMPTS",
    "RMDB_TEMPLATE",
    "RMDB_RELEASE",
    "RMDB_DIST",
    "RMDB_ARCH",
]


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """Clear every RMDB_* variable and point the default config file at a missing path."""
    for key in _SETTINGS_ENV_VARS:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setattr("rmdbctl.config.DEFAULT_CONFIG_PATH", tmp_path / "absent.yaml")
