"""Shell command execution behind the privilege gate."""

from __future__ import annotations

import subprocess
from typing import Callable, List, Optional

from rmdbctl.capabilities import HostCapabilities
from rmdbctl.constants import ESCALATION_TOOL
from rmdbctl.exceptions import ExecError, Failed, NotAllowed
from rmdbctl.models import CommandResult, TrustLevel
from rmdbctl.policy import authorize
from rmdbctl.utils import log

Runner = Callable[..., subprocess.CompletedProcess]


class CommandExecutor:
    """Run shell commands as the current user or through ``sudo -n``.

    Privileged commands never prompt: they rely on the sudo timestamp that the
    credential session established beforehand. Exit codes are returned, not
    interpreted; only refusals and launch failures raise.
    """

    def __init__(
        self,
        trust: TrustLevel,
        capabilities: HostCapabilities,
        session=None,
        runner: Runner = subprocess.run,
        timeout: Optional[float] = None,
    ) -> None:
        self.trust = trust
        self.capabilities = capabilities
        self.session = session
        self._runner = runner
        self.timeout = timeout

    def _check(self, requires_privilege: bool) -> None:
        authorize(requires_privilege, self.trust, self.capabilities.has_sudo)
        if requires_privilege and (self.session is None or not self.session.authenticated):
            raise NotAllowed("Admin action refused: sudo session is not authenticated")

    def can_escalate(self) -> bool:
        try:
            self._check(True)
        except ExecError:
            return False
        return True

    def _argv(self, command: str, requires_privilege: bool) -> List[str]:
        if requires_privilege:
            return [ESCALATION_TOOL, "-n", "sh", "-c", command]
        return ["sh", "-lc", command]

    def run(self, command: str, requires_privilege: bool = False) -> CommandResult:
        self._check(requires_privilege)
        argv = self._argv(command, requires_privilege)
        log("DEBUG", f"Running{' (sudo)' if requires_privilege else ''}: {command}")
        try:
            proc = self._runner(
                argv,
                capture_output=True,
                encoding="utf-8",
                errors="replace",
                check=False,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired:
            raise Failed(f"Command timed out after {self.timeout}s: {command}")
        except OSError as exc:
            raise Failed(f"Unable to run command: {exc}") from exc
        return CommandResult(
            exit_code=proc.returncode if proc.returncode is None or proc.returncode >= 0 else None,
            stdout=proc.stdout or "",
            stderr=proc.stderr or "",
        )

    def succeeds(self, command: str, requires_privilege: bool = False) -> bool:
        """Run ``command`` and report exit status 0; refusals count as failure."""
        try:
            return self.run(command, requires_privilege).ok
        except ExecError as exc:
            log("DEBUG", f"{command}: {exc}")
            return False
