"""sudo credential session: authentication, keep-alive and re-authentication.

The session never stores the secret. It is handed to ``sudo -S -v`` over
stdin once, then a background thread keeps checking with ``sudo -n -v`` that
the credential timestamp is still valid. When it is not, the thread raises
the reauth flag and the foreground prompts again before the next privileged
command.
"""

from __future__ import annotations

import getpass
import subprocess
import threading
import time
from abc import ABC, abstractmethod
from enum import Enum
from typing import Callable, Optional

from rmdbctl.constants import DEFAULT_KEEPALIVE_INTERVAL, ESCALATION_TOOL
from rmdbctl.exceptions import AuthError, IncorrectSecret, ManagerError, ValidationUnconfirmed
from rmdbctl.utils import log

Prompt = Callable[[str], str]


class SessionState(Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    REAUTH_REQUIRED = "reauth-required"
    SHUT_DOWN = "shut-down"


class Authenticator(ABC):
    """Process boundary for the escalation tool."""

    @abstractmethod
    def submit(self, secret: str) -> Optional[int]:
        """Hand ``secret`` to the escalation tool; return its exit code (None if it never ran)."""

    @abstractmethod
    def validate(self) -> bool:
        """Non-interactive check that a credential timestamp exists."""


class SudoAuthenticator(Authenticator):
    def __init__(self, runner=subprocess.run) -> None:
        self._runner = runner

    def submit(self, secret: str) -> Optional[int]:
        # -p '' silences the prompt; the secret goes over stdin, never argv.
        try:
            proc = self._runner(
                [ESCALATION_TOOL, "-S", "-p", "", "-v"],
                input=secret + "\n",
                capture_output=True,
                encoding="utf-8",
                errors="replace",
                check=False,
            )
        except OSError as exc:
            log("ERROR", f"Failed to start sudo: {exc}")
            return None
        return proc.returncode

    def validate(self) -> bool:
        try:
            proc = self._runner(
                [ESCALATION_TOOL, "-n", "-v"],
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                check=False,
            )
        except OSError:
            return False
        return proc.returncode == 0


class KeepAlive:
    """Single background thread that probes the credential on a fixed interval.

    It talks to the foreground only through ``reauth`` (set on a failed probe)
    and ``stop`` (set by the owner). Both are ``threading.Event`` objects, so
    reads and writes are atomic without a lock.
    """

    def __init__(self, authenticator: Authenticator, interval: float, reauth: threading.Event) -> None:
        self.authenticator = authenticator
        self.interval = interval
        self.reauth = reauth
        self.stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def tick(self) -> bool:
        ok = self.authenticator.validate()
        if not ok:
            if not self.reauth.is_set():
                log("WARN", "sudo credential expired; re-authentication required")
            self.reauth.set()
        return ok

    def _run(self) -> None:
        while not self.stop_event.is_set():
            self.tick()
            self.stop_event.wait(self.interval)

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._run, name="sudo-keepalive", daemon=True)
        self._thread.start()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def stop(self) -> None:
        self.stop_event.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None


class CredentialSession:
    def __init__(
        self,
        authenticator: Optional[Authenticator] = None,
        keepalive_interval: float = DEFAULT_KEEPALIVE_INTERVAL,
        settle_delay: float = 0.2,
        sleep=time.sleep,
    ) -> None:
        self.authenticator = authenticator or SudoAuthenticator()
        self.keepalive_interval = keepalive_interval
        self.settle_delay = settle_delay
        self._sleep = sleep
        self._state = SessionState.UNAUTHENTICATED
        self._reauth = threading.Event()
        self._keepalive: Optional[KeepAlive] = None

    @property
    def state(self) -> SessionState:
        if self._state is SessionState.AUTHENTICATED and self._reauth.is_set():
            return SessionState.REAUTH_REQUIRED
        return self._state

    @property
    def authenticated(self) -> bool:
        return self.state is SessionState.AUTHENTICATED

    def authenticate(self, secret: str) -> None:
        """Establish the credential; both confirmations must pass.

        Raises IncorrectSecret when sudo rejects the secret and
        ValidationUnconfirmed when sudo accepted it but a separate
        non-interactive probe cannot see a valid timestamp.
        """
        if self._state is SessionState.SHUT_DOWN:
            raise ManagerError("Credential session has been shut down")
        previous = self._state
        self._state = SessionState.AUTHENTICATING
        code = self.authenticator.submit(secret)
        if code != 0:
            self._state = previous
            raise IncorrectSecret("Incorrect password: sudo rejected the credential")
        # Give sudo time to write its timestamp before probing it.
        self._sleep(self.settle_delay)
        if not self.authenticator.validate():
            self._state = previous
            raise ValidationUnconfirmed("Authentication could not be verified with sudo -n -v")
        self._state = SessionState.AUTHENTICATED
        log("SUCCESS", "sudo authentication succeeded")

    def needs_reauth(self) -> bool:
        return self._reauth.is_set()

    def clear_reauth_flag(self) -> None:
        self._reauth.clear()

    def start_keepalive(self) -> None:
        if self._state is not SessionState.AUTHENTICATED:
            raise ManagerError("Cannot start keep-alive before authenticating")
        if self._keepalive is None:
            self._keepalive = KeepAlive(self.authenticator, self.keepalive_interval, self._reauth)
            self._keepalive.start()
            log("DEBUG", f"sudo keep-alive started (every {self.keepalive_interval:g}s)")

    @property
    def keepalive(self) -> Optional[KeepAlive]:
        return self._keepalive

    def ensure_fresh(self, prompt: Prompt = getpass.getpass) -> bool:
        """Re-authenticate if the keep-alive flagged an expired credential.

        Returns False when the operator cancels the prompt.
        """
        if not self.needs_reauth():
            return True
        log("WARN", "Your sudo session has expired")
        if not authenticate_interactive(self, prompt):
            return False
        self.clear_reauth_flag()
        return True

    def shutdown(self) -> None:
        if self._keepalive is not None:
            self._keepalive.stop()
            self._keepalive = None
        self._state = SessionState.SHUT_DOWN

    def __enter__(self) -> "CredentialSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()


def authenticate_interactive(
    session: CredentialSession,
    prompt: Prompt = getpass.getpass,
    message: str = "[sudo] password: ",
    max_attempts: Optional[int] = None,
) -> bool:
    """Prompt until authentication succeeds; False if the operator cancels."""
    attempt = 0
    while max_attempts is None or attempt < max_attempts:
        attempt += 1
        try:
            secret = prompt(message)
        except (EOFError, KeyboardInterrupt):
            log("WARN", "Authentication cancelled")
            return False
        try:
            session.authenticate(secret)
        except AuthError as exc:
            log("ERROR", f"{exc}. Try again or press Ctrl+D to cancel.")
            continue
        return True
    log("ERROR", f"Authentication failed after {attempt} attempts")
    return False
