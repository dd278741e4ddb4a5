"""Container lifecycle: create, start, stop, destroy and ghost cleanup."""

from __future__ import annotations

import shlex
import time
from pathlib import Path
from typing import Callable, Optional

from rmdbctl.capabilities import detect_template_availability
from rmdbctl.constants import (
    ARCH_FIELD_RE,
    CONTAINER_CONFIG_FILE,
    DEFAULT_LXC_CONFIG,
    IP_FIELD_RE,
    LOCK_FILE_NAME,
    SYSTEM_STORAGE_ROOT,
    USERNS_INCLUDE,
)
from rmdbctl.exceptions import ContainerExists, ExecError, Failed, ManagerError
from rmdbctl.models import (
    CommandResult,
    ContainerDetails,
    ContainerStatus,
    ExistenceVerdict,
    LifecycleResult,
    Outcome,
    Settings,
)
from rmdbctl.reconciler import ExistenceReconciler
from rmdbctl.utils import log, quote_path, require_container_name


class ContainerLifecycle:
    """Mutating container operations, each re-checked against the reconciler.

    A tool exiting 0 only means the tool believes it worked. Create, start and
    stop poll for the effect afterwards and report ``Outcome.UNVERIFIED`` when
    it never shows up within the retry budget.
    """

    def __init__(
        self,
        executor,
        settings: Settings,
        reconciler: Optional[ExistenceReconciler] = None,
        sleep=time.sleep,
    ) -> None:
        self.executor = executor
        self.settings = settings
        self.reconciler = reconciler or ExistenceReconciler(executor, settings)
        self._sleep = sleep

    @property
    def capabilities(self):
        return self.executor.capabilities

    def verify(self, name: str) -> ExistenceVerdict:
        return self.reconciler.verify(name)

    def _wait_for(self, predicate: Callable[[], bool]) -> bool:
        """Poll ``predicate`` with a linearly growing delay; bounded by ``verify_attempts``."""
        self._sleep(self.settings.verify_initial_delay)
        attempts = self.settings.verify_attempts
        for attempt in range(1, attempts + 1):
            if predicate():
                return True
            if attempt < attempts:
                log("DEBUG", f"Not confirmed yet (attempt {attempt}/{attempts})")
                self._sleep(self.settings.verify_backoff * attempt)
        return False

    def ensure_default_config(self, config_path: Optional[Path] = None) -> Path:
        """Write a default LXC config if none exists yet; return its path."""
        if config_path is None:
            config_path = self.capabilities.lxc_config_path
        if config_path.exists():
            log("DEBUG", f"LXC config present: {config_path}")
            return config_path
        content = DEFAULT_LXC_CONFIG.format(
            userns=USERNS_INCLUDE if self.capabilities.needs_root_for_lxc else "",
            container_path=self.capabilities.lxc_container_path,
        )
        log("INFO", f"Creating default LXC configuration at {config_path}")
        try:
            config_path.parent.mkdir(parents=True, exist_ok=True)
            config_path.write_text(content)
            return config_path
        except OSError as exc:
            if not self.executor.can_escalate():
                raise Failed(f"Unable to write {config_path}: {exc}") from exc
        parent = quote_path(config_path.parent)
        result = self.executor.run(
            f"mkdir -p {parent} && printf '%s' {shlex.quote(content)} > {quote_path(config_path)}",
            requires_privilege=True,
        )
        if not result.ok:
            raise Failed(f"Unable to write {config_path}: {result.stderr.strip() or 'exit ' + str(result.exit_code)}")
        return config_path

    def create(
        self,
        name: str,
        template: Optional[str] = None,
        release: Optional[str] = None,
        dist: Optional[str] = None,
        arch: Optional[str] = None,
    ) -> LifecycleResult:
        require_container_name(name)
        template = template or self.settings.template
        release = release or self.settings.release
        dist = dist or self.settings.dist
        arch = arch or self.settings.arch

        if not self.capabilities.has_lxc_create:
            raise Failed(
                "lxc-create not found. Install LXC first: " + self.capabilities.install_hint(["lxc", "lxc-templates"])
            )

        verdict = self.reconciler.verify(name, probe_runtime=False)
        if verdict.exists:
            raise ContainerExists(f"Container '{name}' already exists at {verdict.storage_path}")
        if verdict.ghost:
            log("WARN", f"'{name}' is still listed by the runtime without a directory; consider cleanup-ghost")

        if not detect_template_availability(template, self.executor, self.settings.template_dirs):
            log("WARN", f"Template '{template}' was not detected; trying anyway")
        if self.capabilities.needs_root_for_lxc:
            self.ensure_default_config()

        log("INFO", f"Creating container {name} (template={template}, release={release})")
        result = self.executor.run(
            f"lxc-create -n {name} -t {shlex.quote(template)} -- --release {shlex.quote(release)}",
            requires_privilege=True,
        )
        if not result.ok:
            log("WARN", f"lxc-create -t {template} exited {result.exit_code}; retrying with the download template")
            result = self.executor.run(
                f"lxc-create -n {name} -t download -- --dist {shlex.quote(dist)} "
                f"--release {shlex.quote(release)} --arch {shlex.quote(arch)}",
                requires_privilege=True,
            )
        if not result.ok:
            log("ERROR", f"Failed to create container {name} (exit {result.exit_code})")
            return LifecycleResult(name, Outcome.FAILED, result, "both creation syntaxes failed")

        if self._wait_for(lambda: self.reconciler.verify(name, probe_runtime=False).exists):
            log("SUCCESS", f"Container {name} created")
            return LifecycleResult(name, Outcome.SUCCEEDED, result)
        log("WARN", f"lxc-create reported success but {name} could not be confirmed on disk")
        return LifecycleResult(name, Outcome.UNVERIFIED, result, "created but not yet observable")

    def find_config_path(self, name: str) -> Optional[Path]:
        for root in self.reconciler.storage_roots:
            candidate = root / name / CONTAINER_CONFIG_FILE
            if self.reconciler.test_path("-f", candidate):
                return candidate
        return None

    @staticmethod
    def _control_command(action: str, name: str, config: Optional[Path]) -> str:
        if config is not None:
            return f"lxc-{action} -f {quote_path(config)} -n {name}"
        return f"lxc-{action} -P {quote_path(SYSTEM_STORAGE_ROOT)} -n {name}"

    def _control(self, action: str, name: str) -> CommandResult:
        config = self.find_config_path(name)
        if config is None:
            log("DEBUG", f"No config file found for {name}; letting lxc-{action} resolve it")
        result = self.executor.run(self._control_command(action, name, config), requires_privilege=True)
        if not result.ok and config is None:
            fallback = SYSTEM_STORAGE_ROOT / name / CONTAINER_CONFIG_FILE
            if self.reconciler.test_path("-f", fallback):
                log("INFO", f"Retrying lxc-{action} with {fallback}")
                result = self.executor.run(self._control_command(action, name, fallback), requires_privilege=True)
        return result

    def _transition(self, action: str, name: str, target: ContainerStatus) -> LifecycleResult:
        require_container_name(name)
        result = self._control(action, name)
        if not result.ok:
            log("ERROR", f"lxc-{action} {name} failed (exit {result.exit_code})")
            return LifecycleResult(name, Outcome.FAILED, result, f"lxc-{action} failed")
        if self._wait_for(lambda: self.reconciler.query_status(name) is target):
            log("SUCCESS", f"Container {name} is {target.value}")
            return LifecycleResult(name, Outcome.SUCCEEDED, result)
        log("WARN", f"lxc-{action} reported success but {name} is not confirmed {target.value}")
        return LifecycleResult(name, Outcome.UNVERIFIED, result, f"not confirmed {target.value}")

    def start(self, name: str) -> LifecycleResult:
        return self._transition("start", name, ContainerStatus.RUNNING)

    def stop(self, name: str) -> LifecycleResult:
        return self._transition("stop", name, ContainerStatus.STOPPED)

    def destroy(self, name: str) -> LifecycleResult:
        """Stop then force-destroy ``name``. Destroying a missing container succeeds."""
        require_container_name(name)
        try:
            self.executor.run(
                self._control_command("stop", name, self.find_config_path(name)), requires_privilege=True
            )
        except Failed as exc:
            log("DEBUG", f"Pre-destroy stop failed: {exc}")
        self._sleep(self.settings.destroy_settle)

        result = self.executor.run(f"lxc-destroy -f -n {name}", requires_privilege=True)
        if result.ok:
            log("SUCCESS", f"Container {name} destroyed")
            return LifecycleResult(name, Outcome.SUCCEEDED, result)
        if self.reconciler.fully_removed(name):
            log("INFO", f"Container {name} does not exist; nothing to destroy")
            return LifecycleResult(name, Outcome.SUCCEEDED, result, "already absent")
        log("ERROR", f"Failed to destroy container {name} (exit {result.exit_code})")
        return LifecycleResult(name, Outcome.FAILED, result, "lxc-destroy failed")

    def cleanup_ghost(self, name: str) -> bool:
        """Remove stale lock files left behind by a ghost.

        Advisory only: every failure is logged and skipped, and a later
        ``verify`` may still report the ghost. Returns False when ``name``
        is not a ghost and nothing was attempted.
        """
        verdict = self.reconciler.verify(name, probe_runtime=False)
        if not verdict.ghost:
            log("INFO", f"'{name}' is not a ghost; nothing to clean up")
            return False
        for root in self.reconciler.storage_roots:
            for lock in (root / f"{LOCK_FILE_NAME}-{name}", root / name / LOCK_FILE_NAME):
                try:
                    result = self.executor.run(f"rm -f {quote_path(lock)}", requires_privilege=True)
                except ExecError as exc:
                    log("WARN", f"Could not remove {lock}: {exc}")
                    continue
                if not result.ok:
                    log("WARN", f"Could not remove {lock} (exit {result.exit_code})")
        log("INFO", f"Ghost cleanup attempted for {name}")
        return True

    def info(self, name: str) -> ContainerDetails:
        verdict = self.reconciler.verify(name, probe_runtime=False)
        if not verdict.exists:
            raise ManagerError(f"Container '{name}' does not exist")
        status = self.reconciler.query_status(name)
        ip = ""
        if status is ContainerStatus.RUNNING:
            result = self.reconciler.probe(f"lxc-info -n {name} -i")
            match = IP_FIELD_RE.search(result.stdout) if result is not None and result.ok else None
            ip = match.group(1) if match else ""
        arch = "unknown"
        result = self.reconciler.probe(f"lxc-info -n {name} -c lxc.arch")
        if result is not None and result.ok:
            match = ARCH_FIELD_RE.search(result.stdout)
            if match:
                arch = match.group(1)
        return ContainerDetails(name=name, status=status, ip=ip, arch=arch)
