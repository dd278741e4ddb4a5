"""Existence reconciliation: one verdict per container name from many signals.

Listing commands are unreliable under partial privilege, partial installation
and version skew, so they only say whether the runtime *recognises* a name.
Whether a container *exists* is decided by the filesystem: a directory under
one of the storage roots holding a ``config`` file or a ``rootfs`` tree.
"""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional, Sequence

from rmdbctl.capabilities import detect_listing_strategy
from rmdbctl.constants import (
    CONTAINER_CONFIG_FILE,
    CONTAINER_ROOTFS_DIR,
    STATE_FIELD_RE,
)
from rmdbctl.exceptions import ExecError
from rmdbctl.listing import ListingStrategy
from rmdbctl.models import CommandResult, ContainerRecord, ContainerStatus, ExistenceVerdict, Settings
from rmdbctl.utils import (
    filter_container_names,
    is_well_formed_container_name,
    log,
    quote_path,
    require_container_name,
)


class ExistenceReconciler:
    def __init__(
        self,
        executor,
        settings: Settings,
        strategies: Optional[Sequence[ListingStrategy]] = None,
    ) -> None:
        self.executor = executor
        self.storage_roots = tuple(settings.storage_roots)
        if strategies is None:
            strategies = detect_listing_strategy(executor.capabilities)
        self.strategies = list(strategies)

    def collect_listings(self, notes: Optional[List[str]] = None) -> List[ContainerRecord]:
        """Run every strategy with and without sudo; keep every validated record."""
        if notes is None:
            notes = []
        records: List[ContainerRecord] = []
        escalate = self.executor.can_escalate()
        if not escalate:
            notes.append("privileged listings skipped: sudo not available in this mode")
        for strategy in self.strategies:
            for privileged in (True, False):
                if privileged and not escalate:
                    continue
                label = f"{strategy.name}{' (sudo)' if privileged else ''}"
                try:
                    found = strategy.enumerate(self.executor, privileged)
                except ExecError as exc:
                    notes.append(f"{label} failed: {exc}")
                    continue
                log("DEBUG", f"{label}: {', '.join(r.name for r in found) or 'nothing'}")
                records.extend(found)
        return records

    def known_by_listing(self, notes: Optional[List[str]] = None) -> Dict[str, ContainerRecord]:
        """Deduplicate listings by name, keeping the first record with a known status."""
        merged: Dict[str, ContainerRecord] = {}
        for record in self.collect_listings(notes):
            current = merged.get(record.name)
            if current is None or (
                current.status is ContainerStatus.UNKNOWN and record.status is not ContainerStatus.UNKNOWN
            ):
                merged[record.name] = record
        return merged

    def test_path(self, flag: str, path: Path) -> bool:
        """``test -f``/``test -d`` as the current user, then through sudo if allowed."""
        check = path.is_file if flag == "-f" else path.is_dir
        try:
            if check():
                return True
        except OSError:
            pass  # unreadable parent; fall through to sudo
        if not self.executor.can_escalate():
            return False
        return self.executor.succeeds(f"test {flag} {quote_path(path)}", requires_privilege=True)

    def is_valid_container_dir(self, path: Path) -> bool:
        return self.test_path("-f", path / CONTAINER_CONFIG_FILE) or self.test_path(
            "-d", path / CONTAINER_ROOTFS_DIR
        )

    def find_storage(self, name: str, notes: Optional[List[str]] = None) -> Optional[Path]:
        """Return the first storage directory for ``name`` that is a real container."""
        for root in self.storage_roots:
            candidate = root / name
            if not self.test_path("-d", candidate):
                continue
            if self.is_valid_container_dir(candidate):
                return candidate
            if notes is not None:
                notes.append(f"{candidate} has neither {CONTAINER_CONFIG_FILE} nor {CONTAINER_ROOTFS_DIR}/")
        return None

    def fully_removed(self, name: str) -> bool:
        """True when no directory for ``name`` is left under any storage root."""
        return not any(self.test_path("-d", root / name) for root in self.storage_roots)

    def discover_on_disk(self) -> List[str]:
        """Names of every directory under the storage roots (well-formed names only, unordered)."""
        names: List[str] = []
        for root in self.storage_roots:
            try:
                names.extend(entry.name for entry in root.iterdir() if not entry.name.startswith("."))
                continue
            except OSError:
                pass
            if not self.executor.can_escalate():
                continue
            try:
                result = self.executor.run(f"ls -1 {quote_path(root)}", requires_privilege=True)
            except ExecError as exc:
                log("DEBUG", f"Cannot list {root}: {exc}")
                continue
            if result.ok:
                names.extend(result.stdout.splitlines())
        return filter_container_names(names, accept=is_well_formed_container_name)

    def probe(self, command: str) -> Optional[CommandResult]:
        """Run a read-only query through sudo when allowed, then as the user.

        Returns the first successful result, else the last result seen (None
        when every attempt was refused or failed to launch).
        """
        result = None
        privileges = (True, False) if self.executor.can_escalate() else (False,)
        for privileged in privileges:
            try:
                result = self.executor.run(command, requires_privilege=privileged)
            except ExecError as exc:
                log("DEBUG", f"{command}: {exc}")
                continue
            if result.ok:
                return result
        return result

    def query_runtime_status(self, name: str) -> ContainerStatus:
        """State as reported by ``lxc-info -s`` or ``lxc list``; UNKNOWN if neither answers."""
        result = self.probe(f"lxc-info -n {name} -s")
        if result is not None and result.ok:
            match = STATE_FIELD_RE.search(result.stdout)
            status = ContainerStatus.parse(match.group(1) if match else None)
            if status is not ContainerStatus.UNKNOWN:
                return status
        if self.executor.capabilities.has("lxc"):
            result = self.probe(f"lxc list {name} --format csv -c s")
            if result is not None and result.ok and result.stdout.strip():
                status = ContainerStatus.parse(result.stdout.strip().splitlines()[0])
                if status is not ContainerStatus.UNKNOWN:
                    return status
        return ContainerStatus.UNKNOWN

    def query_status(self, name: str) -> ContainerStatus:
        """Runtime state of ``name``; a working ``lxc-attach`` counts as RUNNING."""
        status = self.query_runtime_status(name)
        if status is ContainerStatus.UNKNOWN and self.attach_probe(name):
            return ContainerStatus.RUNNING
        return status

    def attach_probe(self, name: str) -> bool:
        """Run a no-op inside the container; True on exit status 0."""
        result = self.probe(f"lxc-attach -n {name} -- true")
        return result is not None and result.ok

    def verify(self, name: str, probe_runtime: bool = True) -> ExistenceVerdict:
        verdict = ExistenceVerdict(name=require_container_name(name))
        primary = {strategy.name for strategy in self.strategies if strategy.primary}
        for record in self.collect_listings(verdict.notes):
            if record.name != name:
                continue
            if record.source in primary:
                verdict.listed_by_primary = True
            else:
                verdict.listed_by_secondary = True

        verdict.storage_path = self.find_storage(name, verdict.notes)
        verdict.on_filesystem = verdict.storage_path is not None

        if verdict.ghost:
            verdict.notes.append("listed by the runtime but no valid container directory exists (ghost)")
        elif verdict.exists and not verdict.managed:
            verdict.notes.append("container directory exists but no listing command recognises it")
        elif not verdict.exists:
            verdict.notes.append("not found by any listing command nor on disk")

        if verdict.exists and probe_runtime:
            verdict.status = self.query_runtime_status(name)
            verdict.status_queryable = verdict.status is not ContainerStatus.UNKNOWN
            verdict.attach_succeeds = self.attach_probe(name)
            if not verdict.status_queryable:
                verdict.notes.append("status could not be queried")
                if verdict.attach_succeeds:
                    verdict.status = ContainerStatus.RUNNING
            elif not verdict.is_running:
                verdict.notes.append(f"container is not running (status: {verdict.status.value})")
            if not verdict.attach_succeeds:
                verdict.notes.append("lxc-attach probe failed")
        return verdict

    def list_containers(self) -> List[ContainerRecord]:
        """Every existing container, from listings and disk, sorted by name."""
        listed = self.known_by_listing()
        candidates = set(listed) | set(self.discover_on_disk())
        containers: List[ContainerRecord] = []
        for name in sorted(candidates):
            storage = self.find_storage(name)
            if storage is None:
                continue
            record = listed.get(name)
            status = record.status if record is not None else ContainerStatus.UNKNOWN
            if status is ContainerStatus.UNKNOWN:
                status = self.query_status(name)
            source = record.source if record is not None else "filesystem"
            containers.append(ContainerRecord(name=name, status=status, source=source))
        return containers

    def find_ghosts(self) -> List[str]:
        """Names the runtime lists that have no valid directory on disk."""
        return sorted(name for name in self.known_by_listing() if self.find_storage(name) is None)
