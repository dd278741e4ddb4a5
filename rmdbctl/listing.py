"""Container enumeration, one strategy per generation of the LXC command line."""

from __future__ import annotations

from typing import List

from rmdbctl.models import ContainerRecord, ContainerStatus
from rmdbctl.utils import filter_container_names, is_valid_container_name

# Every state word lxc-ls --fancy can print.
LXC_STATES = {"RUNNING", "STOPPED", "FROZEN", "STARTING", "STOPPING", "ABORTING", "FREEZING", "THAWED"}


class ListingStrategy:
    """Runs one enumeration command and turns its stdout into validated records.

    Only stdout is parsed. Tools that are half-installed or lack privilege
    still print prose there, so every candidate name goes through the
    container-name validator before it becomes a record.
    """

    name = "base"
    binary = ""
    command = ""
    # Primary strategies belong to the classic lxc-* tools, secondary to lxc/LXD.
    primary = True

    def enumerate(self, executor, privileged: bool) -> List[ContainerRecord]:
        result = executor.run(self.command, requires_privilege=privileged)
        return self.parse(result.stdout)

    def parse(self, stdout: str) -> List[ContainerRecord]:
        raise NotImplementedError


class LxcLsStrategy(ListingStrategy):
    """``lxc-ls -1``: one name per line (LXC 1.x)."""

    name = "lxc-ls"
    binary = "lxc-ls"
    command = "lxc-ls -1"

    def parse(self, stdout: str) -> List[ContainerRecord]:
        return [ContainerRecord(name=name, source=self.name) for name in filter_container_names(stdout.splitlines())]


class LxcLsFancyStrategy(ListingStrategy):
    """``lxc-ls --fancy``: a NAME/STATE/... table (LXC 2.x+)."""

    name = "lxc-ls-fancy"
    binary = "lxc-ls"
    command = "lxc-ls --fancy"

    def parse(self, stdout: str) -> List[ContainerRecord]:
        records: List[ContainerRecord] = []
        seen = set()
        for line in stdout.splitlines():
            columns = line.split()
            if len(columns) < 2:
                continue
            name, state = columns[0], columns[1].upper()
            # The state column doubles as a guard against prose rows.
            if state not in LXC_STATES or not is_valid_container_name(name) or name in seen:
                continue
            seen.add(name)
            records.append(ContainerRecord(name=name, status=ContainerStatus.parse(state), source=self.name))
        return records


class LxcListCsvStrategy(ListingStrategy):
    """``lxc list --format csv -c n,s``: ``name,STATE`` rows (LXD / LXC 3.x+)."""

    name = "lxc-list"
    binary = "lxc"
    command = "lxc list --format csv -c n,s"
    primary = False

    def parse(self, stdout: str) -> List[ContainerRecord]:
        records: List[ContainerRecord] = []
        seen = set()
        for line in stdout.splitlines():
            line = line.strip()
            if not line:
                continue
            parts = [part.strip() for part in line.split(",")]
            name = parts[0]
            if not is_valid_container_name(name) or name in seen:
                continue
            status = ContainerStatus.parse(parts[1]) if len(parts) >= 2 else ContainerStatus.UNKNOWN
            seen.add(name)
            records.append(ContainerRecord(name=name, status=status, source=self.name))
        return records


ALL_STRATEGIES: List[ListingStrategy] = [LxcLsStrategy(), LxcLsFancyStrategy(), LxcListCsvStrategy()]
