"""Host capability detection for the RMDB console."""

from __future__ import annotations

import shlex
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, FrozenSet, Iterable, List, Optional, Sequence

from rmdbctl.constants import (
    _HOME,
    ESCALATION_TOOL,
    OS_RELEASE_PATH,
    PACKAGE_MANAGERS,
    RHEL_FAMILY,
    RUNTIME_TOOLS,
    SYSTEM_STORAGE_ROOT,
    TEMPLATE_DIRS,
)
from rmdbctl.exceptions import ExecError
from rmdbctl.listing import ALL_STRATEGIES, ListingStrategy
from rmdbctl.utils import log


@dataclass(frozen=True)
class HostCapabilities:
    """Tools and distribution found on the host, probed once at startup."""

    tools: FrozenSet[str] = field(default_factory=frozenset)
    distro: str = "unknown"

    def has(self, tool: str) -> bool:
        return tool in self.tools

    @property
    def has_sudo(self) -> bool:
        return self.has(ESCALATION_TOOL)

    @property
    def has_lxc_create(self) -> bool:
        return self.has("lxc-create")

    @property
    def needs_root_for_lxc(self) -> bool:
        return self.distro in RHEL_FAMILY

    @property
    def lxc_config_path(self) -> Path:
        if self.needs_root_for_lxc and Path("/etc/lxc").exists():
            return Path("/etc/lxc/default.conf")
        return _HOME / ".config/lxc/default.conf"

    @property
    def lxc_container_path(self) -> Path:
        if SYSTEM_STORAGE_ROOT.exists():
            return SYSTEM_STORAGE_ROOT
        return _HOME / ".local/share/lxc"

    def install_hint(self, packages: Sequence[str]) -> str:
        prefix = PACKAGE_MANAGERS.get(self.distro, "<package manager> install")
        return f"sudo {prefix} {' '.join(packages)}"

    @classmethod
    def detect(
        cls,
        which: Callable[[str], Optional[str]] = shutil.which,
        os_release: Path = OS_RELEASE_PATH,
    ) -> "HostCapabilities":
        found = frozenset(tool for tool in (ESCALATION_TOOL,) + RUNTIME_TOOLS if which(tool))
        distro = detect_distribution(os_release)
        log("DEBUG", f"Host capabilities: distro={distro}, tools={', '.join(sorted(found)) or 'none'}")
        return cls(tools=found, distro=distro)


def detect_distribution(os_release: Path = OS_RELEASE_PATH) -> str:
    """Return the lower-cased ``ID`` from os-release, or ``unknown``."""
    try:
        content = os_release.read_text()
    except OSError:
        return "unknown"
    for line in content.splitlines():
        if line.startswith("ID="):
            value = line.split("=", 1)[1].strip().strip('"').strip("'").lower()
            if value == "redhat":
                return "rhel"
            if value.startswith("opensuse"):
                return "opensuse"
            return value or "unknown"
    return "unknown"


def detect_listing_strategy(capabilities: HostCapabilities) -> List[ListingStrategy]:
    """Return every listing strategy usable on this host.

    More than one generation of the runtime CLI can be partially installed, so
    callers run all of them and merge the results instead of picking one.
    """
    usable = [strategy for strategy in ALL_STRATEGIES if capabilities.has(strategy.binary)]
    if not usable:
        log("WARN", "No LXC listing command found on this host")
    return usable


def detect_template_availability(
    template: str,
    executor,
    template_dirs: Iterable[Path] = TEMPLATE_DIRS,
) -> bool:
    """Advisory check that the LXC template ``template`` is installed.

    Known to miss templates installed in non-standard places (notably on
    RHEL), so a negative answer should only ever produce a warning.
    """
    for directory in template_dirs:
        if (directory / f"lxc-{template}").exists():
            return True
    if not executor.capabilities.has_lxc_create:
        return False
    # lxc-create prints the template's own help when the template resolves.
    try:
        result = executor.run(f"lxc-create -t {shlex.quote(template)} -h 2>&1", requires_privilege=False)
    except ExecError as exc:
        log("DEBUG", f"Template probe failed: {exc}")
        return False
    return result.ok and template.lower() in result.stdout.lower()
