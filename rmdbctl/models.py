"""Data models for the RMDB console."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional, Tuple


class TrustLevel(Enum):
    READ_ONLY = "readonly"
    SAFE = "safe"
    ADMIN = "admin"

    @classmethod
    def parse(cls, raw: str) -> "TrustLevel":
        key = raw.strip().lower().replace("-", "").replace("_", "")
        for level in cls:
            if level.value == key:
                return level
        supported = ", ".join(level.value for level in cls)
        raise ValueError(f"Unknown mode '{raw}'. Supported: {supported}")


@dataclass(frozen=True)
class CommandResult:
    exit_code: Optional[int]  # None when the process was killed by a signal
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class ContainerStatus(Enum):
    RUNNING = "RUNNING"
    STOPPED = "STOPPED"
    FROZEN = "FROZEN"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def parse(cls, raw: Optional[str]) -> "ContainerStatus":
        """Map a runtime's state word (any case, e.g. ``Running``) to a status."""
        if not raw:
            return cls.UNKNOWN
        value = raw.strip().upper()
        for status in cls:
            if value == status.value:
                return status
        return cls.UNKNOWN


@dataclass(frozen=True)
class ContainerRecord:
    name: str
    status: ContainerStatus = ContainerStatus.UNKNOWN
    source: str = ""


@dataclass
class ExistenceVerdict:
    """Reconciled view of one container name.

    ``exists`` follows the filesystem alone; the listing flags say whether the
    runtime recognises the name. A name the runtime lists but that has no valid
    directory on disk is a ghost.
    """

    name: str
    listed_by_primary: bool = False
    listed_by_secondary: bool = False
    on_filesystem: bool = False
    status_queryable: bool = False
    attach_succeeds: bool = False
    status: ContainerStatus = ContainerStatus.UNKNOWN
    storage_path: Optional[Path] = None
    notes: List[str] = field(default_factory=list)

    @property
    def exists(self) -> bool:
        return self.on_filesystem

    @property
    def managed(self) -> bool:
        return self.listed_by_primary or self.listed_by_secondary

    @property
    def ghost(self) -> bool:
        return self.managed and not self.exists

    @property
    def operational(self) -> bool:
        return self.exists and self.attach_succeeds

    @property
    def is_running(self) -> bool:
        return self.status is ContainerStatus.RUNNING


class Outcome(Enum):
    SUCCEEDED = "succeeded"
    UNVERIFIED = "unverified"
    FAILED = "failed"


@dataclass(frozen=True)
class LifecycleResult:
    name: str
    outcome: Outcome
    result: Optional[CommandResult] = None
    message: str = ""

    @property
    def succeeded(self) -> bool:
        return self.outcome is Outcome.SUCCEEDED

    @property
    def unverified(self) -> bool:
        return self.outcome is Outcome.UNVERIFIED


@dataclass(frozen=True)
class ContainerDetails:
    name: str
    status: ContainerStatus
    ip: str = ""
    arch: str = "unknown"


@dataclass
class Settings:
    trust: TrustLevel
    storage_roots: Tuple[Path, ...]
    keepalive_interval: float
    command_timeout: Optional[float]
    verify_attempts: int
    template: str
    release: str
    dist: str
    arch: str
    template_dirs: Tuple[Path, ...]
    # Delays (seconds); tests shrink these to zero.
    verify_initial_delay: float = 0.5
    verify_backoff: float = 0.5
    destroy_settle: float = 1.0
    auth_settle: float = 0.2
