"""Global constants and path configuration for the RMDB console."""

from __future__ import annotations

import os
import re
from pathlib import Path

DEFAULT_CONFIG_PATH = Path("/etc/rmdb/console.yaml")

TRUTHY = {"1", "true", "yes", "on"}

_LOG_VERBOSE = os.environ.get("LOG_VERBOSE", "").lower() in TRUTHY

_HOME = Path(os.environ.get("HOME", "~")).expanduser()

# Order matters: system LXC first, then unprivileged user containers, then LXD.
DEFAULT_STORAGE_ROOTS = (
    Path("/var/lib/lxc"),
    _HOME / ".local/share/lxc",
    Path("/var/lib/lxd/containers"),
)
# Root handed to lxc-start/lxc-stop -P when no config file could be located.
SYSTEM_STORAGE_ROOT = Path("/var/lib/lxc")

CONTAINER_CONFIG_FILE = "config"
CONTAINER_ROOTFS_DIR = "rootfs"
LOCK_FILE_NAME = ".lxc-lock"

TEMPLATE_DIRS = (
    Path("/usr/share/lxc/templates"),
    Path("/usr/lib/lxc/templates"),
    Path("/usr/lib64/lxc/templates"),
    Path("/usr/libexec/lxc/templates"),  # RHEL/CentOS
)

OS_RELEASE_PATH = Path("/etc/os-release")

ESCALATION_TOOL = "sudo"
RUNTIME_TOOLS = (
    "lxc-create",
    "lxc-ls",
    "lxc",
    "lxc-info",
    "lxc-attach",
    "lxc-start",
    "lxc-stop",
    "lxc-destroy",
)

CONTAINER_NAME_RE = re.compile(r"^[A-Za-z0-9_-]+$")
MAX_CONTAINER_NAME_LEN = 50
# Single-word fragments that tools print on stdout when they fail.
ERROR_TOKENS = {"error", "usage", "sudo", "bash", "sh", "name", "permission", "denied", "failed"}

STATE_FIELD_RE = re.compile(r"^\s*State:\s*(\S+)", re.MULTILINE)
IP_FIELD_RE = re.compile(r"^\s*IP:\s*(\S+)", re.MULTILINE)
ARCH_FIELD_RE = re.compile(r"^\s*lxc\.arch\s*=\s*(\S+)", re.MULTILINE)

RHEL_FAMILY = {"rhel", "redhat", "centos"}

PACKAGE_MANAGERS = {
    "debian": "apt-get install -y",
    "ubuntu": "apt-get install -y",
    "fedora": "dnf install -y",
    "rhel": "dnf install -y",
    "centos": "dnf install -y",
    "arch": "pacman -S --noconfirm",
    "opensuse": "zypper install -y",
    "alpine": "apk add",
}

USERNS_INCLUDE = "lxc.include = /usr/share/lxc/config/userns.conf\n"

DEFAULT_LXC_CONFIG = """\
# Default LXC configuration for RMDB
lxc.include = /usr/share/lxc/config/common.conf
{userns}lxc.arch = x86_64
lxc.net.0.type = veth
lxc.net.0.link = lxcbr0
lxc.net.0.flags = up
lxc.rootfs.path = dir:{container_path}
"""

DEFAULT_KEEPALIVE_INTERVAL = 60
DEFAULT_VERIFY_ATTEMPTS = 5
DEFAULT_TEMPLATE = "alpine"
DEFAULT_RELEASE = "3.19"
DEFAULT_DIST = "alpine"
DEFAULT_ARCH = "amd64"
