"""Global constants and path configuration for kmodbuild."""

from __future__ import annotations

import os
import re
from pathlib import Path

VENDOR_DIR = Path("/usr/lib/vmware")
VENDOR_VERSION_CMD = ["vmware", "--version"]
VENDOR_MODCONFIG_CMD = ["vmware-modconfig", "--console", "--install-all"]

KERNEL_VERSION_FILE = Path("/proc/version")
PROC_MODULES = Path("/proc/modules")
OS_RELEASE_FILE = Path("/etc/os-release")
KERNEL_MODULES_ROOT = Path("/lib/modules")
MODULE_INSTALL_SUBDIR = "misc"

DEFAULT_LOG_DIR = Path("/tmp")
DEFAULT_LOCK_FILE = Path("/tmp/kmodbuild.lock")
DEFAULT_SERVICE = "vmware"
INIT_SCRIPT_DIR = Path("/etc/init.d")

# Build order matters: vmnet links against symbols exported by vmmon.
PRIMARY_MODULE = "vmmon"
DEPENDENT_MODULE = "vmnet"
MODULES = (PRIMARY_MODULE, DEPENDENT_MODULE)

TRUTHY = {"1", "true", "yes", "on"}
VERSION_RE = re.compile(r"\d+\.\d+\.\d+")

COMPILER_KINDS = {"gcc", "clang", "unknown"}
COMPILERS = {"gcc", "clang"}
LINKERS = {"default", "lld"}
MODULE_VARIANTS = {"legacy", "modern"}
PROCEDURES = {"direct-make", "tarball-repack"}
OS_FAMILIES = {"debian", "fedora", "arch", "suse", "unknown"}
MODULE_STATES = {"absent", "loaded-but-unverified", "active"}

LLD_BINARY = "ld.lld"

# Keyed by product version prefix; first matching prefix wins.
PRODUCT_FAMILIES = {
    "17.6.": {
        "variant": "legacy",
        "module_version": "17.6.4",
        "label": "17.6.4",
    },
    "25.": {
        "variant": "modern",
        "module_version": "25.0.0",
        "label": "25.0.0+",
    },
}

OS_FAMILY_ALIASES = {
    "ubuntu": "debian",
    "debian": "debian",
    "linuxmint": "debian",
    "pop": "debian",
    "fedora": "fedora",
    "rhel": "fedora",
    "centos": "fedora",
    "rocky": "fedora",
    "almalinux": "fedora",
    "arch": "arch",
    "cachyos": "arch",
    "manjaro": "arch",
    "endeavouros": "arch",
    "opensuse": "suse",
    "suse": "suse",
    "sles": "suse",
}

INSTALL_HINTS = {
    "debian": {
        "clang": "sudo apt install clang",
        "ld.lld": "sudo apt install lld",
        "gcc": "sudo apt install build-essential",
        "make": "sudo apt install make",
        "headers": "sudo apt install linux-headers-$(uname -r)",
    },
    "fedora": {
        "clang": "sudo dnf install clang",
        "ld.lld": "sudo dnf install lld",
        "gcc": "sudo dnf install gcc",
        "make": "sudo dnf install make",
        "headers": "sudo dnf install kernel-devel",
    },
    "arch": {
        "clang": "sudo pacman -S clang",
        "ld.lld": "sudo pacman -S lld",
        "gcc": "sudo pacman -S gcc",
        "make": "sudo pacman -S make",
        "headers": "sudo pacman -S linux-headers",
    },
    "suse": {
        "clang": "sudo zypper install clang",
        "ld.lld": "sudo zypper install lld",
        "gcc": "sudo zypper install gcc",
        "make": "sudo zypper install make",
        "headers": "sudo zypper install kernel-devel",
    },
}

INSTALL_HINT_LABELS = {
    "debian": "Ubuntu/Debian",
    "fedora": "Fedora/RHEL",
    "arch": "Arch",
    "suse": "openSUSE",
}

_LOG_VERBOSE = os.environ.get("LOG_VERBOSE", "").lower() in TRUTHY
