"""Host environment detection for kmodbuild."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Tuple

from kmodbuild.config import Settings
from kmodbuild.constants import (
    INSTALL_HINT_LABELS,
    INSTALL_HINTS,
    KERNEL_VERSION_FILE,
    OS_FAMILY_ALIASES,
    OS_RELEASE_FILE,
    VENDOR_VERSION_CMD,
    VERSION_RE,
)
from kmodbuild.exceptions import HostEnvironmentError
from kmodbuild.models import HostProfile
from kmodbuild.utils import log, read_text, run

_CLANG_VERSION_RE = re.compile(r"clang version ([0-9][0-9.]*)")
# "gcc version 13.2.0", "gcc (GCC) 13.2.1 20230801" or "gcc-13 (Ubuntu 13.2.0-4ubuntu3) 13.2.0"
_GCC_VERSION_RE = re.compile(r"gcc[\w.-]*(?: version| \([^)]*\))? ([0-9][0-9.]*)")


def detect_compiler(text: str) -> Tuple[str, str]:
    """Return (kind, version) from kernel version metadata.

    clang is checked first: clang-built kernels can still mention gcc in
    their banner, the reverse never happens.
    """
    if "clang" in text:
        match = _CLANG_VERSION_RE.search(text)
        return "clang", match.group(1) if match else ""
    if "gcc" in text:
        match = _GCC_VERSION_RE.search(text)
        return "gcc", match.group(1) if match else ""
    return "unknown", ""


def parse_product_version(output: str) -> str:
    match = VERSION_RE.search(output)
    if not match:
        raise HostEnvironmentError(
            "Could not detect VMware version",
            [f"'{' '.join(VENDOR_VERSION_CMD)}' printed: {output.strip()[:80] or '<nothing>'}"],
        )
    return match.group(0)


def detect_os_family(os_release: Path = OS_RELEASE_FILE) -> str:
    ids = []
    for line in read_text(os_release).splitlines():
        key, _, raw = line.partition("=")
        if key in ("ID", "ID_LIKE"):
            ids.extend(raw.strip().strip('"').lower().split())
    for candidate in ids:
        family = OS_FAMILY_ALIASES.get(candidate)
        if family:
            return family
        if candidate.startswith("opensuse"):
            return "suse"
    return "unknown"


def headers_hints(os_family: str) -> list:
    families = [os_family] if os_family in INSTALL_HINTS else sorted(INSTALL_HINTS)
    return [f"{INSTALL_HINT_LABELS[name]}: {INSTALL_HINTS[name]['headers']}" for name in families]


def _read_product_version(settings: Settings) -> str:
    if not settings.vendor_dir.is_dir():
        raise HostEnvironmentError(
            "VMware Workstation is not installed!",
            ["Please install VMware Workstation first."],
        )
    try:
        result = run(VENDOR_VERSION_CMD, check=False, capture_output=True)
    except OSError as exc:
        raise HostEnvironmentError(f"Could not detect VMware version: {exc}")
    if result.returncode != 0:
        raise HostEnvironmentError(
            f"Could not detect VMware version ('{' '.join(VENDOR_VERSION_CMD)}' exited {result.returncode})"
        )
    first_line = (result.stdout or "").splitlines()[:1]
    return parse_product_version(first_line[0] if first_line else "")


def probe_host(
    settings: Settings,
    require_headers: bool = True,
    version_file: Path = KERNEL_VERSION_FILE,
    os_release: Path = OS_RELEASE_FILE,
) -> HostProfile:
    """Inspect the host; read-only."""
    product_version = _read_product_version(settings)
    log("SUCCESS", f"Detected VMware Workstation version: {product_version}")

    os_family = detect_os_family(os_release)
    headers_present = (settings.kernel_build_dir / "Makefile").is_file()
    if not headers_present:
        message = f"Kernel build directory not found ({settings.kernel_build_dir}). Please install kernel headers"
        if require_headers:
            raise HostEnvironmentError(message, headers_hints(os_family))
        log("WARN", message)

    kind, version = detect_compiler(read_text(version_file))
    if kind == "unknown":
        log("WARN", "Could not detect kernel compiler")
    else:
        log("SUCCESS", f"Detected kernel compiler: {kind} {version}".rstrip())

    return HostProfile(
        product_version=product_version,
        kernel_release=settings.kernel_release,
        kernel_compiler_kind=kind,
        kernel_compiler_version=version,
        headers_present=headers_present,
        os_family=os_family,
    )
