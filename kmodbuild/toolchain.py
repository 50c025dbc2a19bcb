"""Compiler/linker availability checks for kmodbuild."""

from __future__ import annotations

import shutil
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from kmodbuild.constants import INSTALL_HINT_LABELS, INSTALL_HINTS, LLD_BINARY
from kmodbuild.exceptions import ToolchainMissingError
from kmodbuild.models import BuildStrategy, HostProfile, Toolchain
from kmodbuild.utils import log

Which = Callable[[str], Optional[str]]


@dataclass
class ResolvedToolchain:
    toolchain: Toolchain
    binaries: List[str]
    make_variables: List[str] = field(default_factory=list)


def install_hint(binary: str, os_family: str) -> str:
    if os_family in INSTALL_HINTS:
        return INSTALL_HINTS[os_family].get(binary, f"install {binary} with your package manager")
    hints = [
        f"{INSTALL_HINTS[name][binary]} ({INSTALL_HINT_LABELS[name]})"
        for name in sorted(INSTALL_HINTS)
        if binary in INSTALL_HINTS[name]
    ]
    return " or ".join(hints) or f"install {binary} with your package manager"


def required_binaries(strategy: BuildStrategy) -> List[str]:
    """Tools that must exist before building with ``strategy``."""
    binaries = ["make"]
    if strategy.procedure == "tarball-repack":
        # vmware-modconfig drives gcc itself, and the manual fallback forces it.
        binaries.append("gcc")
    else:
        binaries.extend(strategy.toolchain.required_binaries())
    return binaries


def missing_binaries(strategy: BuildStrategy, which: Which = shutil.which) -> List[str]:
    return [binary for binary in required_binaries(strategy) if not which(binary)]


def resolve_toolchain(
    strategy: BuildStrategy,
    profile: HostProfile,
    which: Which = shutil.which,
) -> ResolvedToolchain:
    """Fail closed on the first missing tool.

    For the modern tree this is an operator-facing pre-check only: its
    Makefiles repeat the same kernel compiler detection and pick CC/LD
    themselves, so no make variables are returned.
    """
    toolchain = strategy.toolchain
    if profile.kernel_compiler_kind == "clang":
        log("INFO", "Clang-built kernel detected - checking for Clang/LLD...")
    for binary in required_binaries(strategy):
        if which(binary):
            continue
        reason = ""
        if binary == "clang":
            reason = "Required for Clang-built kernels."
        elif binary == LLD_BINARY:
            reason = "Required for Clang-built kernels with LTO."
        raise ToolchainMissingError(binary, install_hint(binary, profile.os_family), reason)

    binaries = required_binaries(strategy)
    if strategy.toolchain_from_build_system:
        log("SUCCESS", f"{', '.join(binaries)} available; the Makefiles will select the compiler and linker")
        return ResolvedToolchain(toolchain=toolchain, binaries=binaries)

    if strategy.procedure == "tarball-repack":
        log("SUCCESS", "gcc available for vmware-modconfig")
        return ResolvedToolchain(toolchain=toolchain, binaries=binaries)

    variables = toolchain.make_variables()
    log("SUCCESS", f"Using {' '.join(variables)}")
    return ResolvedToolchain(toolchain=toolchain, binaries=binaries, make_variables=variables)
