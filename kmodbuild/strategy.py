"""Map a host profile onto a build strategy."""

from __future__ import annotations

import shutil
from typing import Callable, Dict, Optional

from kmodbuild.constants import LLD_BINARY, PRODUCT_FAMILIES
from kmodbuild.exceptions import UnsupportedVersionError
from kmodbuild.models import BuildStrategy, HostProfile, Toolchain

Which = Callable[[str], Optional[str]]


def product_family(product_version: str) -> Dict[str, str]:
    for prefix, family in PRODUCT_FAMILIES.items():
        if product_version.startswith(prefix):
            return family
    supported = " and ".join(family["label"] for family in PRODUCT_FAMILIES.values())
    raise UnsupportedVersionError(
        f"Unsupported VMware version: {product_version}",
        [f"This tool supports VMware {supported}"],
    )


def select_strategy(profile: HostProfile, which: Which = shutil.which) -> BuildStrategy:
    """Pick variant, toolchain and procedure. Only ``which`` touches the host."""
    family = product_family(profile.product_version)
    clang_kernel = profile.kernel_compiler_kind == "clang"

    if family["variant"] == "modern":
        toolchain = Toolchain("clang", "lld") if clang_kernel else Toolchain("gcc")
        return BuildStrategy(
            module_variant="modern",
            toolchain=toolchain,
            procedure="direct-make",
            module_version=family["module_version"],
            toolchain_from_build_system=True,
        )

    if clang_kernel and which("clang") and which(LLD_BINARY):
        return BuildStrategy(
            module_variant="legacy",
            toolchain=Toolchain("clang", "lld"),
            procedure="direct-make",
            module_version=family["module_version"],
        )
    return BuildStrategy(
        module_variant="legacy",
        toolchain=Toolchain("gcc"),
        procedure="tarball-repack",
        module_version=family["module_version"],
    )


def describe(strategy: BuildStrategy) -> str:
    toolchain = strategy.toolchain
    if strategy.toolchain_from_build_system:
        tools = "auto-detected by Makefiles"
    else:
        tools = toolchain.compiler if toolchain.linker == "default" else f"{toolchain.compiler} + {LLD_BINARY}"
    return f"{strategy.module_variant} modules {strategy.module_version}, {strategy.procedure}, toolchain: {tools}"
