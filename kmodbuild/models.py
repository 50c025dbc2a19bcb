"""Data models for kmodbuild."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from kmodbuild.constants import (
    COMPILER_KINDS,
    COMPILERS,
    LINKERS,
    LLD_BINARY,
    MODULE_STATES,
    MODULE_VARIANTS,
    OS_FAMILIES,
    PROCEDURES,
)


def _check_member(name: str, value: str, allowed) -> None:
    if value not in allowed:
        supported = ", ".join(sorted(allowed))
        raise ValueError(f"{name} must be one of {supported} (got '{value}')")


@dataclass(frozen=True)
class HostProfile:
    product_version: str
    kernel_release: str
    kernel_compiler_kind: str  # "gcc", "clang", "unknown"
    kernel_compiler_version: str
    headers_present: bool
    os_family: str = "unknown"

    def __post_init__(self):
        _check_member("kernel_compiler_kind", self.kernel_compiler_kind, COMPILER_KINDS)
        _check_member("os_family", self.os_family, OS_FAMILIES)


@dataclass(frozen=True)
class Toolchain:
    compiler: str  # "gcc", "clang"
    linker: str = "default"  # "default", "lld"

    def __post_init__(self):
        _check_member("compiler", self.compiler, COMPILERS)
        _check_member("linker", self.linker, LINKERS)

    def required_binaries(self) -> List[str]:
        binaries = [self.compiler]
        if self.linker == "lld":
            binaries.append(LLD_BINARY)
        return binaries

    def make_variables(self) -> List[str]:
        variables = [f"CC={self.compiler}"]
        if self.linker == "lld":
            variables.append(f"LD={LLD_BINARY}")
        return variables


@dataclass(frozen=True)
class BuildStrategy:
    module_variant: str  # "legacy", "modern"
    toolchain: Toolchain
    procedure: str  # "direct-make", "tarball-repack"
    module_version: str
    toolchain_from_build_system: bool = False

    def __post_init__(self):
        _check_member("module_variant", self.module_variant, MODULE_VARIANTS)
        _check_member("procedure", self.procedure, PROCEDURES)


@dataclass(frozen=True)
class PatchTask:
    target_file: Path  # relative to the module version's source/ directory
    match_pattern: "re.Pattern[str]"
    replacement: str

    def matches(self, text: str) -> bool:
        return self.match_pattern.search(text) is not None

    def apply(self, text: str) -> str:
        return self.match_pattern.sub(self.replacement, text)


@dataclass
class BuildArtifact:
    module: str
    binary_path: Path
    log_path: Path

    @property
    def succeeded(self) -> bool:
        # The vendor Makefiles exit nonzero on cosmetic warnings; the .ko is the truth.
        return self.binary_path.exists()


@dataclass
class BuildOutcome:
    artifacts: List[BuildArtifact]
    method: str  # "direct-make", "vendor-modconfig", "manual-gcc"
    installed_by_vendor: bool = False

    @property
    def log_paths(self) -> List[Path]:
        return [artifact.log_path for artifact in self.artifacts]


@dataclass
class VerificationResult:
    state: str
    module_states: Dict[str, str] = field(default_factory=dict)
    services_restarted: bool = False
    service_method: Optional[str] = None

    def __post_init__(self):
        _check_member("state", self.state, MODULE_STATES)


@dataclass
class PipelineReport:
    profile: Optional[HostProfile] = None
    strategy: Optional[BuildStrategy] = None
    patches_applied: List[str] = field(default_factory=list)
    patches_pending: List[str] = field(default_factory=list)
    missing_tools: List[str] = field(default_factory=list)
    outcome: Optional[BuildOutcome] = None
    verification: Optional[VerificationResult] = None
    warnings: List[str] = field(default_factory=list)
