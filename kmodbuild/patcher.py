"""Source compatibility patches for the legacy module tree.

Newer compilers reject old-style ``f()`` declarations, so the legacy vmnet
sources get an explicit ``(void)`` parameter list. Each patch is guarded by
its own predicate and can be applied any number of times.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Tuple

from kmodbuild.exceptions import SourceLayoutError
from kmodbuild.models import BuildStrategy, PatchTask
from kmodbuild.utils import log

# One character per byte: non-UTF-8 bytes and CRLF line endings round-trip unchanged.
_ENCODING = "latin-1"


def _read_source(path: Path) -> str:
    with open(path, encoding=_ENCODING, newline="") as handle:
        return handle.read()


def _write_source(path: Path, text: str) -> None:
    with open(path, "w", encoding=_ENCODING, newline="") as handle:
        handle.write(text)


@dataclass(frozen=True)
class IdempotentPatch:
    name: str
    target_file: Path
    tasks: Tuple[PatchTask, ...]

    def is_applied(self, text: str) -> bool:
        return not any(task.matches(text) for task in self.tasks)

    def target_path(self, source_root: Path) -> Path:
        path = source_root / self.target_file
        if not path.is_file():
            raise SourceLayoutError(
                f"Patch target missing: {path}",
                ["The module source tree does not match the detected VMware version; re-check out the repository"],
            )
        return path

    def needs_apply(self, source_root: Path) -> bool:
        return not self.is_applied(_read_source(self.target_path(source_root)))

    def apply(self, source_root: Path) -> bool:
        """Rewrite the target file if any pattern still matches. Returns True on change."""
        path = self.target_path(source_root)
        original = _read_source(path)
        if self.is_applied(original):
            log("DEBUG", f"{self.name}: already applied")
            return False
        text = original
        for task in self.tasks:
            text = task.apply(text)
        _write_source(path, text)
        log("SUCCESS", f"Fixed {self.name} prototype in {self.target_file.name}")
        return True


def _task(target: Path, pattern: str, replacement: str, flags: int = 0) -> PatchTask:
    return PatchTask(target_file=target, match_pattern=re.compile(pattern, flags), replacement=replacement)


_DRIVER_C = Path("vmnet-only/driver.c")
_SMAC_COMPAT_C = Path("vmnet-only/smac_compat.c")

LEGACY_PATCHES: Tuple[IdempotentPatch, ...] = (
    IdempotentPatch(
        name="VNetFreeInterfaceList()",
        target_file=_DRIVER_C,
        tasks=(
            # definition: the function name alone on its line
            _task(_DRIVER_C, r"^VNetFreeInterfaceList\(\)(?=\r?$)", "VNetFreeInterfaceList(void)", re.MULTILINE),
            _task(_DRIVER_C, r"static void VNetFreeInterfaceList\(\);", "static void VNetFreeInterfaceList(void);"),
        ),
    ),
    IdempotentPatch(
        name="SMACL_GetUptime()",
        target_file=_SMAC_COMPAT_C,
        tasks=(_task(_SMAC_COMPAT_C, r"SMACL_GetUptime\(\)", "SMACL_GetUptime(void)"),),
    ),
)


def patches_for(strategy: BuildStrategy) -> Tuple[IdempotentPatch, ...]:
    if strategy.module_variant == "legacy":
        return LEGACY_PATCHES
    return ()


def pending_patches(strategy: BuildStrategy, source_root: Path) -> List[str]:
    return [patch.name for patch in patches_for(strategy) if patch.needs_apply(source_root)]


def apply_patches(strategy: BuildStrategy, source_root: Path) -> List[str]:
    patches = patches_for(strategy)
    if not patches:
        log("DEBUG", f"No source patches defined for {strategy.module_variant} modules")
        return []
    log("INFO", f"Applying C code compatibility fixes for {strategy.module_version}...")
    # Check every target first so a broken tree is rejected before any file changes.
    for patch in patches:
        patch.target_path(source_root)
    return [patch.name for patch in patches if patch.apply(source_root)]
