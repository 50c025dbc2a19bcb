"""Probe -> select -> patch -> resolve -> build -> install -> verify."""

from __future__ import annotations

import fcntl
import functools
import os
import shutil
from pathlib import Path
from typing import Callable, Optional

from kmodbuild.build import BuildDriver
from kmodbuild.config import Settings
from kmodbuild.constants import DEPENDENT_MODULE, MODULES, PRIMARY_MODULE
from kmodbuild.exceptions import ConcurrentRunError, PipelineError, PrivilegeError, SourceLayoutError
from kmodbuild.install import Installer, ModuleDirectory
from kmodbuild.models import BuildStrategy, HostProfile, PipelineReport
from kmodbuild.patcher import apply_patches, pending_patches
from kmodbuild.probe import probe_host
from kmodbuild.services import ServiceRestarter
from kmodbuild.strategy import describe, select_strategy
from kmodbuild.toolchain import missing_binaries, resolve_toolchain
from kmodbuild.utils import log, run
from kmodbuild.verify import KernelModuleTable, LoadVerifier


class RunLock:
    """Non-blocking flock so two runs never touch /lib/modules at once."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._handle = None

    def __enter__(self) -> "RunLock":
        try:
            handle = open(self.path, "a+")
        except OSError as exc:
            raise PipelineError(
                f"Cannot open lock file {self.path}: {exc}",
                ["Set KMODBUILD_LOCK_FILE to a writable path"],
            )
        try:
            fcntl.flock(handle, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except OSError:
            handle.close()
            raise ConcurrentRunError(
                "Another kmodbuild run is in progress",
                [f"Wait for it to finish; the lock is held on {self.path}"],
            )
        self._handle = handle
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self._handle is not None:
            fcntl.flock(self._handle, fcntl.LOCK_UN)
            self._handle.close()
            self._handle = None


class Pipeline:
    def __init__(
        self,
        settings: Settings,
        runner: Optional[Callable] = None,
        which: Callable = shutil.which,
        prober: Callable[..., HostProfile] = probe_host,
        module_dir: Optional[ModuleDirectory] = None,
        module_table: Optional[KernelModuleTable] = None,
        restarter: Optional[ServiceRestarter] = None,
        geteuid: Callable[[], int] = os.geteuid,
    ) -> None:
        self.settings = settings
        self.runner = runner or functools.partial(run, sudo=settings.sudo)
        self.which = which
        self.prober = prober
        self.module_dir = module_dir
        self.module_table = module_table or KernelModuleTable(self.runner)
        self.restarter = restarter or ServiceRestarter(settings.service, self.runner)
        self.geteuid = geteuid

    def check_privileges(self) -> None:
        if self.geteuid() == 0:
            raise PrivilegeError(
                "This tool should not be run as root. It will use sudo when needed.",
                ["Re-run as your normal user: kmodbuild"],
            )

    def check_source_layout(self, strategy: BuildStrategy) -> Path:
        source_root = self.settings.source_root(strategy.module_version)
        if not source_root.is_dir():
            raise SourceLayoutError(
                "Please run this tool from the repository root directory",
                [f"Expected to find: {source_root}", "Or set KMODBUILD_REPO_ROOT"],
            )
        missing = [f"{module}-only" for module in MODULES if not (source_root / f"{module}-only").is_dir()]
        if missing:
            raise SourceLayoutError(
                "Patched module sources not found!",
                [f"Expected: {source_root / name}" for name in missing],
            )
        log("INFO", "All pre-patched modules found")
        return source_root

    def _select(self, report: PipelineReport, require_headers: bool) -> BuildStrategy:
        profile = self.prober(self.settings, require_headers=require_headers)
        report.profile = profile
        strategy = select_strategy(profile, which=self.which)
        report.strategy = strategy
        log("SUCCESS", f"Using module patches for VMware {strategy.module_version}")
        log("INFO", f"Strategy: {describe(strategy)}")
        if strategy.module_variant == "legacy" and profile.kernel_compiler_kind == "clang":
            if strategy.procedure == "tarball-repack":
                log("WARN", "Clang-built kernel but clang/ld.lld not both available; falling back to vmware-modconfig")
        return strategy

    def run(self) -> PipelineReport:
        self.check_privileges()
        with RunLock(self.settings.lock_file):
            return self._run()

    def _run(self) -> PipelineReport:
        report = PipelineReport()
        strategy = self._select(report, require_headers=True)
        profile = report.profile
        source_root = self.check_source_layout(strategy)

        report.patches_applied = apply_patches(strategy, source_root)
        toolchain = resolve_toolchain(strategy, profile, which=self.which)

        driver = BuildDriver(self.settings, strategy, toolchain, runner=self.runner)
        outcome = driver.build()
        report.outcome = outcome

        module_dir = self.module_dir or ModuleDirectory(profile.kernel_release, self.runner)
        Installer(module_dir).install(outcome)

        verification = LoadVerifier(self.module_table, self.restarter).verify()
        report.verification = verification
        if verification.state != "active":
            report.warnings.append(
                f"Modules compiled but not properly loaded. Try: sudo modprobe {PRIMARY_MODULE} && "
                f"sudo modprobe {DEPENDENT_MODULE}"
            )
        elif not verification.services_restarted:
            report.warnings.append(
                f"Could not restart VMware services automatically. Try: sudo systemctl restart {self.settings.service}"
            )
        return report

    def plan(self) -> PipelineReport:
        """Dry run: detect and decide, report what would change, touch nothing."""
        self.check_privileges()
        report = PipelineReport()
        strategy = self._select(report, require_headers=False)
        if not report.profile.headers_present:
            report.warnings.append("Kernel headers are missing; the build would fail")
        source_root = self.check_source_layout(strategy)
        report.patches_pending = pending_patches(strategy, source_root)
        report.missing_tools = missing_binaries(strategy, which=self.which)
        for binary in report.missing_tools:
            report.warnings.append(f"{binary} not found; the build would fail")
        return report
