"""Out-of-tree module build for kmodbuild."""

from __future__ import annotations

import subprocess
import tarfile
from pathlib import Path
from typing import Callable, List, Optional

from kmodbuild.config import Settings
from kmodbuild.constants import DEPENDENT_MODULE, MODULES, PRIMARY_MODULE, VENDOR_MODCONFIG_CMD
from kmodbuild.exceptions import BuildFailure, PipelineError
from kmodbuild.fallback import Attempt, FallbackChain
from kmodbuild.models import BuildArtifact, BuildOutcome, BuildStrategy, Toolchain
from kmodbuild.toolchain import ResolvedToolchain
from kmodbuild.utils import ensure_directory, log, run, timestamp

Runner = Callable[..., subprocess.CompletedProcess]


class BuildDriver:
    """Builds vmmon then vmnet using the procedure chosen by the selector."""

    def __init__(
        self,
        settings: Settings,
        strategy: BuildStrategy,
        toolchain: ResolvedToolchain,
        runner: Runner = run,
    ) -> None:
        self.settings = settings
        self.strategy = strategy
        self.toolchain = toolchain
        self.runner = runner
        self.source_root = settings.source_root(strategy.module_version)
        self._last_failure: Optional[BuildFailure] = None

    def module_dir(self, module: str) -> Path:
        return self.source_root / f"{module}-only"

    def artifact(self, module: str) -> BuildArtifact:
        return BuildArtifact(
            module=module,
            binary_path=self.module_dir(module) / f"{module}.ko",
            log_path=self.settings.build_log(module),
        )

    def build(self) -> BuildOutcome:
        ensure_directory(self.settings.log_dir)
        log("INFO", "Compiling VMware kernel modules...")
        if self.strategy.procedure == "direct-make":
            if self.strategy.toolchain_from_build_system:
                log("INFO", "The Makefiles will automatically detect and use the correct compiler/linker")
            artifacts = self.build_modules(self.toolchain.make_variables)
            return BuildOutcome(artifacts=artifacts, method="direct-make")
        return self._tarball_repack()

    # -- direct make ------------------------------------------------------

    def clean(self, module: str) -> None:
        """Best-effort ``make clean``; failures are ignored."""
        try:
            self.runner(
                ["make", "clean"],
                check=False,
                cwd=str(self.module_dir(module)),
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
        except OSError as exc:
            log("DEBUG", f"make clean skipped for {module}: {exc}")

    def make(self, module: str, variables: List[str]) -> BuildArtifact:
        artifact = self.artifact(module)
        self.clean(module)
        # A stale .ko from an earlier run would fake success.
        artifact.binary_path.unlink(missing_ok=True)

        cmd = ["make", f"-j{self.settings.jobs}"] + list(variables)
        log("INFO", f"Compiling {module}...")
        try:
            with open(artifact.log_path, "w") as log_file:
                result = self.runner(
                    cmd,
                    check=False,
                    cwd=str(self.module_dir(module)),
                    stdout=log_file,
                    stderr=subprocess.STDOUT,
                )
        except OSError as exc:
            log("ERROR", f"Could not run make for {module}: {exc}")
        else:
            if result.returncode != 0 and artifact.succeeded:
                log("DEBUG", f"make exited {result.returncode} for {module} but {artifact.binary_path.name} exists")

        if artifact.succeeded:
            log("SUCCESS", f"{module} compiled successfully")
        else:
            log("ERROR", f"{module} compilation failed (log: {artifact.log_path})")
        return artifact

    def build_modules(self, variables: List[str]) -> List[BuildArtifact]:
        artifacts: List[BuildArtifact] = []
        for module in MODULES:
            artifact = self.make(module, variables)
            if not artifact.succeeded:
                if module == PRIMARY_MODULE:
                    log("WARN", f"Skipping {DEPENDENT_MODULE}: it depends on {PRIMARY_MODULE}")
                raise BuildFailure(module, [artifact.log_path])
            artifacts.append(artifact)
        return artifacts

    # -- tarball repack ---------------------------------------------------

    def _tarball_repack(self) -> BuildOutcome:
        log("INFO", "Using GCC compilation strategy with vmware-modconfig...")
        for module in MODULES:
            self.clean(module)
        tarballs = self.create_tarballs()
        self.backup_vendor_tarballs()
        self.install_tarballs(tarballs)

        chain = FallbackChain(
            "Module build",
            [
                Attempt("vendor-modconfig", self.run_modconfig),
                Attempt("manual-gcc", self.manual_gcc_build),
            ],
        )
        result = chain.run()
        artifacts = [self.artifact(module) for module in MODULES]
        if not result.succeeded:
            failed = self._last_failure.module if self._last_failure else PRIMARY_MODULE
            raise BuildFailure(
                failed,
                [artifact.log_path for artifact in artifacts],
                [f"vmware-modconfig failed; see {self.modconfig_log}"],
            )
        return BuildOutcome(
            artifacts=artifacts,
            method=result.winner or "vendor-modconfig",
            installed_by_vendor=result.winner == "vendor-modconfig",
        )

    @property
    def modconfig_log(self) -> Path:
        return self.settings.log_dir / "vmware-modconfig.log"

    def create_tarballs(self) -> List[Path]:
        tarballs = []
        for module in MODULES:
            tar_path = self.source_root / f"{module}.tar"
            try:
                with tarfile.open(tar_path, "w") as archive:
                    archive.add(self.module_dir(module), arcname=f"{module}-only")
            except (OSError, tarfile.TarError) as exc:
                raise PipelineError(
                    f"Failed to create {tar_path.name}: {exc}",
                    [f"Check that {self.source_root} is writable by your user"],
                )
            tarballs.append(tar_path)
        log("DEBUG", f"Created {', '.join(path.name for path in tarballs)}")
        return tarballs

    def backup_vendor_tarballs(self) -> Optional[Path]:
        vendor_source = self.settings.vendor_source_dir
        existing = [vendor_source / f"{module}.tar" for module in MODULES]
        existing = [path for path in existing if path.exists()]
        if not existing:
            return None
        backup_dir = vendor_source / f"backup-{timestamp()}"
        log("INFO", f"Backing up original modules to {backup_dir}")
        try:
            self.runner(["mkdir", "-p", str(backup_dir)], privileged=True)
        except (subprocess.CalledProcessError, OSError) as exc:
            raise PipelineError(
                f"Failed to back up original module tarballs to {backup_dir}: {exc}",
                ["Check that sudo works for this user"],
            )
        for path in existing:
            self.runner(["cp", str(path), f"{backup_dir}/"], check=False, privileged=True)
        return backup_dir

    def install_tarballs(self, tarballs: List[Path]) -> None:
        vendor_source = self.settings.vendor_source_dir
        try:
            self.runner(["cp"] + [str(path) for path in tarballs] + [f"{vendor_source}/"], privileged=True)
        except (subprocess.CalledProcessError, OSError) as exc:
            raise PipelineError(
                f"Failed to install module tarballs into {vendor_source}: {exc}",
                ["Check that sudo works and that VMware Workstation is installed correctly"],
            )

    def run_modconfig(self) -> bool:
        log("INFO", "Running VMware modconfig...")
        with open(self.modconfig_log, "w") as log_file:
            result = self.runner(
                VENDOR_MODCONFIG_CMD,
                check=False,
                privileged=True,
                stdout=log_file,
                stderr=subprocess.STDOUT,
            )
        if result.returncode == 0:
            log("SUCCESS", "VMware modconfig completed successfully")
            return True
        return False

    def manual_gcc_build(self) -> bool:
        log("INFO", "Trying manual compilation with GCC...")
        try:
            self.build_modules(Toolchain("gcc").make_variables())
        except BuildFailure as exc:
            self._last_failure = exc
            return False
        return True
