"""Load the new modules and check the kernel reports them live."""

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Callable, Dict, Optional

from kmodbuild.constants import DEPENDENT_MODULE, MODULES, PRIMARY_MODULE, PROC_MODULES
from kmodbuild.exceptions import LoadFailure
from kmodbuild.models import VerificationResult
from kmodbuild.services import ServiceRestarter
from kmodbuild.utils import log, read_text, run

Runner = Callable[..., subprocess.CompletedProcess]


class KernelModuleTable:
    """Handle on the live module table (/proc/modules, rmmod, modprobe)."""

    def __init__(self, runner: Runner = run, proc_modules: Path = PROC_MODULES) -> None:
        self.runner = runner
        self.proc_modules = proc_modules

    def snapshot(self) -> Dict[str, str]:
        """Map module name to its kernel state column (Live, Loading, Unloading)."""
        states = {}
        for line in read_text(self.proc_modules).splitlines():
            parts = line.split()
            if len(parts) >= 5:
                states[parts[0]] = parts[4]
        return states

    def state(self, name: str) -> str:
        kernel_state = self.snapshot().get(name)
        if kernel_state is None:
            return "absent"
        if kernel_state == "Live":
            return "active"
        return "loaded-but-unverified"

    def unload(self, name: str) -> None:
        try:
            self.runner(
                ["rmmod", name],
                check=False,
                privileged=True,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
        except OSError as exc:
            log("DEBUG", f"rmmod {name} skipped: {exc}")

    def load(self, name: str) -> bool:
        try:
            result = self.runner(["modprobe", name], check=False, privileged=True)
        except OSError as exc:
            log("ERROR", f"modprobe {name} could not run: {exc}")
            return False
        return result.returncode == 0


class LoadVerifier:
    def __init__(self, table: KernelModuleTable, restarter: Optional[ServiceRestarter] = None) -> None:
        self.table = table
        self.restarter = restarter

    def verify(self) -> VerificationResult:
        log("INFO", "Testing module loading...")
        # vmnet holds a reference on vmmon, so it goes first.
        for name in (DEPENDENT_MODULE, PRIMARY_MODULE):
            self.table.unload(name)

        for name in MODULES:
            if not self.table.load(name):
                raise LoadFailure(name)
        log("SUCCESS", "Modules loaded successfully!")

        module_states = {name: self.table.state(name) for name in MODULES}
        if not all(state == "active" for state in module_states.values()):
            summary = ", ".join(f"{name}={state}" for name, state in module_states.items())
            log("WARN", f"Modules compiled but not properly loaded ({summary})")
            log("WARN", f"Try: sudo modprobe {PRIMARY_MODULE} && sudo modprobe {DEPENDENT_MODULE}")
            return VerificationResult(state="loaded-but-unverified", module_states=module_states)

        log("SUCCESS", "All VMware modules are running!")
        result = VerificationResult(state="active", module_states=module_states)
        if self.restarter is not None:
            restart = self.restarter.restart()
            result.services_restarted = restart.succeeded
            result.service_method = restart.winner
        return result
