"""Shared test fixtures: settings, host profiles, fake runner and source tree."""

from __future__ import annotations

import subprocess
from pathlib import Path
from types import SimpleNamespace
from typing import Callable, List, Optional

import pytest

from kmodbuild.config import Settings
from kmodbuild.models import HostProfile

LEGACY_DRIVER_C = """\
static void VNetFreeInterfaceList();

static void
VNetFreeInterfaceList()
{
   return;
}
"""

LEGACY_SMAC_COMPAT_C = """\
static uint64 SMACL_GetUptime();

uint64
SMACL_GetUptime()
{
   return 0;
}
"""


class FakeRunner:
    """Stands in for utils.run; records every command instead of executing it."""

    def __init__(self, handler: Optional[Callable[[List[str], dict], Optional[int]]] = None) -> None:
        self.calls: List[SimpleNamespace] = []
        self.handler = handler

    def __call__(self, cmd, check=True, privileged=False, **kwargs):
        cmd = list(cmd)
        self.calls.append(SimpleNamespace(cmd=cmd, check=check, privileged=privileged, kwargs=kwargs))
        returncode = 0
        if self.handler is not None:
            returncode = self.handler(cmd, kwargs) or 0
        return subprocess.CompletedProcess(cmd, returncode, stdout="", stderr="")

    @property
    def commands(self) -> List[List[str]]:
        return [call.cmd for call in self.calls]

    def privileged_commands(self) -> List[List[str]]:
        return [call.cmd for call in self.calls if call.privileged]


@pytest.fixture
def fake_runner():
    return FakeRunner()


@pytest.fixture
def settings(tmp_path) -> Settings:
    vendor_dir = tmp_path / "vendor"
    (vendor_dir / "modules" / "source").mkdir(parents=True)
    log_dir = tmp_path / "logs"
    log_dir.mkdir()
    return Settings(
        repo_root=tmp_path / "repo",
        vendor_dir=vendor_dir,
        kernel_release="6.16.1-test",
        log_dir=log_dir,
        jobs=4,
        service="vmware",
        lock_file=tmp_path / "kmodbuild.lock",
        sudo="sudo",
    )


def _write_tree(source_root: Path, legacy: bool) -> Path:
    for module in ("vmmon", "vmnet"):
        module_dir = source_root / f"{module}-only"
        module_dir.mkdir(parents=True, exist_ok=True)
        (module_dir / "Makefile").write_text("all:\n")
    if legacy:
        (source_root / "vmnet-only" / "driver.c").write_text(LEGACY_DRIVER_C)
        (source_root / "vmnet-only" / "smac_compat.c").write_text(LEGACY_SMAC_COMPAT_C)
    return source_root


@pytest.fixture
def legacy_tree(settings) -> Path:
    return _write_tree(settings.source_root("17.6.4"), legacy=True)


@pytest.fixture
def modern_tree(settings) -> Path:
    return _write_tree(settings.source_root("25.0.0"), legacy=False)


@pytest.fixture
def make_profile():
    def _make(version: str = "17.6.4", compiler: str = "gcc", os_family: str = "debian") -> HostProfile:
        return HostProfile(
            product_version=version,
            kernel_release="6.16.1-test",
            kernel_compiler_kind=compiler,
            kernel_compiler_version="14.2.0" if compiler == "gcc" else ("19.1.7" if compiler == "clang" else ""),
            headers_present=True,
            os_family=os_family,
        )

    return _make


def which_from(*available: str):
    """Build a shutil.which replacement that resolves only ``available``."""
    found = set(available)
    return lambda binary: f"/usr/bin/{binary}" if binary in found else None


def make_building_runner(build: tuple = ("vmmon", "vmnet"), modconfig_rc: int = 0) -> FakeRunner:
    """FakeRunner whose ``make`` drops a .ko for each module in ``build``."""

    def handler(cmd, kwargs):
        if cmd[0] == "make" and cmd[1:2] != ["clean"]:
            module_dir = Path(kwargs["cwd"])
            module = module_dir.name[: -len("-only")]
            if module in build:
                (module_dir / f"{module}.ko").write_bytes(b"\x7fELF")
            return 2  # vendor Makefiles are noisy; exit status must not matter
        if cmd[0] == "vmware-modconfig":
            return modconfig_rc
        return 0

    return FakeRunner(handler)


@pytest.fixture
def mock_env(monkeypatch):
    """Helper to set environment variables for tests."""

    def _set(**kwargs):
        for key, value in kwargs.items():
            if value is None:
                monkeypatch.delenv(key, raising=False)
            else:
                monkeypatch.setenv(key, str(value))

    return _set


# All environment variables that parse_env() reads, used to ensure a clean slate.
_PARSE_ENV_VARS = [
    "KMODBUILD_CONFIG",
    "KMODBUILD_REPO_ROOT",
    "KMODBUILD_VENDOR_DIR",
    "KMODBUILD_KERNEL_RELEASE",
    "KMODBUILD_LOG_DIR",
    "KMODBUILD_JOBS",
    "KMODBUILD_SERVICE",
    "KMODBUILD_LOCK_FILE",
    "KMODBUILD_SUDO",
]


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """Clear every variable parse_env() reads and run from an empty directory."""
    for key in _PARSE_ENV_VARS:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)


class FakeModuleTable:
    """In-memory KernelModuleTable; loaded modules report ``active``."""

    def __init__(self, states=None, failing=()):
        self.states = dict(states or {})
        self.failing = set(failing)
        self.events = []

    def unload(self, name):
        self.events.append(("unload", name))
        self.states.pop(name, None)

    def load(self, name):
        self.events.append(("load", name))
        if name in self.failing:
            return False
        self.states.setdefault(name, "active")
        return True

    def state(self, name):
        return self.states.get(name, "absent")
