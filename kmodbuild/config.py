"""Configuration loading and environment variable parsing for kmodbuild."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

try:
    import yaml  # type: ignore
except ImportError as exc:  # pragma: no cover
    raise SystemExit("PyYAML is required but not installed") from exc

from kmodbuild.constants import (
    DEFAULT_LOCK_FILE,
    DEFAULT_LOG_DIR,
    DEFAULT_SERVICE,
    KERNEL_MODULES_ROOT,
    VENDOR_DIR,
)
from kmodbuild.exceptions import ConfigError
from kmodbuild.utils import get_env, log, parse_int

CONFIG_ENV = "KMODBUILD_CONFIG"

# setting name -> environment variable
_ENV_KEYS = {
    "repo_root": "KMODBUILD_REPO_ROOT",
    "vendor_dir": "KMODBUILD_VENDOR_DIR",
    "kernel_release": "KMODBUILD_KERNEL_RELEASE",
    "log_dir": "KMODBUILD_LOG_DIR",
    "jobs": "KMODBUILD_JOBS",
    "service": "KMODBUILD_SERVICE",
    "lock_file": "KMODBUILD_LOCK_FILE",
    "sudo": "KMODBUILD_SUDO",
}


@dataclass
class Settings:
    repo_root: Path
    vendor_dir: Path
    kernel_release: str
    log_dir: Path
    jobs: int
    service: str
    lock_file: Path
    sudo: str
    config_path: Optional[Path] = None

    @property
    def modules_root(self) -> Path:
        return self.repo_root / "modules"

    def source_root(self, module_version: str) -> Path:
        return self.modules_root / module_version / "source"

    @property
    def vendor_source_dir(self) -> Path:
        return self.vendor_dir / "modules" / "source"

    @property
    def kernel_build_dir(self) -> Path:
        return KERNEL_MODULES_ROOT / self.kernel_release / "build"

    def build_log(self, module: str) -> Path:
        return self.log_dir / f"{module}-build.log"


def load_config_file(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise ConfigError(f"{CONFIG_ENV} file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text())
    except OSError as exc:
        raise ConfigError(f"Cannot read {path}: {exc}")
    except yaml.YAMLError as exc:
        raise ConfigError(f"{path} contains invalid YAML: {exc}")
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path} should contain a YAML mapping, got {type(data).__name__}")
    unknown = sorted(set(data) - set(_ENV_KEYS))
    if unknown:
        supported = ", ".join(sorted(_ENV_KEYS))
        raise ConfigError(f"Unknown setting(s) in {path}: {', '.join(unknown)}. Supported: {supported}")
    return data


def parse_env() -> Settings:
    config_raw = (get_env(CONFIG_ENV) or "").strip()
    config_path = Path(config_raw).expanduser() if config_raw else None
    file_values: Dict[str, Any] = load_config_file(config_path) if config_path else {}

    def value(key: str) -> Optional[str]:
        env_value = get_env(_ENV_KEYS[key])
        if env_value is not None and env_value.strip():
            return env_value.strip()
        file_value = file_values.get(key)
        if file_value is None:
            return None
        return str(file_value).strip() or None

    repo_root = Path(value("repo_root") or os.getcwd()).expanduser()
    vendor_dir = Path(value("vendor_dir") or VENDOR_DIR)
    kernel_release = value("kernel_release") or os.uname().release
    log_dir = Path(value("log_dir") or DEFAULT_LOG_DIR)
    jobs_raw = value("jobs")
    jobs = parse_int(_ENV_KEYS["jobs"], jobs_raw) if jobs_raw else (os.cpu_count() or 1)
    service = value("service") or DEFAULT_SERVICE
    lock_file = Path(value("lock_file") or DEFAULT_LOCK_FILE)
    sudo = value("sudo") or "sudo"

    if config_path:
        log("DEBUG", f"Loaded settings from {config_path}")

    return Settings(
        repo_root=repo_root,
        vendor_dir=vendor_dir,
        kernel_release=kernel_release,
        log_dir=log_dir,
        jobs=jobs,
        service=service,
        lock_file=lock_file,
        sudo=sudo,
        config_path=config_path,
    )
