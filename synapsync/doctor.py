"""Health checks for a synapsync project."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from .config import ConfigError, ProjectConfig, load_config
from .constants import COGNITIVE_TYPES, CONFIG_FILE_NAME, type_directory
from .engine import SyncEngine
from .errors import ManifestError, ScanError
from .logging import get_logger

STATUS_PASS = "pass"
STATUS_WARN = "warn"
STATUS_FAIL = "fail"

_logger = get_logger("doctor")


@dataclass
class DoctorCheck:
    id: str
    name: str
    status: str
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {"id": self.id, "name": self.name, "status": self.status, "message": self.message}


@dataclass
class DoctorReport:
    checks: List[DoctorCheck] = field(default_factory=list)

    @property
    def healthy(self) -> bool:
        return all(check.status != STATUS_FAIL for check in self.checks)

    def to_dict(self) -> Dict[str, object]:
        return {"healthy": self.healthy, "checks": [check.to_dict() for check in self.checks]}


def run_doctor(project_root: Path | str, fix: bool = False) -> DoctorReport:
    """Diagnose the project at `project_root`; with `fix`, repair what can be repaired.

    Checks run in order and later checks are skipped once a failure makes
    them meaningless (no config, unreadable manifest).
    """
    root = Path(project_root).expanduser().resolve()
    report = DoctorReport()

    config = _check_config(root, report)
    if config is None:
        return report
    if not _check_store(config, fix, report):
        return report

    engine = SyncEngine.from_config(config)
    if not _check_manifest(engine, report):
        return report
    _check_manifest_sync(engine, fix, report)
    _check_provider_links(engine, fix, report)
    _check_symlink_support(engine, report)
    return report


def _check_config(root: Path, report: DoctorReport) -> Optional[ProjectConfig]:
    if not (root / CONFIG_FILE_NAME).is_file():
        report.checks.append(
            DoctorCheck("config", "Configuration", STATUS_FAIL, f"{CONFIG_FILE_NAME} not found; run `synapsync init`")
        )
        return None
    try:
        config = load_config(root)
    except ConfigError as exc:
        report.checks.append(DoctorCheck("config", "Configuration", STATUS_FAIL, str(exc)))
        return None
    report.checks.append(DoctorCheck("config", "Configuration", STATUS_PASS, f"Loaded {CONFIG_FILE_NAME}"))
    return config


def _check_store(config: ProjectConfig, fix: bool, report: DoctorReport) -> bool:
    store = config.store_path
    missing = [kind for kind in COGNITIVE_TYPES if not (store / type_directory(kind)).is_dir()]
    if store.is_dir() and not missing:
        report.checks.append(DoctorCheck("synapsync-dir", "Store directory", STATUS_PASS, f"{store} exists"))
        return True

    if fix:
        for kind in missing:
            (store / type_directory(kind)).mkdir(parents=True, exist_ok=True)
        _logger.info("Created missing store directories under %s", store)
        report.checks.append(
            DoctorCheck("synapsync-dir", "Store directory", STATUS_PASS, f"Created missing directories in {store}")
        )
        return True

    if not store.is_dir():
        report.checks.append(DoctorCheck("synapsync-dir", "Store directory", STATUS_FAIL, f"{store} does not exist"))
        return False
    dirs = ", ".join(type_directory(kind) for kind in missing)
    report.checks.append(DoctorCheck("synapsync-dir", "Store directory", STATUS_WARN, f"Missing type directories: {dirs}"))
    return True


def _check_manifest(engine: SyncEngine, report: DoctorReport) -> bool:
    path = engine.manifest.path
    try:
        count = engine.manifest.get_cognitive_count()
    except ManifestError as exc:
        report.checks.append(DoctorCheck("manifest", "Manifest", STATUS_FAIL, str(exc)))
        return False
    if not path.exists():
        report.checks.append(DoctorCheck("manifest", "Manifest", STATUS_WARN, f"{path.name} not written yet"))
    else:
        report.checks.append(DoctorCheck("manifest", "Manifest", STATUS_PASS, f"{count} cognitives registered"))
    return True


def _check_manifest_sync(engine: SyncEngine, fix: bool, report: DoctorReport) -> None:
    try:
        status = engine.get_status()
    except ScanError as exc:
        report.checks.append(DoctorCheck("manifest-sync", "Manifest sync", STATUS_FAIL, str(exc)))
        return
    if status.in_sync:
        report.checks.append(DoctorCheck("manifest-sync", "Manifest sync", STATUS_PASS, "Manifest matches the store"))
        return

    summary = (
        f"{status.new_in_filesystem} new, {status.modified} modified, "
        f"{status.removed_from_filesystem} removed"
    )
    if fix:
        result = engine.sync(manifest_only=True)
        if result.success:
            report.checks.append(
                DoctorCheck("manifest-sync", "Manifest sync", STATUS_PASS, f"Re-synced manifest ({summary})")
            )
            return
        message = "; ".join(error.message for error in result.errors)
        report.checks.append(DoctorCheck("manifest-sync", "Manifest sync", STATUS_FAIL, message))
        return
    report.checks.append(DoctorCheck("manifest-sync", "Manifest sync", STATUS_WARN, f"Out of sync: {summary}"))


def _check_provider_links(engine: SyncEngine, fix: bool, report: DoctorReport) -> None:
    providers = engine.enabled_providers
    if not providers:
        report.checks.append(DoctorCheck("provider-links", "Provider links", STATUS_WARN, "No providers enabled"))
        return

    problems: List[str] = []
    for provider in providers:
        status = engine.get_provider_status(provider)
        if status.broken and fix:
            removed = engine.symlinks.clean_provider(provider)
            _logger.info("Removed %d broken links from %s", len(removed), provider)
            status = engine.get_provider_status(provider)
        if status.broken:
            problems.append(f"{provider}: {status.broken} broken")
        if status.orphaned:
            problems.append(f"{provider}: {status.orphaned} orphaned")

    if problems:
        report.checks.append(DoctorCheck("provider-links", "Provider links", STATUS_WARN, "; ".join(problems)))
    else:
        names = ", ".join(providers)
        report.checks.append(DoctorCheck("provider-links", "Provider links", STATUS_PASS, f"Links healthy for {names}"))


def _check_symlink_support(engine: SyncEngine, report: DoctorReport) -> None:
    if engine.symlinks.check_symlink_support():
        report.checks.append(DoctorCheck("symlink-support", "Symlink support", STATUS_PASS, "Symlinks available"))
    else:
        report.checks.append(
            DoctorCheck("symlink-support", "Symlink support", STATUS_WARN, "Symlinks unavailable; files will be copied")
        )


__all__ = ["DoctorCheck", "DoctorReport", "run_doctor"]
