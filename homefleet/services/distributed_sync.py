"""Mirror shared scripts and cron jobs from the NFS share onto this host.

Scripts are rsynced into place. Cron files are only ever added or
refreshed, never deleted, so a broken share cannot wipe a host's schedule.
"""
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

from homefleet.core.logger import get_logger
from homefleet.core.system import SystemCommands
from homefleet.models.config import SyncSettings
from homefleet.models.errors import PreconditionError

logger = get_logger(__name__)

SCRIPT_FILE_MODE = 0o744
SCRIPT_DIR_MODE = 0o755
CRON_FILE_MODE = 0o644


@dataclass
class SyncReport:
    copied_cron: List[str] = field(default_factory=list)
    unchanged_cron: List[str] = field(default_factory=list)
    failed_cron: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)


class DistributedSync:
    """Synchronizes /usr/local/bin and /etc/cron.d from the shared tree."""

    def __init__(self, settings: SyncSettings, system: SystemCommands):
        self.settings = settings
        self.system = system
        self.script_source = Path(settings.script_source)
        self.script_target = Path(settings.script_target)
        self.cron_source = Path(settings.cron_source)
        self.cron_target = Path(settings.cron_target)

    def check_directories(self) -> None:
        for directory, label in (
            (self.script_source, "Script source"),
            (self.script_target, "Script target"),
            (self.cron_source, "Cron source"),
            (self.cron_target, "Cron target"),
        ):
            if not directory.is_dir():
                raise PreconditionError(f"{label} directory {directory} does not exist")

    def sync_scripts(self) -> None:
        logger.info(f"Synchronizing scripts from {self.script_source} to {self.script_target}")
        cmd = ["rsync"] + list(self.settings.rsync_options)
        if self.settings.delete:
            cmd.append("--delete")
        cmd += [f"{self.script_source}/", f"{self.script_target}/"]
        self.system.run(cmd)

        logger.info(f"Fixing permissions for existing files in {self.script_target}")
        self.normalize_modes(self.script_target)

    def normalize_modes(self, root: Path) -> None:
        if self.system.mock:
            logger.info(f"MOCK: Would normalize modes under {root}")
            return
        for path in root.rglob("*"):
            if path.is_symlink():
                continue
            if path.is_dir():
                path.chmod(SCRIPT_DIR_MODE)
            elif path.is_file():
                path.chmod(SCRIPT_FILE_MODE)

    def copy_cron_files(self, report: SyncReport) -> None:
        logger.info(f"Copying cron files from {self.cron_source} to {self.cron_target}")

        for source in sorted(self.cron_source.iterdir()):
            if not source.is_file():
                logger.info(f"Skipping non-regular file in cron source: {source.name}")
                report.skipped.append(source.name)
                continue

            target = self.cron_target / source.name
            if target.exists() and source.stat().st_mtime_ns <= target.stat().st_mtime_ns:
                logger.debug(f"No update needed for cron file: {source.name}")
                report.unchanged_cron.append(source.name)
                continue

            try:
                self.system.copy_file(source, target, mode=CRON_FILE_MODE)
            except (OSError, shutil.Error) as e:
                logger.error(f"Failed to copy cron file {source.name}: {e}")
                report.failed_cron.append(source.name)
                continue

            logger.info(f"Copied cron file: {source.name}")
            report.copied_cron.append(source.name)

    def run(self) -> SyncReport:
        """Run the whole sync.

        Raises:
            PreconditionError: If a source or target directory is missing
            subprocess.CalledProcessError: If rsync fails
        """
        self.check_directories()
        report = SyncReport()
        self.sync_scripts()
        self.copy_cron_files(report)
        logger.info("All synchronization tasks completed")
        return report
