"""Thin wrapper around the host's command-line tools.

Every service talks to systemctl, docker, apt and friends through one
SystemCommands instance so mock mode and tests have a single seam.
"""
import shutil
import subprocess
from pathlib import Path
from typing import List, Optional, Union

from homefleet.core.config import get_config
from homefleet.core.logger import get_logger

logger = get_logger(__name__)


class SystemCommands:
    """Runs host commands, or logs them in mock mode."""

    def __init__(self, mock: bool = False):
        self.mock = mock

    def run(
        self,
        cmd: List[str],
        check: bool = True,
        input: Optional[str] = None,
        env: Optional[dict] = None,
        timeout: Optional[int] = None,
    ) -> subprocess.CompletedProcess:
        """Run a mutating command.

        Raises:
            subprocess.CalledProcessError: if check is set and the command fails
        """
        if self.mock:
            logger.info(f"MOCK: Would run: {' '.join(cmd)}")
            return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")

        logger.debug(f"Running: {' '.join(cmd)}")
        return subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            check=check,
            input=input,
            env=env,
            timeout=timeout,
        )

    def probe(self, cmd: List[str]) -> subprocess.CompletedProcess:
        """Run a read-only command. Runs even in mock mode; never raises on failure."""
        try:
            return subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                check=False,
                timeout=get_config().command_timeout,
            )
        except (subprocess.TimeoutExpired, FileNotFoundError) as e:
            logger.debug(f"Probe {' '.join(cmd)} failed: {e}")
            return subprocess.CompletedProcess(cmd, 127, stdout="", stderr=str(e))

    def command_exists(self, name: str) -> bool:
        return shutil.which(name) is not None

    def systemd_unit_exists(self, unit: str) -> bool:
        """True when systemd knows the unit, loaded or not."""
        result = self.probe(['systemctl', 'list-units', '--full', '--all', '--no-legend', '--plain'])
        if result.returncode != 0:
            return False
        return any(line.split()[0] == unit for line in result.stdout.splitlines() if line.strip())

    def docker_containers(self, include_stopped: bool = False) -> List[str]:
        """Names of docker containers on this host."""
        cmd = ['docker', 'ps', '--format', '{{.Names}}']
        if include_stopped:
            cmd.insert(2, '-a')
        result = self.probe(cmd)
        if result.returncode != 0:
            return []
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    def systemctl(self, action: str, unit: str) -> bool:
        """Run ``systemctl <action> <unit>`` and report success."""
        try:
            self.run(['systemctl', action, unit])
            return True
        except subprocess.CalledProcessError as e:
            logger.debug(f"systemctl {action} {unit} failed: {e.stderr}")
            return False

    def chown(self, path: Union[str, Path], user: str, group: str) -> None:
        if self.mock:
            logger.info(f"MOCK: Would chown {user}:{group} {path}")
            return
        shutil.chown(str(path), user=user, group=group)

    def chmod(self, path: Union[str, Path], mode: int) -> None:
        if self.mock:
            logger.info(f"MOCK: Would chmod {mode:o} {path}")
            return
        Path(path).chmod(mode)

    def makedirs(self, path: Union[str, Path], mode: int = 0o755) -> None:
        if self.mock:
            logger.info(f"MOCK: Would create directory {path}")
            return
        Path(path).mkdir(parents=True, exist_ok=True, mode=mode)

    def copy_file(self, src: Union[str, Path], dst: Union[str, Path], mode: Optional[int] = None) -> None:
        """Copy a file (content and mtime), then optionally set its mode."""
        if self.mock:
            logger.info(f"MOCK: Would copy {src} -> {dst}")
            return
        shutil.copy2(str(src), str(dst))
        if mode is not None:
            Path(dst).chmod(mode)

    def symlink(self, target: Union[str, Path], link: Union[str, Path]) -> None:
        """Equivalent of ``ln -sf target link``."""
        if self.mock:
            logger.info(f"MOCK: Would link {link} -> {target}")
            return
        link = Path(link)
        if link.is_symlink() or link.exists():
            link.unlink()
        link.symlink_to(target)
