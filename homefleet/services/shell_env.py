"""zsh + Oh My Zsh + yadm dotfiles.

Never writes .zshrc or .zprofile itself; those belong to the yadm repo.
"""
import os
import subprocess
import sys
from pathlib import Path
from typing import Optional

from homefleet.core.logger import get_logger
from homefleet.core.system import SystemCommands
from homefleet.models.config import ShellSettings
from homefleet.models.errors import HomefleetError, PackageInstallError
from homefleet.services.packages import AptManager

logger = get_logger(__name__)


class ShellEnvironment:
    """Brings a user's shell environment to the fleet standard."""

    def __init__(
        self,
        settings: ShellSettings,
        system: SystemCommands,
        apt: AptManager,
        home: Optional[Path] = None,
        platform: Optional[str] = None,
    ):
        self.settings = settings
        self.system = system
        self.apt = apt
        self.home = Path(home) if home else Path.home()
        self.platform = platform or sys.platform

        self.oh_my_zsh_dir = self.home / ".oh-my-zsh"
        zsh_custom = os.environ.get("ZSH_CUSTOM")
        self.zsh_custom = Path(zsh_custom) if zsh_custom else self.oh_my_zsh_dir / "custom"
        self.autosuggestions_dir = self.zsh_custom / "plugins" / "zsh-autosuggestions"

    @property
    def is_macos(self) -> bool:
        return self.platform == "darwin"

    def zsh_path(self) -> str:
        if self.is_macos:
            result = self.system.probe(["which", "zsh"])
            return result.stdout.strip() or "/bin/zsh"
        return "/usr/bin/zsh"

    def ensure_package(self, name: str) -> bool:
        if self.system.command_exists(name):
            logger.info(f"{name} is already installed.")
            return False

        logger.info(f"Installing {name}...")
        if self.is_macos:
            try:
                self.system.run(["brew", "install", name])
            except subprocess.CalledProcessError as e:
                raise PackageInstallError(f"brew install {name} failed: {e.stderr}") from e
        else:
            self.apt.install([name])
        return True

    def install_oh_my_zsh(self) -> bool:
        if (self.oh_my_zsh_dir / "oh-my-zsh.sh").exists():
            logger.info(f"Oh My Zsh is already installed at {self.oh_my_zsh_dir}")
            return False

        logger.info("Installing Oh My Zsh...")
        script = f'sh -c "$(curl -fsSL {self.settings.oh_my_zsh_installer})" "" --unattended'
        try:
            self.system.run(["sh", "-c", script])
        except subprocess.CalledProcessError as e:
            raise HomefleetError(f"Oh My Zsh installer failed: {e.stderr}") from e
        return True

    def install_autosuggestions(self) -> bool:
        if self.autosuggestions_dir.is_dir():
            logger.info(f"zsh-autosuggestions already present at {self.autosuggestions_dir}")
            return False

        logger.info("Installing zsh-autosuggestions plugin...")
        try:
            self.system.run(
                ["git", "clone", self.settings.autosuggestions_repo, str(self.autosuggestions_dir)]
            )
        except subprocess.CalledProcessError as e:
            raise HomefleetError(f"Failed to clone zsh-autosuggestions: {e.stderr}") from e
        return True

    def clone_dotfiles(self) -> bool:
        tracked = self.system.probe(["yadm", "list"])
        if tracked.returncode == 0 and ".zshrc" in tracked.stdout.split():
            logger.info("Dotfiles already managed by yadm.")
            return False

        logger.info(f"Cloning dotfiles from {self.settings.dotfiles_repo} with yadm...")
        try:
            self.system.run(["yadm", "clone", "-f", self.settings.dotfiles_repo])
        except subprocess.CalledProcessError as e:
            raise HomefleetError(f"Failed to clone dotfiles: {e.stderr}") from e
        return True

    def set_login_shell(self) -> bool:
        zsh = self.zsh_path()
        if os.environ.get("SHELL") == zsh:
            logger.info("Default shell is already zsh.")
            return False

        user = os.environ.get("USER") or self.home.name
        logger.info(f"Changing default shell to {zsh}")
        cmd = ["chsh", "-s", zsh, user]
        if not self.is_macos:
            cmd.insert(0, "sudo")
        self.system.run(cmd)
        return True

    def setup(self) -> None:
        self.ensure_package("zsh")
        self.ensure_package("yadm")
        self.install_oh_my_zsh()
        self.install_autosuggestions()
        self.clone_dotfiles()
        self.set_login_shell()
        logger.info("Zsh environment setup complete!")
