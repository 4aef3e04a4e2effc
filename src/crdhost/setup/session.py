# src/crdhost/setup/session.py

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict

from crdhost.config.models import SetupConfig


@dataclass(frozen=True)
class ProvisioningSession:
    """
    Everything a stage needs to know about the user being provisioned.
    Built once after input collection and passed to each stage explicitly.
    """
    username: str
    home: Path
    shell_rc: Path
    user_storage: Path
    storage_dir: Path
    service_unit: str
    session_launcher: Path

    @classmethod
    def for_user(cls, username: str, cfg: SetupConfig) -> "ProvisioningSession":
        home = cfg.paths.home_root / username
        return cls(
            username=username,
            home=home,
            shell_rc=home / ".bashrc",
            user_storage=home / "storage",
            storage_dir=cfg.paths.storage_dir,
            service_unit=cfg.remote_desktop.unit_template.format(username=username),
            session_launcher=cfg.paths.session_launcher,
        )

    @property
    def owner(self) -> str:
        return f"{self.username}:{self.username}"

    @property
    def fstab_line(self) -> str:
        return f"{self.storage_dir} {self.user_storage} none bind 0 0"

    def bindings(self) -> Dict[str, str]:
        """Logical resource name -> on-host representation."""
        return {
            "storage": str(self.storage_dir),
            "user_storage": str(self.user_storage),
            "service_unit": self.service_unit,
            "fstab_line": self.fstab_line,
            "session_launcher": str(self.session_launcher),
            "shell_rc": str(self.shell_rc),
        }
