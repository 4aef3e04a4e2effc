# src/crdhost/preflight/backup.py
from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Any, Dict, List, Optional

from crdhost.config.models import SetupConfig
from crdhost.logging.log import success
from crdhost.observers.dispatcher import EventBus
from crdhost.observers.events import BackupCreated, new_ctx

log = logging.getLogger("crdhost")


def create_backup(
    cfg: SetupConfig,
    *,
    bus: Optional[EventBus] = None,
    run_ctx: Optional[Dict[str, Any]] = None,
    dry_run: bool = False,
) -> List[Path]:
    """
    Copy the identity files into the backup dir as <name>.bak.
    Missing sources are skipped. The backup is never restored automatically.
    With dry_run nothing is copied; the would-be targets are logged and returned.
    """
    log.info("Creating backup of important files...")
    backup_dir = cfg.paths.backup_dir
    if not dry_run:
        backup_dir.mkdir(parents=True, exist_ok=True)

    copied: List[Path] = []
    for src in cfg.paths.backup_files:
        if not src.is_file():
            log.debug("backup: %s not present, skipping", src)
            continue
        dest = backup_dir / f"{src.name}.bak"
        if dry_run:
            log.info("dry-run: would copy %s to %s", src, dest)
        else:
            shutil.copy2(src, dest)
        copied.append(dest)

    if dry_run:
        return copied

    (bus or EventBus()).emit(
        BackupCreated(path=str(backup_dir), files=[str(p) for p in copied], **(run_ctx or new_ctx()))
    )
    success(log, "Backup created at %s", backup_dir)
    return copied
