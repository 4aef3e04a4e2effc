# src/crdhost/monitoring/status.py
from __future__ import annotations

import logging
from typing import Dict

from crdhost.config.models import SetupConfig
from crdhost.execution.runner import CommandRunner
from crdhost.logging.log import success
from crdhost.setup.session import ProvisioningSession

log = logging.getLogger("crdhost")


def service_active(runner: CommandRunner, unit: str) -> bool:
    return runner.ok(["systemctl", "is-active", "--quiet", unit])


def mount_active(runner: CommandRunner, session: ProvisioningSession) -> bool:
    return runner.ok(["mountpoint", "-q", str(session.user_storage)])


def report_status(
    runner: CommandRunner,
    session: ProvisioningSession,
    cfg: SetupConfig,
) -> Dict[str, bool]:
    """Log user / service / mount state plus connection info. Read-only."""
    log.info("Checking system status...")
    status = {
        "user": runner.ok(["id", session.username]),
        "service": service_active(runner, session.service_unit),
        "mount": mount_active(runner, session),
    }

    if status["user"]:
        success(log, "User '%s' exists", session.username)
    else:
        log.error("User '%s' not found", session.username)

    if status["service"]:
        success(log, "Chrome Remote Desktop service is running")
    else:
        log.warning("Chrome Remote Desktop service is not running")

    if status["mount"]:
        success(log, "Storage mount is active")
    else:
        log.warning("Storage mount is not active")

    log.info("Connection Information:")
    log.info("- Visit: %s", cfg.remote_desktop.access_url)
    log.info("- Username: %s", session.username)
    log.info("- Desktop Environment: XFCE")
    log.info("- Default Resolution: %s", cfg.remote_desktop.desktop_sizes)
    return status
