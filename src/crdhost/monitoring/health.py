# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/crdhost/monitoring/health.py

from __future__ import annotations

import logging
import time
from collections import Counter
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import psutil

from crdhost.config.models import SetupConfig
from crdhost.execution.runner import CommandRunner
from crdhost.monitoring.status import mount_active, service_active
from crdhost.observers.dispatcher import EventBus
from crdhost.observers.events import new_ctx, AlertRaised, HealthChecked, Heartbeat
from crdhost.setup.session import ProvisioningSession

log = logging.getLogger("crdhost")


class CheckResult(str, Enum):
    HEALTHY = "HEALTHY"
    REPAIRED = "REPAIRED"
    REPAIR_FAILED = "REPAIR_FAILED"


@dataclass(frozen=True)
class HealthCheck:
    name: str
    probe: Callable[[], bool]
    repair: Callable[[], Any]
    down_message: str


def read_resources(root: Path = Path("/")) -> Tuple[float, float]:
    """(memory %, disk %) for the resource line."""
    return psutil.virtual_memory().percent, psutil.disk_usage(str(root)).percent


class HealthMonitor:
    """
    Keep-alive loop run after setup.

    Every cycle logs a heartbeat. Every `check_every` cycles each check is
    probed; a failing check gets exactly one repair and one re-probe, which
    tags it REPAIRED or REPAIR_FAILED. REPAIR_FAILED raises the alert counter.
    The loop ends only on KeyboardInterrupt (or max_cycles).
    """

    def __init__(
        self,
        *,
        runner: CommandRunner,
        session: ProvisioningSession,
        cfg: SetupConfig,
        bus: Optional[EventBus] = None,
        run_ctx: Optional[Dict[str, Any]] = None,
        sleep: Callable[[float], None] = time.sleep,
        resources: Callable[[], Tuple[float, float]] = read_resources,
    ):
        self.runner = runner
        self.session = session
        self.interval = cfg.monitor.interval_seconds
        self.check_every = cfg.monitor.check_every
        self.bus = bus or EventBus()
        self.run_ctx = run_ctx or new_ctx()
        self.sleep = sleep
        self.resources = resources

        self.cycle = 0
        self.alerts = 0
        self.repair_attempts: Counter = Counter()
        self.checks: List[HealthCheck] = [
            HealthCheck(
                name="service",
                probe=lambda: service_active(runner, session.service_unit),
                repair=lambda: runner.run(["systemctl", "restart", session.service_unit]),
                down_message="Chrome Remote Desktop service is down, attempting restart...",
            ),
            HealthCheck(
                name="mount",
                probe=lambda: mount_active(runner, session),
                repair=lambda: runner.run(
                    ["mount", "--bind", str(session.storage_dir), str(session.user_storage)]
                ),
                down_message="Storage mount is down, attempting remount...",
            ),
        ]

    def run_check(self, check: HealthCheck) -> CheckResult:
        if check.probe():
            result = CheckResult.HEALTHY
        else:
            log.warning("%s", check.down_message)
            self.repair_attempts[check.name] += 1
            check.repair()
            result = CheckResult.REPAIRED if check.probe() else CheckResult.REPAIR_FAILED

        self.bus.emit(HealthChecked(check=check.name, result=result.value, cycle=self.cycle, **self.run_ctx))
        if result is CheckResult.REPAIR_FAILED:
            self.alerts += 1
            log.error("Repair of %s failed (alerts=%d)", check.name, self.alerts)
            self.bus.emit(AlertRaised(check=check.name, cycle=self.cycle, alerts=self.alerts, **self.run_ctx))
        elif result is CheckResult.REPAIRED:
            log.info("%s repaired", check.name)
        return result

    def log_resources(self) -> None:
        memory, disk = self.resources()
        log.info("System resources - Memory: %.1f%%, Disk: %.0f%%", memory, disk)

    def run_cycle(self) -> Dict[str, CheckResult]:
        self.cycle += 1
        log.info("System alive (cycle %d)", self.cycle)
        self.bus.emit(Heartbeat(cycle=self.cycle, **self.run_ctx))

        if self.cycle % self.check_every != 0:
            return {}

        log.info("Performing periodic status check...")
        results = {check.name: self.run_check(check) for check in self.checks}
        self.log_resources()
        return results

    def run(self, max_cycles: Optional[int] = None) -> None:
        log.info("Starting enhanced keep-alive monitor...")
        log.info("Press Ctrl+C to stop monitoring")
        while max_cycles is None or self.cycle < max_cycles:
            self.run_cycle()
            self.sleep(self.interval)
