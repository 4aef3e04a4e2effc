# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/crdhost/preflight/validator.py

from __future__ import annotations

import logging
import os
import shutil
import socket
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

import psutil
import requests

from crdhost.config.models import SetupConfig
from crdhost.errors import PreflightFailure
from crdhost.execution.runner import CommandRunner
from crdhost.logging.log import success
from crdhost.observers.dispatcher import EventBus
from crdhost.observers.events import (
    new_ctx,
    PreflightChecked,
    PreflightFailed,
    PreflightPassed,
)
from crdhost.setup.inputs import Prompter

log = logging.getLogger("crdhost")


@dataclass
class HostProbe:
    """Read-only questions about the host. Nothing here mutates state."""

    runner: CommandRunner

    def is_root(self) -> bool:
        return os.geteuid() == 0

    def has_command(self, name: str) -> bool:
        return shutil.which(name) is not None

    def architecture(self) -> str:
        return self.runner.output(["dpkg", "--print-architecture"]).strip()

    def free_kb(self, path: Path) -> int:
        return psutil.disk_usage(str(path)).free // 1024

    def ping(self, host: str, timeout_s: int) -> bool:
        return self.runner.ok(["ping", "-c", "1", "-W", str(timeout_s), host])

    def http_ok(self, url: str, connect_s: float, total_s: float) -> bool:
        try:
            r = requests.head(url, timeout=(connect_s, total_s), allow_redirects=True)
        except requests.RequestException as e:
            log.debug("HTTP probe %s failed: %s", url, e)
            return False
        return r.status_code < 500

    def dns_resolves(self, name: str) -> bool:
        try:
            socket.getaddrinfo(name, None)
        except OSError:
            return False
        return True

    def default_gateway(self) -> Optional[str]:
        out = self.runner.output(["ip", "route", "show", "default"])
        parts = out.split()
        if "via" in parts:
            i = parts.index("via")
            if i + 1 < len(parts):
                return parts[i + 1]
        return None


class PreflightValidator:
    """
    Checks run once before any mutation:
      - root privileges
      - apt-based system
      - architecture (warning only)
      - free disk space on /
      - internet connectivity (ping -> HTTP -> DNS), operator-overridable
    """

    def __init__(
        self,
        *,
        cfg: SetupConfig,
        probe: HostProbe,
        prompter: Prompter,
        bus: Optional[EventBus] = None,
        run_ctx: Optional[Dict[str, Any]] = None,
        root_path: Path = Path("/"),
    ):
        self.cfg = cfg
        self.probe = probe
        self.prompter = prompter
        self.bus = bus or EventBus()
        self.run_ctx = run_ctx or new_ctx()
        self.root_path = root_path

    def _record(self, check: str, ok: bool, detail: str = "") -> None:
        self.bus.emit(PreflightChecked(check=check, ok=ok, detail=detail, **self.run_ctx))

    def _fail(self, check: str, message: str) -> PreflightFailure:
        self._record(check, False, message)
        self.bus.emit(PreflightFailed(error=message, **self.run_ctx))
        log.error("%s", message)
        return PreflightFailure(message)

    def run(self) -> List[str]:
        """Return the names of checks the operator chose to override."""
        log.info("Checking system requirements...")
        overridden: List[str] = []

        if not self.probe.is_root():
            log.info("Please run: sudo crdhost")
            raise self._fail("root", "This script must be run as root")
        self._record("root", True)

        if not self.probe.has_command("apt-get"):
            raise self._fail(
                "package-manager",
                "This script requires a Debian/Ubuntu system with apt package manager.",
            )
        self._record("package-manager", True)

        arch = self.probe.architecture()
        expected = self.cfg.preflight.expected_arch
        if arch != expected:
            log.warning("This script is designed for %s architecture. Current: %s", expected, arch)
        self._record("architecture", arch == expected, arch)

        self.check_disk_space()

        if not self.check_connectivity():
            self.offer_network_override()
            overridden.append("network")

        success(log, "System requirements check passed")
        self.bus.emit(PreflightPassed(overridden=overridden, **self.run_ctx))
        return overridden

    def check_disk_space(self) -> int:
        free_kb = self.probe.free_kb(self.root_path)
        minimum = self.cfg.preflight.min_free_kb
        if free_kb < minimum:
            raise self._fail(
                "disk-space",
                f"Insufficient disk space. At least {minimum // (1024 * 1024)}GB required "
                f"({free_kb} KB available).",
            )
        self._record("disk-space", True, f"{free_kb} KB free")
        return free_kb

    def check_connectivity(self) -> Optional[str]:
        """Return the method that proved connectivity, or None."""
        pf = self.cfg.preflight
        log.info("Testing internet connectivity...")

        for host in pf.probe_hosts:
            if self.probe.ping(host, pf.ping_timeout_s):
                success(log, "Internet connection verified via %s", host)
                self._record("network", True, f"ping {host}")
                return f"ping:{host}"

        if self.probe.http_ok(pf.probe_url, pf.http_connect_timeout_s, pf.http_total_timeout_s):
            success(log, "Internet connection verified via HTTP")
            self._record("network", True, "http")
            return "http"

        if self.probe.dns_resolves(pf.probe_dns_name):
            success(log, "Internet connection verified via DNS lookup")
            self._record("network", True, "dns")
            return "dns"

        self._record("network", False, "no method succeeded")
        return None

    def offer_network_override(self) -> None:
        log.warning("Cannot verify internet connection, but continuing...")
        log.info("Please ensure you have internet access for package downloads")

        if self.prompter.confirm("Would you like to run network diagnostics?"):
            self.troubleshoot_network()

        if not self.prompter.confirm("Continue anyway?"):
            raise self._fail("network", "Internet connection required for installation")

    def troubleshoot_network(self) -> None:
        runner = self.probe.runner
        log.info("Running network diagnostics...")

        log.info("Active network interfaces:")
        lines = [
            ln for ln in runner.output(["ip", "addr", "show"]).splitlines()
            if any(tok in ln for tok in ("inet", "UP", "DOWN"))
        ]
        for ln in lines[:10]:
            self.prompter.show(ln)

        log.info("Default route:")
        self.prompter.show(runner.output(["ip", "route", "show", "default"]).rstrip())

        log.info("DNS servers:")
        resolv = self.cfg.paths.resolv_conf
        if resolv.is_file():
            for ln in resolv.read_text().splitlines():
                if ln.startswith("nameserver"):
                    self.prompter.show(ln)

        gateway = self.probe.default_gateway()
        if gateway:
            if self.probe.ping(gateway, self.cfg.preflight.ping_timeout_s):
                success(log, "Can reach gateway: %s", gateway)
            else:
                log.error("Cannot reach gateway: %s", gateway)

        log.info("Network diagnostics completed")
