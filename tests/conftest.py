import logging
import subprocess
from pathlib import Path
from typing import Callable, Dict, List, Optional

import pytest

from crdhost.config.models import (
    MonitorConfig,
    PathsConfig,
    RetryConfig,
    SetupConfig,
)
from crdhost.errors import OperationFailure

# ----------------- Fakes -----------------

class FakeRunner:
    """
    Records argv lists instead of executing them.
    Rules match on an argv prefix; rc may be an int or a list consumed per call
    (the last value repeats).
    """
    def __init__(self):
        self.calls: List[List[str]] = []
        self.inputs: Dict[int, str] = {}
        self._rules = []

    def on(self, *prefix, rc=0, stdout="", effect: Optional[Callable] = None):
        self._rules.insert(0, {"prefix": list(prefix), "rc": rc, "stdout": stdout, "effect": effect})
        return self

    def _respond(self, argv):
        for rule in self._rules:
            if argv[: len(rule["prefix"])] == rule["prefix"]:
                if rule["effect"]:
                    rule["effect"](argv)
                rc = rule["rc"]
                if isinstance(rc, list):
                    rc = rc.pop(0) if len(rc) > 1 else rc[0]
                return rc, rule["stdout"]
        return 0, ""

    def run(self, cmd, *, check=False, input_text=None, redact=(), timeout=None, quiet=False):
        argv = [str(c) for c in cmd]
        self.calls.append(argv)
        if input_text is not None:
            self.inputs[len(self.calls) - 1] = input_text
        rc, out = self._respond(argv)
        if check and rc:
            raise OperationFailure(f"Command failed ({rc}): {' '.join(argv)}", returncode=rc)
        return subprocess.CompletedProcess(argv, rc, out, "")

    def ok(self, cmd, **kw):
        return self.run(cmd, **kw).returncode == 0

    def output(self, cmd, **kw):
        return self.run(cmd, **kw).stdout

    def called(self, *prefix) -> List[List[str]]:
        return [c for c in self.calls if c[: len(prefix)] == list(prefix)]


def fake_host() -> FakeRunner:
    """A runner whose useradd creates the home directory and usermod records group -> members."""
    runner = FakeRunner()
    runner.groups = {}

    def useradd(argv):
        Path(argv[argv.index("-d") + 1]).mkdir(parents=True)

    def usermod(argv):
        # usermod -aG <group> <user>
        runner.groups.setdefault(argv[2], set()).add(argv[-1])

    runner.on("useradd", effect=useradd)
    runner.on("usermod", effect=usermod)
    return runner


class FakeProbe:
    def __init__(self, runner=None, *, root=True, apt=True, arch="amd64", free_kb=50_000_000,
                 ping_ok=("8.8.8.8",), http=False, dns=False, gateway="10.0.0.1"):
        self.runner = runner or FakeRunner()
        self.root, self.apt, self.arch, self.free = root, apt, arch, free_kb
        self.ping_ok, self.http, self.dns, self.gateway = set(ping_ok), http, dns, gateway
        self.pinged = []

    def is_root(self): return self.root
    def has_command(self, name): return self.apt
    def architecture(self): return self.arch
    def free_kb(self, path): return self.free
    def ping(self, host, timeout_s):
        self.pinged.append(host)
        return host in self.ping_ok
    def http_ok(self, url, connect_s, total_s): return self.http
    def dns_resolves(self, name): return self.dns
    def default_gateway(self): return self.gateway


def fake_downloader(url, dest, timeout=None):
    Path(dest).parent.mkdir(parents=True, exist_ok=True)
    Path(dest).write_bytes(b"deb")
    return True


class ScriptedPrompter:
    def __init__(self, answers=None, confirms=None):
        self.answers = list(answers or [])
        self.confirms = list(confirms or [])
        self.asked: List[str] = []
        self.shown: List[str] = []

    def prompt(self, text, *, hide_input=False):
        self.asked.append(text)
        if not self.answers:
            raise AssertionError(f"unexpected prompt: {text}")
        return self.answers.pop(0)

    def confirm(self, text):
        self.asked.append(text)
        return self.confirms.pop(0) if self.confirms else False

    def show(self, text):
        self.shown.append(text)


# ----------------- Fixtures -----------------

@pytest.fixture(autouse=True)
def _reset_crdhost_logger():
    yield
    logger = logging.getLogger("crdhost")
    for h in list(logger.handlers):
        h.close()
    logger.handlers.clear()
    logger.propagate = True


@pytest.fixture
def runner():
    return FakeRunner()


@pytest.fixture
def cfg(tmp_path: Path) -> SetupConfig:
    etc = tmp_path / "etc"
    etc.mkdir()
    for name in ("passwd", "group", "sudoers"):
        (etc / name).write_text(f"{name} contents\n")
    (etc / "fstab").write_text("UUID=abcd / ext4 defaults 0 1\n")
    (etc / "resolv.conf").write_text("search lan\nnameserver 10.0.0.1\n")
    (tmp_path / "home").mkdir()

    return SetupConfig(
        paths=PathsConfig(
            log_file=tmp_path / "log" / "crd_setup.log",
            backup_dir=tmp_path / "backups",
            backup_files=[etc / "passwd", etc / "group", etc / "sudoers"],
            home_root=tmp_path / "home",
            storage_dir=tmp_path / "storage",
            fstab=etc / "fstab",
            sysctl_conf=etc / "sysctl.conf",
            session_launcher=etc / "chrome-remote-desktop-session",
            resolv_conf=etc / "resolv.conf",
            download_dir=tmp_path / "dl",
            crd_native_host_config=etc / "crd.json",
        ),
        retry=RetryConfig(retries=2, delay_seconds=0),
        monitor=MonitorConfig(interval_seconds=0, check_every=6),
    )
