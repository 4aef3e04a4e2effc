import logging
from pathlib import Path

import pytest

from crdhost.deploy.executor import ProvisioningDriver, SetupReport, StageContext, StageOutcome
from crdhost.deploy.stages import (
    default_stages,
    install_browser,
    install_desktop,
    install_packages,
    setup_storage,
)
from crdhost.errors import OperationFailure
from crdhost.execution.runner import CommandRunner
from crdhost.observers.dispatcher import EventBus
from crdhost.observers.events import SetupSummary, StageFailed, StageStarted
from crdhost.setup.inputs import OperatorInput
from crdhost.setup.session import ProvisioningSession
from crdhost.utils.retry import RetryPolicy, StageResult

from conftest import FakeRunner, ScriptedPrompter, fake_host

CRD_COMMAND = 'DISPLAY= /opt/google/chrome-remote-desktop/start-host --code="4/0Abc" --redirect-url="https://remotedesktop.google.com/_/oauthredirect" --name=$(hostname)'


class Capture:
    def __init__(self): self.events = []
    def notify(self, ev): self.events.append(ev)


class FakeDownloader:
    def __init__(self, results=(True,)):
        self.results = list(results)
        self.calls = []

    def __call__(self, url, dest, timeout=None):
        self.calls.append((url, dest))
        ok = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if ok:
            Path(dest).parent.mkdir(parents=True, exist_ok=True)
            Path(dest).write_bytes(b"deb")
        return ok


def _ctx(cfg, runner, *, prompter=None, downloader=None, password="hunter2pass"):
    prompter = prompter or ScriptedPrompter(answers=[CRD_COMMAND, "123456"])
    return StageContext(
        cfg=cfg,
        runner=runner,
        policy=RetryPolicy(retries=cfg.retry.retries, delay=0, confirm=prompter.confirm, sleep=lambda s: None),
        prompter=prompter,
        operator=OperatorInput(username="alice", password=password),
        downloader=downloader or FakeDownloader(),
    )


def test_end_to_end_creates_admin_user_with_home_and_shell_additions(cfg):
    runner = fake_host()
    session = ProvisioningSession.for_user("alice", cfg)
    cap = Capture()

    report = ProvisioningDriver(default_stages(), _ctx(cfg, runner), bus=EventBus([cap])).run(session)

    assert report.ok
    assert [o.name for o in report.outcomes] == [s.name for s in default_stages()]

    # user, admin group, password
    assert runner.called("useradd")[0][-1] == "alice"
    assert "alice" in runner.groups["sudo"]
    assert "alice" in runner.groups["chrome-remote-desktop"]
    chpasswd_idx = runner.calls.index(["chpasswd"])
    assert runner.inputs[chpasswd_idx] == "alice:hunter2pass\n"

    # home + shell-startup additions
    assert session.home.is_dir()
    bashrc = session.shell_rc.read_text()
    assert "export DISPLAY=:20" in bashrc
    assert f"export PATH=$PATH:{session.home}/.local/bin" in bashrc
    assert "CHROME_REMOTE_DESKTOP_DEFAULT_DESKTOP_SIZES=1920x1080" in bashrc

    # host bindings
    assert cfg.paths.session_launcher.read_text().strip() == "exec /etc/X11/Xsession /usr/bin/xfce4-session"
    assert session.fstab_line in cfg.paths.fstab.read_text().splitlines()
    assert "vm.swappiness=10" in cfg.paths.sysctl_conf.read_text()
    assert runner.called("systemctl", "enable", "chrome-remote-desktop@alice.service")
    assert runner.called("mount", "--bind", str(cfg.paths.storage_dir), str(session.user_storage))
    assert runner.called("su", "-", "alice", "-c", CRD_COMMAND + " --pin=123456")

    # downloaded .deb is cleaned up
    assert list(cfg.paths.download_dir.glob("*.deb")) == []
    assert isinstance(cap.events[-1], SetupSummary)


def test_optional_package_failure_warns_and_continues(cfg, caplog):
    runner = FakeRunner().on("apt-get", "install", "--assume-yes", "nload", rc=100)
    ctx = _ctx(cfg, runner)

    result = install_packages(ctx, ProvisioningSession.for_user("alice", cfg))

    assert result is StageResult.SUCCESS
    installed = [c[-1] for c in runner.called("apt-get", "install")]
    assert installed == cfg.packages.required + cfg.packages.optional
    assert "Install nload failed, continuing..." in caplog.text
    assert ctx.warnings == ["Install nload"]


def test_required_package_failure_is_fatal_and_later_stages_do_not_run(cfg):
    runner = fake_host().on("apt-get", "install", "--assume-yes", "xvfb", rc=100)
    cap = Capture()
    session = ProvisioningSession.for_user("alice", cfg)
    driver = ProvisioningDriver(default_stages(), _ctx(cfg, runner), bus=EventBus([cap]))

    with pytest.raises(OperationFailure) as exc:
        driver.run(session)

    assert exc.value.returncode == 100
    assert driver.report.outcomes[-1].name == "install_packages"
    assert driver.report.outcomes[-1].status is StageResult.FATAL
    started = [e.name for e in cap.events if isinstance(e, StageStarted)]
    assert "install_desktop" not in started
    assert any(isinstance(e, StageFailed) for e in cap.events)
    # packages after the failing one are never attempted
    installed = [c[-1] for c in runner.called("apt-get", "install")]
    assert installed[-1] == "xvfb"


def test_repository_update_failure_asks_operator(cfg):
    runner = fake_host().on("apt-get", "update", rc=100)
    prompter = ScriptedPrompter(answers=[CRD_COMMAND, "123456"], confirms=[True])
    driver = ProvisioningDriver(default_stages()[:3], _ctx(cfg, runner, prompter=prompter))

    report = driver.run(ProvisioningSession.for_user("alice", cfg))

    assert report.outcomes[-1].status is StageResult.RECOVERABLE
    assert len(runner.called("apt-get", "update")) == cfg.retry.retries + 1
    assert "Continue anyway?" in prompter.asked


def test_dpkg_failure_falls_back_to_fix_broken(cfg):
    runner = fake_host().on("dpkg", "--install", rc=1)
    stages = [s for s in default_stages() if s.name in ("create_user", "install_remote_desktop")]
    ProvisioningDriver(stages, _ctx(cfg, runner)).run(ProvisioningSession.for_user("alice", cfg))
    assert runner.called("apt-get", "install", "--assume-yes", "--fix-broken")


def test_download_failure_retries_then_aborts(cfg):
    downloader = FakeDownloader(results=[False])
    stages = [s for s in default_stages() if s.name == "install_remote_desktop"]
    with pytest.raises(OperationFailure, match="Download Chrome Remote Desktop package"):
        ProvisioningDriver(stages, _ctx(cfg, FakeRunner(), downloader=downloader)).run(
            ProvisioningSession.for_user("alice", cfg)
        )
    assert len(downloader.calls) == cfg.retry.retries + 1


def test_service_enable_failure_is_recoverable(cfg):
    runner = FakeRunner().on("systemctl", "enable", rc=1)
    stages = [s for s in default_stages() if s.name == "enable_service"]
    report = ProvisioningDriver(stages, _ctx(cfg, runner)).run(ProvisioningSession.for_user("alice", cfg))
    assert report.outcomes[0].status is StageResult.RECOVERABLE
    assert runner.called("systemctl", "start", "chrome-remote-desktop@alice.service")


def test_fstab_entry_added_once(cfg):
    session = ProvisioningSession.for_user("alice", cfg)
    ctx = _ctx(cfg, FakeRunner())
    setup_storage(ctx, session)
    setup_storage(ctx, session)
    lines = cfg.paths.fstab.read_text().splitlines()
    assert lines.count("%s %s none bind 0 0" % (cfg.paths.storage_dir, session.user_storage)) == 1
    assert lines[0].startswith("UUID=")


def test_pin_and_password_never_reach_the_log(cfg, caplog):
    caplog.set_level(logging.DEBUG, logger="crdhost")
    runner = CommandRunner(dry_run=True)

    stages = [s for s in default_stages() if s.name in ("create_user", "authorize_remote_desktop")]
    ProvisioningDriver(stages, _ctx(cfg, runner, password="s3cretpass99")).run(
        ProvisioningSession.for_user("alice", cfg)
    )
    assert "$ su - alice -c '**** --pin=****'" in caplog.text
    assert "123456" not in caplog.text
    assert "s3cretpass99" not in caplog.text


def test_report_summary_counts():
    report = SetupReport()
    report.add(StageOutcome("a", StageResult.SUCCESS))
    report.add(StageOutcome("b", StageResult.RECOVERABLE, warnings=["Install nload"]))
    assert report.ok
    assert report.summary() == "OK=1 RECOVERED=1 FAILED=0"
    report.add(StageOutcome("c", StageResult.FATAL, error="boom"))
    assert not report.ok


def test_session_bindings(cfg):
    session = ProvisioningSession.for_user("bob", cfg)
    b = session.bindings()
    assert b["service_unit"] == "chrome-remote-desktop@bob.service"
    assert b["user_storage"] == str(cfg.paths.home_root / "bob" / "storage")
    assert b["fstab_line"].endswith("none bind 0 0")


def test_dry_run_leaves_host_files_untouched(cfg, caplog):
    caplog.set_level(logging.INFO, logger="crdhost")
    fstab_before = cfg.paths.fstab.read_text()
    downloader = FakeDownloader()
    session = ProvisioningSession.for_user("alice", cfg)

    report = ProvisioningDriver(
        default_stages(), _ctx(cfg, CommandRunner(dry_run=True), downloader=downloader)
    ).run(session)

    assert report.ok
    assert cfg.paths.fstab.read_text() == fstab_before
    assert not cfg.paths.sysctl_conf.exists()
    assert not session.shell_rc.exists()
    assert not cfg.paths.session_launcher.exists()
    assert not cfg.paths.storage_dir.exists()
    assert downloader.calls == []
    assert f"dry-run: would add to {cfg.paths.fstab}: {session.fstab_line}" in caplog.text


@pytest.mark.parametrize("stage,package", [
    (install_browser, "firefox-esr"),
    (install_packages, "nload"),
    (install_desktop, "thunar"),
])
def test_optional_install_failure_reports_success_in_every_package_stage(cfg, stage, package):
    runner = FakeRunner().on("apt-get", "install", "--assume-yes", package, rc=100)
    ctx = _ctx(cfg, runner)

    assert stage(ctx, ProvisioningSession.for_user("alice", cfg)) is StageResult.SUCCESS
    assert f"Install {package}" in ctx.warnings
