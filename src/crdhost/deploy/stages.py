# src/crdhost/deploy/stages.py
from __future__ import annotations

import logging
from pathlib import Path
from typing import List

from crdhost.deploy.executor import Stage, StageContext
from crdhost.logging.log import success
from crdhost.setup.inputs import collect_crd_authorization
from crdhost.setup.session import ProvisioningSession
from crdhost.utils.retry import Criticality, StageResult

log = logging.getLogger("crdhost")

APT_INSTALL = ["apt-get", "install", "--assume-yes"]


def _outcome(ctx: StageContext) -> StageResult:
    return StageResult.RECOVERABLE if ctx.warnings else StageResult.SUCCESS


def _append_once(path: Path, line: str) -> bool:
    """Append line to path unless an identical line is already there."""
    text = path.read_text() if path.exists() else ""
    if line in text.splitlines():
        return False
    with path.open("a") as f:
        if text and not text.endswith("\n"):
            f.write("\n")
        f.write(line + "\n")
    return True


def _install_each(ctx: StageContext, packages: List[str], criticality: Criticality) -> List[str]:
    """One install per package so a failure never hides the rest of the list."""
    skipped: List[str] = []
    for package in packages:
        result = ctx.cmd(
            APT_INSTALL + [package],
            label=f"Install {package}",
            criticality=criticality,
            retries=ctx.cfg.retry.package_retries,
        )
        if result is StageResult.SUCCESS:
            success(log, "Installed %s", package)
        else:
            skipped.append(package)
    return skipped


# ---------------------------------------------------------------------
# User
# ---------------------------------------------------------------------

def create_user(ctx: StageContext, session: ProvisioningSession) -> StageResult:
    cfg = ctx.cfg
    user = session.username
    password = ctx.operator.password.get_secret_value()

    ctx.cmd(
        ["useradd", "-m", "-d", str(session.home), "-s", cfg.login_shell, user],
        label=f"Create user '{user}'",
    )
    success(log, "User '%s' created successfully", user)

    ctx.cmd(["usermod", "-aG", cfg.admin_group, user], label=f"Add user to {cfg.admin_group} group")
    success(log, "User added to %s group", cfg.admin_group)

    ctx.cmd(
        ["chpasswd"],
        label="Set password",
        input_text=f"{user}:{password}\n",
        redact=[password],
    )
    success(log, "Password set successfully")
    return _outcome(ctx)


def configure_shell(ctx: StageContext, session: ProvisioningSession) -> StageResult:
    rd = ctx.cfg.remote_desktop
    block = ctx.renderer.render(
        "bashrc.j2",
        {"home": str(session.home), "desktop_sizes": rd.desktop_sizes, "display": rd.display},
    )
    if not ctx.skipped("append %d lines to %s", block.count("\n"), session.shell_rc):
        session.shell_rc.parent.mkdir(parents=True, exist_ok=True)
        with session.shell_rc.open("a") as f:
            f.write(block)

    ctx.cmd(["chown", "-R", session.owner, str(session.home)], label="Set home ownership")
    success(log, "User environment configured successfully")
    return _outcome(ctx)


# ---------------------------------------------------------------------
# Packages
# ---------------------------------------------------------------------

def update_repositories(ctx: StageContext, session: ProvisioningSession) -> StageResult:
    result = ctx.attempt(
        lambda: ctx.runner.ok(["apt-get", "update"]),
        label="Update package repositories",
        criticality=Criticality.CONFIRM,
    )
    if result is StageResult.SUCCESS:
        success(log, "Package repositories updated")
    else:
        log.info("This might be due to network issues or repository problems")
    return _outcome(ctx)


def _report_skipped(skipped: List[str]) -> StageResult:
    """
    Package stages report SUCCESS once every required package is in: a
    skipped optional package is logged (and kept in ctx.warnings) only.
    """
    if skipped:
        log.warning("Skipped optional packages: %s", ", ".join(skipped))
    return StageResult.SUCCESS


def install_browser(ctx: StageContext, session: ProvisioningSession) -> StageResult:
    pk = ctx.cfg.packages
    log.info("Installing %s...", pk.browser)
    ctx.cmd(["add-apt-repository", pk.firefox_ppa, "-y"], label=f"Add {pk.firefox_ppa}",
            criticality=Criticality.WARN)
    ctx.cmd(["apt-get", "update"], label="Refresh repositories", criticality=Criticality.WARN,
            retries=None)
    return _report_skipped(_install_each(ctx, [pk.browser], Criticality.WARN))


def install_packages(ctx: StageContext, session: ProvisioningSession) -> StageResult:
    """Required packages abort on failure, optional ones only warn."""
    pk = ctx.cfg.packages
    _install_each(ctx, pk.required, Criticality.ABORT)
    return _report_skipped(_install_each(ctx, pk.optional, Criticality.WARN))


def install_desktop(ctx: StageContext, session: ProvisioningSession) -> StageResult:
    pk = ctx.cfg.packages
    log.info("Installing XFCE desktop environment...")
    ctx.cmd(["add-apt-repository", "universe", "-y"], label="Enable universe",
            criticality=Criticality.WARN)
    ctx.cmd(["apt-get", "update"], label="Refresh repositories", criticality=Criticality.WARN,
            retries=None)
    _install_each(ctx, pk.desktop_required, Criticality.ABORT)
    skipped = _install_each(ctx, pk.desktop_optional, Criticality.WARN)

    launcher = ctx.renderer.render(
        "crd-session.j2", {"session_command": ctx.cfg.remote_desktop.session_command}
    )
    if not ctx.skipped("write %s: %s", session.session_launcher, launcher.strip()):
        session.session_launcher.parent.mkdir(parents=True, exist_ok=True)
        session.session_launcher.write_text(launcher)
        success(log, "Desktop session launcher written to %s", session.session_launcher)

    for package in pk.remove:
        ctx.best_effort(["apt-get", "remove", "--assume-yes", package])
    for unit in pk.disable_units:
        ctx.best_effort(["systemctl", "disable", unit])
    return _report_skipped(skipped)


# ---------------------------------------------------------------------
# Chrome Remote Desktop
# ---------------------------------------------------------------------

def install_remote_desktop(ctx: StageContext, session: ProvisioningSession) -> StageResult:
    rd = ctx.cfg.remote_desktop
    url = str(rd.download_url)
    deb = ctx.cfg.paths.download_dir / url.rsplit("/", 1)[-1]

    log.info("Installing Chrome Remote Desktop...")
    if not ctx.skipped("download %s to %s", url, deb):
        ctx.attempt(
            lambda: ctx.downloader(url, deb, timeout=rd.download_timeout_s),
            label="Download Chrome Remote Desktop package",
        )
        success(log, "Downloaded Chrome Remote Desktop package")

    try:
        if ctx.runner.ok(["dpkg", "--install", str(deb)]):
            success(log, "Chrome Remote Desktop installed")
        else:
            log.info("Fixing dependencies...")
            ctx.cmd(APT_INSTALL + ["--fix-broken"], label="Fix broken dependencies", retries=None)
            success(log, "Dependencies fixed")
    finally:
        deb.unlink(missing_ok=True)

    ctx.cmd(["usermod", "-aG", rd.group, session.username], label=f"Add user to {rd.group} group")
    success(log, "User added to %s group", rd.group)
    return _outcome(ctx)


def authorize_remote_desktop(ctx: StageContext, session: ProvisioningSession) -> StageResult:
    log.info("Setting up Chrome Remote Desktop authentication...")
    auth = collect_crd_authorization(ctx.prompter, headless_url=ctx.cfg.remote_desktop.headless_url)

    ctx.cmd(
        ["su", "-", session.username, "-c", auth.host_command()],
        label="Configure Chrome Remote Desktop",
        redact=[auth.pin.get_secret_value(), auth.command.get_secret_value()],
    )
    success(log, "Chrome Remote Desktop configured successfully")
    return _outcome(ctx)


def enable_service(ctx: StageContext, session: ProvisioningSession) -> StageResult:
    unit = session.service_unit
    if ctx.cmd(["systemctl", "enable", unit], label=f"Enable {unit}",
               criticality=Criticality.WARN) is StageResult.SUCCESS:
        success(log, "Chrome Remote Desktop service enabled")
    if ctx.cmd(["systemctl", "start", unit], label=f"Start {unit}",
               criticality=Criticality.WARN) is StageResult.SUCCESS:
        success(log, "Chrome Remote Desktop service started")
    return _outcome(ctx)


# ---------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------

def setup_storage(ctx: StageContext, session: ProvisioningSession) -> StageResult:
    log.info("Setting up storage for user '%s'...", session.username)

    if not ctx.skipped("create %s and %s (mode 755)", session.storage_dir, session.user_storage):
        session.storage_dir.mkdir(parents=True, exist_ok=True)
        session.storage_dir.chmod(0o755)
        session.user_storage.mkdir(parents=True, exist_ok=True)
        success(log, "Storage directory created")

    ctx.cmd(["chown", session.owner, str(session.storage_dir)], label="Set storage ownership")
    ctx.cmd(["chown", session.owner, str(session.user_storage)], label="Set user storage ownership")

    ctx.cmd(
        ["mount", "--bind", str(session.storage_dir), str(session.user_storage)],
        label="Create storage bind mount",
    )
    success(log, "Storage bind mount created")

    fstab = ctx.cfg.paths.fstab
    if not ctx.skipped("add to %s: %s", fstab, session.fstab_line) and _append_once(fstab, session.fstab_line):
        success(log, "Storage mount added to fstab")
    return _outcome(ctx)


# ---------------------------------------------------------------------
# Optimisation
# ---------------------------------------------------------------------

def optimize_system(ctx: StageContext, session: ProvisioningSession) -> StageResult:
    cfg = ctx.cfg
    swappiness = f"vm.swappiness={cfg.swappiness}"
    if not ctx.skipped("add to %s: %s", cfg.paths.sysctl_conf, swappiness):
        _append_once(cfg.paths.sysctl_conf, swappiness)

    if cfg.paths.crd_native_host_config.is_file():
        success(log, "Chrome Remote Desktop configuration found")

    ctx.cmd(["apt-get", "autoremove", "--assume-yes"], label="Remove unused packages",
            criticality=Criticality.WARN)
    ctx.cmd(["apt-get", "autoclean"], label="Clean package cache", criticality=Criticality.WARN)
    success(log, "System optimization completed")
    return _outcome(ctx)


def default_stages() -> List[Stage]:
    return [
        Stage("create_user", create_user, "Creating user and setting up environment"),
        Stage("configure_shell", configure_shell, "Configuring shell startup"),
        Stage("update_repositories", update_repositories, "Updating package repositories"),
        Stage("install_browser", install_browser, "Installing browser"),
        Stage("install_packages", install_packages, "Installing essential packages"),
        Stage("install_desktop", install_desktop, "Installing desktop environment"),
        Stage("install_remote_desktop", install_remote_desktop, "Installing Chrome Remote Desktop"),
        Stage("authorize_remote_desktop", authorize_remote_desktop, "Authorizing this host"),
        Stage("enable_service", enable_service, "Enabling Chrome Remote Desktop service"),
        Stage("setup_storage", setup_storage, "Setting up storage"),
        Stage("optimize_system", optimize_system, "Optimizing system performance"),
    ]
