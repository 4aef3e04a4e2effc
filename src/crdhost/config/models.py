# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/crdhost/config/models.py

from pathlib import Path
from typing import List

from pydantic import BaseModel, Field, HttpUrl


class PathsConfig(BaseModel):
    """Every on-host location the setup reads or writes."""

    log_file: Path = Path("/var/log/crd_setup.log")
    backup_dir: Path = Path("/var/backups/crd_setup")
    backup_files: List[Path] = Field(
        default_factory=lambda: [Path("/etc/passwd"), Path("/etc/group"), Path("/etc/sudoers")]
    )
    home_root: Path = Path("/home")
    storage_dir: Path = Path("/storage")
    fstab: Path = Path("/etc/fstab")
    sysctl_conf: Path = Path("/etc/sysctl.conf")
    session_launcher: Path = Path("/etc/chrome-remote-desktop-session")
    resolv_conf: Path = Path("/etc/resolv.conf")
    download_dir: Path = Path("/tmp")
    crd_native_host_config: Path = Path(
        "/etc/opt/chrome/native-messaging-hosts/com.google.chrome.remote_desktop.json"
    )


class PreflightConfig(BaseModel):
    min_free_kb: int = 2097152          # 2 GiB
    expected_arch: str = "amd64"
    probe_hosts: List[str] = Field(
        default_factory=lambda: ["8.8.8.8", "1.1.1.1", "google.com", "ubuntu.com"]
    )
    probe_url: str = "https://google.com"
    probe_dns_name: str = "google.com"
    ping_timeout_s: int = 3
    http_connect_timeout_s: float = 10.0
    http_total_timeout_s: float = 15.0


class RetryConfig(BaseModel):
    retries: int = Field(2, ge=0)       # re-attempts after the first call
    delay_seconds: float = Field(5.0, ge=0)
    package_retries: int = Field(0, ge=0)


class PackagesConfig(BaseModel):
    """
    required packages abort the run when they cannot be installed,
    optional ones only log a warning.
    """

    firefox_ppa: str = "ppa:mozillateam/ppa"
    browser: str = "firefox-esr"
    required: List[str] = Field(
        default_factory=lambda: [
            "dbus-x11", "dbus", "xvfb", "xserver-xorg-video-dummy", "xbase-clients",
            "python3-packaging", "python3-psutil", "python3-xdg", "libgbm1",
            "libutempter0",
        ]
    )
    optional: List[str] = Field(
        default_factory=lambda: [
            "libfuse2", "nload", "qbittorrent", "ffmpeg", "gpac",
            "fonts-lklug-sinhala", "wget", "curl", "vim", "htop", "tree", "zip", "unzip",
            "software-properties-common", "apt-transport-https", "ca-certificates",
            "gnupg", "lsb-release",
        ]
    )
    desktop_required: List[str] = Field(
        default_factory=lambda: ["xfce4", "desktop-base", "xfce4-terminal", "xfce4-session"]
    )
    desktop_optional: List[str] = Field(
        default_factory=lambda: [
            "xfce4-panel", "xfce4-settings", "xfce4-taskmanager", "xfce4-screenshooter",
            "xfce4-clipman", "thunar", "ristretto", "xscreensaver", "lightdm",
            "lightdm-gtk-greeter",
        ]
    )
    remove: List[str] = Field(default_factory=lambda: ["gnome-terminal"])
    disable_units: List[str] = Field(default_factory=lambda: ["lightdm.service"])


class RemoteDesktopConfig(BaseModel):
    download_url: HttpUrl = Field(
        default="https://dl.google.com/linux/direct/chrome-remote-desktop_current_amd64.deb",
        validate_default=True,
    )
    download_timeout_s: float = 120.0
    group: str = "chrome-remote-desktop"
    unit_template: str = "chrome-remote-desktop@{username}.service"
    session_command: str = "exec /etc/X11/Xsession /usr/bin/xfce4-session"
    headless_url: str = "https://remotedesktop.google.com/headless"
    access_url: str = "https://remotedesktop.google.com/access"
    desktop_sizes: str = "1920x1080"
    display: str = ":20"


class MonitorConfig(BaseModel):
    interval_seconds: float = Field(300.0, ge=0)
    check_every: int = Field(6, gt=0)


class SetupConfig(BaseModel):
    admin_group: str = "sudo"
    login_shell: str = "/bin/bash"
    swappiness: int = 10
    paths: PathsConfig = PathsConfig()
    preflight: PreflightConfig = PreflightConfig()
    retry: RetryConfig = RetryConfig()
    packages: PackagesConfig = PackagesConfig()
    remote_desktop: RemoteDesktopConfig = RemoteDesktopConfig()
    monitor: MonitorConfig = MonitorConfig()
