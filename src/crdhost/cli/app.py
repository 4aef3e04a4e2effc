# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/crdhost/cli/app.py
from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, List, Optional

import typer

from crdhost.config.loader import load_config
from crdhost.config.models import SetupConfig
from crdhost.deploy.executor import ProvisioningDriver, Stage, StageContext
from crdhost.deploy.stages import default_stages
from crdhost.errors import SetupError
from crdhost.execution.runner import CommandRunner
from crdhost.logging.log import init_logging, success
from crdhost.monitoring.health import HealthMonitor
from crdhost.monitoring.status import report_status
from crdhost.observers.dispatcher import EventBus
from crdhost.observers.events import new_ctx
from crdhost.observers.jsonfile import JsonFileObserver
from crdhost.observers.logger import LoggerObserver
from crdhost.preflight.backup import create_backup
from crdhost.preflight.validator import HostProbe, PreflightValidator
from crdhost.setup.inputs import Prompter, TyperPrompter, collect_operator_input, user_exists
from crdhost.setup.session import ProvisioningSession
from crdhost.utils.download import download_file
from crdhost.utils.retry import RetryPolicy

log = logging.getLogger("crdhost")

INTERRUPTED_RC = 130


# ------------------------------------------------------------------------------
# CLI setup
# ------------------------------------------------------------------------------

app = typer.Typer(help="Provision this host for Chrome Remote Desktop access")


# ------------------------------------------------------------------------------
# Helpers (extracted logic)
# ------------------------------------------------------------------------------

def run_setup(
    *,
    cfg: SetupConfig,
    dry_run: bool = False,
    debug: bool = False,
    monitor: Optional[bool] = None,
    prompter: Optional[Prompter] = None,
    runner: Optional[CommandRunner] = None,
    probe: Optional[HostProbe] = None,
    stages: Optional[List[Stage]] = None,
    downloader: Callable[..., bool] = download_file,
    exists: Callable[[str], bool] = user_exists,
    sleep: Optional[Callable[[float], None]] = None,
) -> int:
    """
    Preflight -> backup -> operator input -> stages -> status -> optional monitor.

    Returns the process exit code. Every failure passes through the trap at
    the bottom which logs the code and where to look next.
    """
    logger, run_id, log_path = init_logging(log_path=cfg.paths.log_file, verbose=debug)
    bus = EventBus([LoggerObserver(logger), JsonFileObserver.beside(log_path)])
    run_ctx = new_ctx(run_id=run_id)

    prompter = prompter or TyperPrompter()
    runner = runner or CommandRunner(logger=logger, dry_run=dry_run)
    probe = probe or HostProbe(runner)
    sleep_kw = {"sleep": sleep} if sleep is not None else {}

    exit_code = 0
    monitoring = False
    try:
        PreflightValidator(cfg=cfg, probe=probe, prompter=prompter, bus=bus, run_ctx=run_ctx).run()
        create_backup(cfg, bus=bus, run_ctx=run_ctx, dry_run=dry_run)

        log.info("Creating user and setting up environment...")
        operator = collect_operator_input(prompter, exists=exists)
        session = ProvisioningSession.for_user(operator.username, cfg)

        policy = RetryPolicy(
            retries=cfg.retry.retries,
            delay=cfg.retry.delay_seconds,
            confirm=prompter.confirm,
            bus=bus,
            run_ctx=run_ctx,
            **sleep_kw,
        )
        ctx = StageContext(
            cfg=cfg,
            runner=runner,
            policy=policy,
            prompter=prompter,
            operator=operator,
            downloader=downloader,
        )
        ProvisioningDriver(stages or default_stages(), ctx, bus=bus, run_ctx=run_ctx).run(session)

        report_status(runner, session, cfg)
        success(log, "Setup completed successfully!")
        log.info("You can now connect to your desktop using Chrome Remote Desktop")

        if monitor is None:
            monitor = prompter.confirm("Do you want to start the keep-alive monitor?")
        if monitor:
            monitoring = True
            HealthMonitor(
                runner=runner, session=session, cfg=cfg, bus=bus, run_ctx=run_ctx, **sleep_kw
            ).run()
        else:
            log.info("Setup completed. Rerun the setup to start the keep-alive monitor.")
            log.info("To check status: systemctl status %s", session.service_unit)

    except (KeyboardInterrupt, typer.Abort):
        if monitoring:
            log.info("Keep-alive monitor stopped")
        else:
            exit_code = INTERRUPTED_RC
    except SetupError as e:
        exit_code = e.exit_code
        log.error("%s", e)
    except Exception:
        log.exception("Unexpected failure")
        exit_code = 1
    finally:
        if exit_code:
            log.error("Script failed with exit code %d", exit_code)
            log.info("Check log file: %s", log_path)

    return exit_code


# ------------------------------------------------------------------------------
# Commands
# ------------------------------------------------------------------------------

@app.callback(invoke_without_command=True)
def _default(ctx: typer.Context):
    """Without a subcommand, run the interactive setup."""
    if ctx.invoked_subcommand is None:
        raise typer.Exit(run_setup(cfg=load_config()))


@app.command()
def setup(
    config: Optional[Path] = typer.Option(None, "--config", help="YAML overrides for paths, packages, timings"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Log commands without executing them"),
    debug: bool = typer.Option(False, "--debug"),
    monitor: Optional[bool] = typer.Option(
        None, "--monitor/--no-monitor", help="Start (or skip) the keep-alive monitor without asking"
    ),
):
    """Interactive provisioning of a Chrome Remote Desktop host."""
    raise typer.Exit(run_setup(cfg=load_config(config), dry_run=dry_run, debug=debug, monitor=monitor))


@app.command()
def status(
    user: str = typer.Option(..., "--user", help="User provisioned by a previous setup"),
    config: Optional[Path] = typer.Option(None, "--config"),
):
    """Report user, service and storage-mount state for an existing setup."""
    cfg = load_config(config)
    logger, _, _ = init_logging(log_path=cfg.paths.log_file)
    session = ProvisioningSession.for_user(user, cfg)
    result = report_status(CommandRunner(logger=logger), session, cfg)
    raise typer.Exit(0 if all(result.values()) else 1)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
