# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from ..config.models import SetupConfig
from ..errors import SetupError
from ..execution.runner import CommandRunner
from ..logging.log import success
from ..setup.inputs import OperatorInput, Prompter
from ..setup.render import TemplateRenderer
from ..setup.session import ProvisioningSession
from ..utils.download import download_file
from ..utils.retry import Criticality, Operation, RetryPolicy, StageResult

# Observer bits
from ..observers.dispatcher import EventBus
from ..observers.events import (
    new_ctx,
    StageStarted,
    StageSucceeded,
    StageRecovered,
    StageFailed,
    SetupSummary,
)

log = logging.getLogger("crdhost")


@dataclass
class StageContext:
    """Collaborators shared by every stage. Per-user data lives in ProvisioningSession."""

    cfg: SetupConfig
    runner: CommandRunner
    policy: RetryPolicy
    prompter: Prompter
    operator: OperatorInput
    renderer: TemplateRenderer = field(default_factory=TemplateRenderer)
    downloader: Callable[..., bool] = download_file
    warnings: List[str] = field(default_factory=list)

    @property
    def dry_run(self) -> bool:
        """Follows the runner: a dry-run runner means no host file is touched either."""
        return bool(getattr(self.runner, "dry_run", False))

    def skipped(self, what: str, *args: Any) -> bool:
        """In dry-run, log what would have happened and return True."""
        if self.dry_run:
            log.info("dry-run: would " + what, *args)
        return self.dry_run

    def attempt(
        self,
        op: Operation,
        *,
        label: str,
        criticality: Criticality = Criticality.ABORT,
        retries: Optional[int] = None,
    ) -> StageResult:
        """Run op under the retry policy; remember anything that degraded to a warning."""
        result = self.policy.run(op, label=label, criticality=criticality, retries=retries)
        if result is StageResult.RECOVERABLE:
            self.warnings.append(label)
        return result

    def cmd(
        self,
        argv: List[str],
        *,
        label: str,
        criticality: Criticality = Criticality.ABORT,
        retries: Optional[int] = 0,
        **run_kwargs: Any,
    ) -> StageResult:
        """Shorthand: a single command as a policy-wrapped operation (exit code is kept)."""
        return self.attempt(
            lambda: self.runner.run(argv, check=True, **run_kwargs).returncode == 0,
            label=label,
            criticality=criticality,
            retries=retries,
        )

    def best_effort(self, argv: List[str]) -> None:
        """Run and ignore the outcome (used where the host may legitimately lack the target)."""
        rc = self.runner.run(argv).returncode
        if rc != 0:
            log.debug("ignored exit %s from %s", rc, " ".join(argv))


StageFn = Callable[[StageContext, ProvisioningSession], StageResult]


@dataclass(frozen=True)
class Stage:
    name: str
    fn: StageFn
    description: str


@dataclass
class StageOutcome:
    name: str
    status: StageResult
    warnings: List[str] = field(default_factory=list)
    error: Optional[str] = None
    duration_ms: int = 0


@dataclass
class SetupReport:
    outcomes: List[StageOutcome] = field(default_factory=list)

    def add(self, outcome: StageOutcome) -> None:
        self.outcomes.append(outcome)

    def count(self, status: StageResult) -> int:
        return sum(1 for o in self.outcomes if o.status is status)

    @property
    def ok(self) -> bool:
        return self.count(StageResult.FATAL) == 0

    def summary(self) -> str:
        return (
            f"OK={self.count(StageResult.SUCCESS)} "
            f"RECOVERED={self.count(StageResult.RECOVERABLE)} "
            f"FAILED={self.count(StageResult.FATAL)}"
        )


class ProvisioningDriver:
    """
    Runs stages strictly in order. The first fatal stage stops the run:
    its error propagates and no later stage is entered. Nothing is rolled back.
    """

    def __init__(
        self,
        stages: List[Stage],
        ctx: StageContext,
        *,
        bus: Optional[EventBus] = None,
        run_ctx: Optional[Dict[str, Any]] = None,
    ):
        self.stages = stages
        self.ctx = ctx
        self.bus = bus or EventBus()
        self.run_ctx = run_ctx or new_ctx()
        self.report = SetupReport()

    def _emit_summary(self) -> None:
        self.bus.emit(
            SetupSummary(
                ok=self.report.count(StageResult.SUCCESS),
                recovered=self.report.count(StageResult.RECOVERABLE),
                failed=self.report.count(StageResult.FATAL),
                **self.run_ctx,
            )
        )

    def run(self, session: ProvisioningSession) -> SetupReport:
        for stage in self.stages:
            self.bus.emit(StageStarted(name=stage.name, **self.run_ctx))
            log.info("%s...", stage.description)
            self.ctx.warnings = []
            t0 = time.time()

            try:
                result = stage.fn(self.ctx, session)
            except SetupError as e:
                self.report.add(
                    StageOutcome(
                        name=stage.name,
                        status=StageResult.FATAL,
                        warnings=list(self.ctx.warnings),
                        error=str(e),
                    )
                )
                self.bus.emit(StageFailed(name=stage.name, error=str(e), **self.run_ctx))
                self._emit_summary()
                raise

            duration_ms = int((time.time() - t0) * 1000)
            warnings = list(self.ctx.warnings)
            self.report.add(
                StageOutcome(name=stage.name, status=result, warnings=warnings, duration_ms=duration_ms)
            )
            if result is StageResult.RECOVERABLE:
                self.bus.emit(StageRecovered(name=stage.name, warnings=warnings, **self.run_ctx))
            else:
                self.bus.emit(
                    StageSucceeded(
                        name=stage.name, duration_ms=duration_ms, warnings=len(warnings), **self.run_ctx
                    )
                )

        self._emit_summary()
        success(log, "Provisioning stages finished (%s)", self.report.summary())
        return self.report
