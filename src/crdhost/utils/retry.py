# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/crdhost/utils/retry.py

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Optional

from ..errors import OperationFailure, OperatorDeclined
from ..observers.dispatcher import EventBus
from ..observers.events import (
    new_ctx,
    OperationAttempt,
    OperationExhausted,
    OperatorDecision,
)

log = logging.getLogger("crdhost")


class Criticality(str, Enum):
    """What happens once an operation has used up its retries."""

    ABORT = "abort"        # fatal, process terminates
    CONFIRM = "confirm"    # operator decides: continue or abort
    WARN = "warn"          # log and carry on


class StageResult(str, Enum):
    SUCCESS = "success"
    RECOVERABLE = "recoverable"
    FATAL = "fatal"


Operation = Callable[[], Any]
Confirm = Callable[[str], bool]


@dataclass
class RetryPolicy:
    """
    Uniform failure handling for flaky external operations.

    retries: re-attempts after the first call (total calls <= retries + 1)
    delay: seconds between attempts
    confirm: yes/no prompt used by CONFIRM operations
    sleep: injectable for tests

    An operation succeeds when it returns a truthy value. Raising
    OperationFailure counts as a failed attempt; anything else propagates.
    """

    retries: int = 2
    delay: float = 5.0
    confirm: Optional[Confirm] = None
    sleep: Callable[[float], None] = time.sleep
    bus: EventBus = field(default_factory=EventBus)
    run_ctx: Dict[str, Any] = field(default_factory=new_ctx)

    def run(
        self,
        op: Operation,
        *,
        label: str,
        criticality: Criticality = Criticality.ABORT,
        retries: Optional[int] = None,
    ) -> StageResult:
        bound = self.retries if retries is None else retries
        attempts = 0
        last_error: Optional[OperationFailure] = None

        while True:
            attempts += 1
            self.bus.emit(OperationAttempt(label=label, attempt=attempts, **self.run_ctx))
            try:
                ok = bool(op())
            except OperationFailure as exc:
                ok = False
                last_error = exc
                log.debug("%s attempt %d raised: %s", label, attempts, exc)

            if ok:
                return StageResult.SUCCESS

            if attempts <= bound:
                log.warning("%s failed, retrying... (%d/%d)", label, attempts, bound + 1)
                self.sleep(self.delay)
                continue
            break

        self.bus.emit(
            OperationExhausted(
                label=label, attempts=attempts, criticality=criticality.value, **self.run_ctx
            )
        )
        return self._escalate(label, attempts, criticality, last_error)

    def _escalate(
        self,
        label: str,
        attempts: int,
        criticality: Criticality,
        last_error: Optional[OperationFailure],
    ) -> StageResult:
        if criticality is Criticality.WARN:
            log.warning("%s failed, continuing...", label)
            return StageResult.RECOVERABLE

        suffix = "" if attempts == 1 else f" after {attempts} attempts"
        if criticality is Criticality.CONFIRM and self.confirm is not None:
            log.error("%s failed%s", label, suffix)
            accepted = bool(self.confirm("Continue anyway?"))
            self.bus.emit(OperatorDecision(label=label, accepted=accepted, **self.run_ctx))
            if accepted:
                log.warning("Continuing without: %s", label)
                return StageResult.RECOVERABLE
            raise OperatorDeclined(f"{label} failed and the operator chose to stop")

        rc = last_error.returncode if last_error is not None else 1
        raise OperationFailure(f"{label} failed{suffix}", returncode=rc) from last_error
