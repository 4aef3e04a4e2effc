# src/crdhost/observers/events.py

from __future__ import annotations
from dataclasses import dataclass, asdict
from typing import List, Dict, Any, Optional
from datetime import datetime, timezone
import socket
import uuid


# ---------------------------------------------------------------------
# Base context and helper
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class BaseEvent:
    ts: str           # ISO timestamp
    run_id: str       # correlates all events in a single setup invocation
    host: str         # hostname being provisioned

    def dict(self) -> Dict[str, Any]:
        return asdict(self)


def new_ctx(run_id: Optional[str] = None, host: Optional[str] = None) -> Dict[str, Any]:
    return {
        "ts": datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z"),
        "run_id": run_id or str(uuid.uuid4()),
        "host": host or socket.gethostname(),
    }


# ---------------------------------------------------------------------
# Preflight
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class PreflightChecked(BaseEvent):
    check: str
    ok: bool
    detail: str = ""

@dataclass(frozen=True)
class PreflightPassed(BaseEvent):
    overridden: List[str]

@dataclass(frozen=True)
class PreflightFailed(BaseEvent):
    error: str

@dataclass(frozen=True)
class BackupCreated(BaseEvent):
    path: str
    files: List[str]


# ---------------------------------------------------------------------
# Retry / confirm policy
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class OperationAttempt(BaseEvent):
    label: str
    attempt: int

@dataclass(frozen=True)
class OperationExhausted(BaseEvent):
    label: str
    attempts: int
    criticality: str

@dataclass(frozen=True)
class OperatorDecision(BaseEvent):
    label: str
    accepted: bool


# ---------------------------------------------------------------------
# Stage lifecycle
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class StageStarted(BaseEvent):
    name: str

@dataclass(frozen=True)
class StageSucceeded(BaseEvent):
    name: str
    duration_ms: int
    warnings: int = 0

@dataclass(frozen=True)
class StageRecovered(BaseEvent):
    name: str
    warnings: List[str]

@dataclass(frozen=True)
class StageFailed(BaseEvent):
    name: str
    error: str

@dataclass(frozen=True)
class SetupSummary(BaseEvent):
    ok: int
    recovered: int
    failed: int


# ---------------------------------------------------------------------
# Health-check loop
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class Heartbeat(BaseEvent):
    cycle: int

@dataclass(frozen=True)
class HealthChecked(BaseEvent):
    check: str
    result: str       # "HEALTHY" | "REPAIRED" | "REPAIR_FAILED"
    cycle: int

@dataclass(frozen=True)
class AlertRaised(BaseEvent):
    check: str
    cycle: int
    alerts: int
