# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/crdhost/observers/interface.py
from __future__ import annotations
from typing import Protocol, runtime_checkable
from .events import BaseEvent


@runtime_checkable
class Observer(Protocol):
    """Anything the EventBus can fan setup/monitor events out to."""

    def notify(self, event: BaseEvent) -> None: ...
