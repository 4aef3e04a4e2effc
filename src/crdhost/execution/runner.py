# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/crdhost/execution/runner.py
from __future__ import annotations

import logging
import os
import shlex
import subprocess
import time
from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional, Sequence, Union

from ..errors import OperationFailure

Cmd = Sequence[Union[str, "os.PathLike[str]"]]

log = logging.getLogger("crdhost")

NOT_FOUND_RC = 127
TIMEOUT_RC = 124


def _fmt(cmd: Cmd, redact: Iterable[str] = ()) -> str:
    text = " ".join(shlex.quote(str(a)) for a in cmd)
    for secret in redact:
        if secret:
            text = text.replace(secret, "****")
    return text


@dataclass
class CommandRunner:
    """
    Runs host commands for every stage.

    - logs the command (secrets redacted), stdout/stderr at DEBUG, exit code
    - dry_run logs but does not execute
    - check=True turns a non-zero exit into OperationFailure
    """

    logger: logging.Logger = log
    dry_run: bool = False
    label: Optional[str] = None
    env: Dict[str, str] = field(default_factory=lambda: {"DEBIAN_FRONTEND": "noninteractive"})

    def run(
        self,
        cmd: Cmd,
        *,
        check: bool = False,
        input_text: str | None = None,
        redact: Iterable[str] = (),
        timeout: float | None = None,
        quiet: bool = False,
    ) -> subprocess.CompletedProcess:
        label = self.label or "cmd"
        redact = tuple(redact)
        cmd_str = _fmt(cmd, redact)
        argv = [str(c) for c in cmd]

        self.logger.debug("[%s] $ %s", label, cmd_str)

        if self.dry_run:
            self.logger.debug("[%s] dry-run: skipped execution", label)
            return subprocess.CompletedProcess(args=argv, returncode=0, stdout="", stderr="")

        start = time.time()
        try:
            result = subprocess.run(
                argv,
                input=input_text,
                capture_output=True,
                text=True,
                timeout=timeout,
                env=dict(os.environ, **self.env),
            )
        except FileNotFoundError:
            result = subprocess.CompletedProcess(
                args=argv, returncode=NOT_FOUND_RC, stdout="", stderr=f"{argv[0]}: command not found"
            )
        except subprocess.TimeoutExpired:
            result = subprocess.CompletedProcess(
                args=argv, returncode=TIMEOUT_RC, stdout="", stderr=f"timed out after {timeout}s"
            )

        duration = time.time() - start

        if not quiet:
            if result.stdout:
                self.logger.debug("[%s][stdout]\n%s", label, result.stdout.rstrip())
            if result.stderr:
                self.logger.debug("[%s][stderr]\n%s", label, result.stderr.rstrip())
        self.logger.debug("[%s][exit %s] (%.2fs)", label, result.returncode, duration)

        if check and result.returncode != 0:
            raise OperationFailure(
                f"Command failed ({result.returncode}): {cmd_str}", returncode=result.returncode
            )

        return result

    def ok(self, cmd: Cmd, **kwargs) -> bool:
        """True when the command exits 0."""
        return self.run(cmd, **kwargs).returncode == 0

    def output(self, cmd: Cmd, **kwargs) -> str:
        return self.run(cmd, **kwargs).stdout or ""
