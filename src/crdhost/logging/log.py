# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

#src/crdhost/logging/log.py

from __future__ import annotations

import logging
import uuid
from pathlib import Path

import typer

SUCCESS = 25
logging.addLevelName(SUCCESS, "SUCCESS")

_GLYPHS = {
    SUCCESS: ("✓", typer.colors.GREEN),
    logging.ERROR: ("✗", typer.colors.RED),
    logging.CRITICAL: ("✗", typer.colors.RED),
    logging.WARNING: ("⚠", typer.colors.YELLOW),
    logging.INFO: ("ℹ", typer.colors.BLUE),
}


class GlyphFormatter(logging.Formatter):
    """Console formatter: severity glyph + colour, message only."""

    def __init__(self, color: bool = True):
        super().__init__("%(message)s")
        self.color = color

    def format(self, record: logging.LogRecord) -> str:
        msg = super().format(record)
        glyph, fg = _GLYPHS.get(record.levelno, ("", None))
        line = f"{glyph} {msg}" if glyph else msg
        if self.color and fg:
            return typer.style(line, fg=fg)
        return line


def success(logger: logging.Logger, msg: str, *args) -> None:
    logger.log(SUCCESS, msg, *args)


def _open_file_handler(log_path: Path) -> tuple[logging.FileHandler, Path]:
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        return logging.FileHandler(log_path), log_path
    except OSError:
        fallback = Path.cwd() / log_path.name
        return logging.FileHandler(fallback), fallback


def init_logging(
    *,
    log_path: Path,
    name: str = "crdhost",
    verbose: bool = False,
    color: bool = True,
) -> tuple[logging.Logger, str, Path]:
    """
    Initializes:
      - append-only log file with timestamped, level-tagged lines
      - console output with severity glyphs
      - returns run_id so observers can reuse it

    If log_path is not writable the file lands in the working directory
    and the returned path says so.
    """
    run_id = str(uuid.uuid4())

    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)
    for h in list(logger.handlers):
        h.close()
    logger.handlers.clear()
    logger.propagate = False

    fh, actual_path = _open_file_handler(Path(log_path))
    fh.setLevel(logging.DEBUG)
    fh.setFormatter(
        logging.Formatter(
            "%(asctime)s [%(levelname)s] %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    actual_path.chmod(0o644)

    # Console = INFO by default, DEBUG when --debug is passed
    ch = logging.StreamHandler()
    ch.setLevel(logging.DEBUG if verbose else logging.INFO)
    ch.setFormatter(GlyphFormatter(color=color))

    logger.addHandler(fh)
    logger.addHandler(ch)

    logger.info("Starting Chrome Remote Desktop host setup")
    logger.info("Log file: %s", actual_path)
    logger.debug("run_id=%s", run_id)

    return logger, run_id, actual_path
