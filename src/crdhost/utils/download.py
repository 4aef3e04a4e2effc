# src/crdhost/utils/download.py
from __future__ import annotations

import logging
from pathlib import Path

import requests

log = logging.getLogger("crdhost")

CHUNK_SIZE = 1 << 16


def download_file(url: str, dest: Path, *, timeout: float = 120.0) -> bool:
    """
    Stream url into dest. Returns False (never raises) on HTTP/network errors
    so the caller's retry policy decides what happens next.
    """
    log.debug("GET %s -> %s", url, dest)
    try:
        with requests.get(url, stream=True, timeout=timeout) as r:
            r.raise_for_status()
            dest.parent.mkdir(parents=True, exist_ok=True)
            with dest.open("wb") as f:
                for chunk in r.iter_content(chunk_size=CHUNK_SIZE):
                    if chunk:
                        f.write(chunk)
    except requests.RequestException as e:
        log.debug("download of %s failed: %s", url, e)
        dest.unlink(missing_ok=True)
        return False
    return True
