"""Utility helpers for working with report files."""

from __future__ import annotations

import hashlib
from pathlib import Path


def report_id_for(path: Path) -> str:
    """Stable report identifier derived from the file's SHA256 digest."""
    sha = hashlib.sha256()
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(1 << 20), b""):
            sha.update(chunk)
    return sha.hexdigest()[:32]


def is_pdf(path: Path) -> bool:
    return path.is_file() and path.suffix.lower() == ".pdf"
