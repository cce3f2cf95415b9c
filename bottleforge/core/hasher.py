"""Hashing and version-ordering helpers."""

from __future__ import annotations

import hashlib
import re
from pathlib import Path

_CHUNK = 1024 * 1024
_VERSION_TOKEN = re.compile(r"(\d+)")


def sha256_file(path: Path) -> str:
    """Return the SHA-256 hex digest of a file, read in chunks."""
    digest = hashlib.sha256()
    with Path(path).open("rb") as fh:
        for chunk in iter(lambda: fh.read(_CHUNK), b""):
            digest.update(chunk)
    return digest.hexdigest()


def version_sort_key(version: str) -> tuple[tuple[int, int | str], ...]:
    """Natural ordering key equivalent to ``sort -V``.

    Digit runs compare numerically, everything else lexically, so
    ``10.0_10`` sorts after ``10.0_9`` and ``1.0.10`` after ``1.0.9``.
    """
    key: list[tuple[int, int | str]] = []
    for token in _VERSION_TOKEN.split(version):
        if not token:
            continue
        if token.isdigit():
            key.append((1, int(token)))
        else:
            key.append((0, token))
    return tuple(key)
