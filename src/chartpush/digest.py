"""
SHA-256 content addressing helpers.

Digests are lowercase hex without the "sha256:" prefix unless stated otherwise.
"""
from __future__ import annotations

import hashlib
from pathlib import Path
from typing import Union

__all__ = ["sha256_file", "sha256_bytes", "format_digest"]

_BUFFER_SIZE = 8192


def sha256_file(path: Union[str, Path]) -> str:
    """Hex SHA-256 of a file's contents, read in fixed-size chunks."""
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(_BUFFER_SIZE), b""):
            h.update(chunk)
    return h.hexdigest()


def sha256_bytes(data: Union[bytes, str]) -> str:
    """Hex SHA-256 of bytes, or of a string encoded as UTF-8."""
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(data).hexdigest()


def format_digest(hex_digest: str) -> str:
    """Prefix a hex digest with the algorithm: "sha256:<hex>"."""
    return f"sha256:{hex_digest}"
