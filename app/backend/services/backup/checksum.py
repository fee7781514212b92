"""Content digests for uploads to object-lock enabled buckets."""

from __future__ import annotations

import base64
import hashlib
from pathlib import Path

DEFAULT_CHUNK_SIZE = 1024 * 1024


def compute_content_md5(path: Path, *, chunk_size: int = DEFAULT_CHUNK_SIZE) -> str:
    """Return the base64-encoded MD5 digest of a file.

    This is the value S3 expects in the `Content-MD5` header. The file is
    hashed in chunks so large archives are never loaded into memory.

    Args:
        path: File to hash.
        chunk_size: Read size in bytes.

    Returns:
        str: Base64 of the raw 16-byte digest.
    """

    digest = hashlib.md5()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(chunk_size), b""):
            digest.update(chunk)
    return base64.b64encode(digest.digest()).decode("ascii")
