"""SHA-256 content addressing for raw input images."""

from __future__ import annotations

import hashlib
import logging
from typing import Optional

from errors import HashUnavailable

logger = logging.getLogger(__name__)

HASH_ALGORITHM = "sha256"


async def sha256_hex(data: Optional[bytes]) -> Optional[str]:
    """Return the lowercase hex SHA-256 of data, or None for empty input.

    Raises HashUnavailable if the interpreter's crypto backend refuses the
    algorithm (restricted OpenSSL builds, crypto policies).
    """
    if not data:
        return None
    try:
        digest = hashlib.new(HASH_ALGORITHM)
    except ValueError as exc:
        raise HashUnavailable(f"{HASH_ALGORITHM} is not available: {exc}") from exc
    digest.update(data)
    return digest.hexdigest()
