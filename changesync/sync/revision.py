"""Content hashing of record data."""

import hashlib
import json
from collections.abc import Mapping
from typing import Any


def revision_for(data: Mapping[str, Any]) -> str:
    """
    Compute the revision of a record's data.

    The hash is taken over a canonical JSON encoding (sorted keys, no
    insignificant whitespace), so two records with the same fields and values
    get the same revision regardless of field order.

    Args:
        data: Record data

    Returns:
        Hex SHA-1 digest of the canonical encoding
    """
    canonical = json.dumps(
        data,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    )
    return hashlib.sha1(canonical.encode("utf-8")).hexdigest()
