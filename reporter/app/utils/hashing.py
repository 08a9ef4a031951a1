"""
Artifact integrity hashing.

Generated documents are persisted with a digest so that the viewer can
detect a missing or altered artifact before handing it out.

This module hashes bytes, and bytes only.
"""

import hashlib
from typing import Union


def compute_artifact_digest(content: Union[bytes, bytearray]) -> str:
    """
    Compute a human-readable SHA-256 digest of an artifact.

    Returns:
        A digest string with an explicit algorithm prefix.
        Example: ``SHA-256:3b7c0e4c...``
    """
    if not isinstance(content, (bytes, bytearray)):
        raise TypeError(
            "compute_artifact_digest expects bytes, "
            f"got {type(content).__name__}"
        )

    digest = hashlib.sha256(content).hexdigest()
    return f"SHA-256:{digest}"
