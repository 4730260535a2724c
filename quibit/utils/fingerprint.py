"""
Content fingerprints (DNA hashes) for exact-duplicate detection.
"""

import hashlib

from quibit.models.snapshot import ProjectDNA, Snapshot


def _sha256(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def hash_snapshot(snapshot: Snapshot) -> str:
    """
    Hash the canonical overview, MVP scope, tech stack, complexity and duration.

    Two ideas differing only in case, spacing or list order hash identically.
    """
    return _sha256(snapshot.fingerprint_string())


def hash_dna(dna: ProjectDNA) -> str:
    return _sha256(dna.fingerprint_string())
