"""
Random number generation utilities.

Every stage draws from its own NumPy ``Generator`` derived from the run seed
and a stream label, so adding draws to one stage never shifts another.
No module-level generator exists; seeds are always passed explicitly.
"""

import hashlib
import zlib

import numpy as np

MAX_SEED = 2**64 - 1


def seed_from_string(text: str) -> int:
    """
    Derive a 64-bit seed from a text seed.

    Uses the first 8 bytes of the SHA-256 digest, big-endian.

    Args:
        text: Seed string, e.g. a world name

    Returns:
        Integer seed in [0, 2**64)
    """
    digest = hashlib.sha256(text.encode("utf-8")).digest()
    return int.from_bytes(digest[:8], "big")


def make_rng(seed: int, stream: str) -> np.random.Generator:
    """
    Create a generator for one named stream of a run.

    Args:
        seed: 64-bit run seed
        stream: Stream label such as "sites" or "peaks"

    Returns:
        Independent, reproducible NumPy generator
    """
    if not 0 <= seed <= MAX_SEED:
        raise ValueError(f"seed must be in [0, 2**64), got {seed}")
    label = zlib.crc32(stream.encode("utf-8"))
    sequence = np.random.SeedSequence([seed & 0xFFFFFFFF, seed >> 32, label])
    return np.random.Generator(np.random.PCG64(sequence))
