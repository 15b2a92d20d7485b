"""
Randomness capability.

Every operation that consumes randomness (scalar sampling, nonce generation)
takes a RandomSource argument instead of reaching for a global. Production
code uses SystemRandomSource; tests can pass a DeterministicRandomSource to
get reproducible keys and nonces.
"""

import hashlib
import secrets
import struct
import threading
from typing import Optional


class RandomSource:
    """Interface: a source of random bytes."""

    def token_bytes(self, n: int) -> bytes:
        raise NotImplementedError


class SystemRandomSource(RandomSource):
    """OS CSPRNG via the secrets module. Safe for concurrent use."""

    def token_bytes(self, n: int) -> bytes:
        if n < 0:
            raise ValueError("Byte count must be non-negative")
        return secrets.token_bytes(n)

    def __repr__(self) -> str:
        return "SystemRandomSource()"


class DeterministicRandomSource(RandomSource):
    """
    Reproducible byte stream for tests and test vectors.

    Output block i is SHA-256(seed || i) with i as a 64-bit big-endian
    counter. NOT suitable for real keys.
    """

    def __init__(self, seed: bytes):
        """
        Args:
            seed: Arbitrary seed bytes; equal seeds give equal streams
        """
        if isinstance(seed, str):
            seed = seed.encode("utf-8")
        self._seed = bytes(seed)
        self._counter = 0
        self._buffer = b""
        self._lock = threading.Lock()

    def token_bytes(self, n: int) -> bytes:
        if n < 0:
            raise ValueError("Byte count must be non-negative")
        with self._lock:
            while len(self._buffer) < n:
                block = hashlib.sha256(self._seed + struct.pack(">Q", self._counter)).digest()
                self._counter += 1
                self._buffer += block
            out, self._buffer = self._buffer[:n], self._buffer[n:]
        return out

    def __repr__(self) -> str:
        return f"DeterministicRandomSource(seed={self._seed!r})"


_SYSTEM_RANDOM = SystemRandomSource()


def resolve_random_source(rng: Optional[RandomSource]) -> RandomSource:
    """Return rng, or the shared system source when None."""
    return _SYSTEM_RANDOM if rng is None else rng
