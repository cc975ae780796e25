"""Deterministic randomness for winner selection.

Seeds come only from values every replica already agrees on: the block height,
the identity requesting the draw, a fixed domain-separation constant and any
extra entropy bytes carried by the request. The seed is expanded with
sha256 in counter mode so a draw can consume as many words as it needs.
"""
from __future__ import annotations

import hashlib

DEFAULT_DOMAIN = "raffle.winner-selection.v1"


def _length_prefixed(data: bytes) -> bytes:
    return len(data).to_bytes(4, "big") + data


class DeterministicStream:
    """Reproducible pseudo-random word stream.

    Block ``k`` is ``sha256(seed || k)`` with ``k`` encoded as a big-endian u64.
    """

    def __init__(self, seed: bytes) -> None:
        if not seed:
            raise ValueError("seed must not be empty")
        self._seed = bytes(seed)
        self._counter = 0
        self._buffer = b""

    def _refill(self) -> None:
        block = hashlib.sha256(self._seed + self._counter.to_bytes(8, "big")).digest()
        self._counter += 1
        self._buffer += block

    def next_bytes(self, count: int) -> bytes:
        while len(self._buffer) < count:
            self._refill()
        out, self._buffer = self._buffer[:count], self._buffer[count:]
        return out

    def next_u32(self) -> int:
        return int.from_bytes(self.next_bytes(4), "big")


class EntropySource:
    def __init__(self, domain: str = DEFAULT_DOMAIN) -> None:
        self._domain = domain.encode("utf-8")

    def derive_seed(self, height: int, identity: str, extra: bytes = b"") -> bytes:
        if height < 0 or height >= 2**64:
            raise ValueError(f"block height out of range: {height}")
        material = (
            _length_prefixed(self._domain)
            + height.to_bytes(8, "big")
            + _length_prefixed(identity.encode("utf-8"))
            + bytes(extra)
        )
        return hashlib.sha256(material).digest()

    def stream(self, height: int, identity: str, extra: bytes = b"") -> DeterministicStream:
        return DeterministicStream(self.derive_seed(height, identity, extra))
