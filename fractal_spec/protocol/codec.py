"""Little-endian byte codec for proofs and keys.

Counts are <I, field elements and nonces are <Q, digests are raw 32 bytes.
Every read failure raises ProtocolShapeMismatch.
"""

import struct
from typing import List

from fractal_spec.errors import ProtocolShapeMismatch
from fractal_spec.primitives.field import is_canonical
from fractal_spec.primitives.merkle_tree import HASH_SIZE


class ByteWriter:
    """Accumulates encoded values."""

    def __init__(self) -> None:
        self._parts: List[bytes] = []

    def write_u32(self, value: int) -> None:
        self._parts.append(struct.pack("<I", value))

    def write_u64(self, value: int) -> None:
        self._parts.append(struct.pack("<Q", value))

    def write_field(self, value: int) -> None:
        self._parts.append(struct.pack("<Q", int(value)))

    def write_fields(self, values: List[int]) -> None:
        """Length-prefixed list of field elements."""
        self.write_u32(len(values))
        self._parts.append(struct.pack(f"<{len(values)}Q", *(int(v) for v in values)))

    def write_digest(self, digest: bytes) -> None:
        if len(digest) != HASH_SIZE:
            raise ValueError(f"Digest must be {HASH_SIZE} bytes, got {len(digest)}")
        self._parts.append(bytes(digest))

    def write_bytes(self, data: bytes) -> None:
        self._parts.append(bytes(data))

    def to_bytes(self) -> bytes:
        return b"".join(self._parts)


class ByteReader:
    """Cursor over encoded bytes."""

    def __init__(self, data: bytes) -> None:
        self.data = bytes(data)
        self.pos = 0

    def _take(self, n: int) -> bytes:
        if self.pos + n > len(self.data):
            raise ProtocolShapeMismatch(f"Truncated input: need {n} bytes at offset {self.pos}")
        chunk = self.data[self.pos:self.pos + n]
        self.pos += n
        return chunk

    def remaining(self) -> int:
        return len(self.data) - self.pos

    def read_u32(self) -> int:
        return struct.unpack("<I", self._take(4))[0]

    def read_u64(self) -> int:
        return struct.unpack("<Q", self._take(8))[0]

    def read_count(self, min_item_size: int) -> int:
        """Read a list length, rejecting lengths the remaining bytes cannot hold."""
        count = self.read_u32()
        if count * min_item_size > self.remaining():
            raise ProtocolShapeMismatch(f"Count {count} exceeds remaining input at offset {self.pos}")
        return count

    def read_field(self) -> int:
        value = self.read_u64()
        if not is_canonical(value):
            raise ProtocolShapeMismatch(f"Non-canonical field element at offset {self.pos - 8}")
        return value

    def read_fields(self) -> List[int]:
        count = self.read_count(8)
        return [self.read_field() for _ in range(count)]

    def read_digest(self) -> bytes:
        return self._take(HASH_SIZE)

    def read_bytes(self, n: int) -> bytes:
        return self._take(n)

    def finish(self) -> None:
        if self.pos != len(self.data):
            raise ProtocolShapeMismatch(f"{len(self.data) - self.pos} trailing bytes")
