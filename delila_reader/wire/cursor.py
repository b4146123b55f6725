"""
Bounds-checked forward reader over an in-memory byte buffer.

Two byte orders live side by side in a DELILA file:
- File framing (block lengths, footer) is little-endian.
- MessagePack payloads are big-endian.

Each width/order pair has its own named primitive backed by its own
precompiled struct so the two are never mixed up at a call site.
"""

import struct
from typing import Union

from ..core.errors import UnexpectedEndOfData


# Big-endian (MessagePack)
_U16_BE = struct.Struct('>H')
_U32_BE = struct.Struct('>I')
_U64_BE = struct.Struct('>Q')
_I8 = struct.Struct('>b')
_I16_BE = struct.Struct('>h')
_I32_BE = struct.Struct('>i')
_I64_BE = struct.Struct('>q')
_F32_BE = struct.Struct('>f')
_F64_BE = struct.Struct('>d')

# Little-endian (file framing)
_U32_LE = struct.Struct('<I')
_U64_LE = struct.Struct('<Q')
_F64_LE = struct.Struct('<d')


class ByteCursor:
    """
    Forward-only cursor over an immutable buffer.

    Every read checks the remaining length first and raises
    UnexpectedEndOfData without moving the position when the request
    cannot be satisfied in full.

    Usage:
        cursor = ByteCursor(b'\\x01\\x00\\x00\\x00')
        cursor.read_u32_le()  # 1
        cursor.at_end         # True
    """

    __slots__ = ('_buf', '_pos')

    def __init__(self, data: Union[bytes, bytearray, memoryview], offset: int = 0):
        self._buf = memoryview(data).cast('B') if not isinstance(data, bytes) else data
        if offset < 0 or offset > len(self._buf):
            raise ValueError(f"Offset {offset} outside buffer of {len(self._buf)} bytes")
        self._pos = offset

    @property
    def position(self) -> int:
        return self._pos

    @property
    def remaining(self) -> int:
        return len(self._buf) - self._pos

    @property
    def at_end(self) -> bool:
        return self._pos >= len(self._buf)

    def __len__(self) -> int:
        return len(self._buf)

    def _require(self, n: int) -> int:
        """Check that n bytes are available and return the current position."""
        if n < 0:
            raise ValueError(f"Negative read size: {n}")
        pos = self._pos
        if pos + n > len(self._buf):
            raise UnexpectedEndOfData(
                f"need {n} bytes, {len(self._buf) - pos} remaining",
                offset=pos,
            )
        return pos

    def _unpack(self, fmt: struct.Struct):
        pos = self._require(fmt.size)
        (value,) = fmt.unpack_from(self._buf, pos)
        self._pos = pos + fmt.size
        return value

    # === Raw bytes ===

    def ensure(self, n: int) -> None:
        """Raise UnexpectedEndOfData unless n more bytes are available."""
        self._require(n)

    def peek_bytes(self, n: int) -> bytes:
        """Return the next n bytes without consuming them."""
        pos = self._require(n)
        return bytes(self._buf[pos:pos + n])

    def peek_u8(self) -> int:
        """Return the next byte without consuming it."""
        pos = self._require(1)
        return self._buf[pos]

    def read_u8(self) -> int:
        pos = self._require(1)
        self._pos = pos + 1
        return self._buf[pos]

    def read_bytes(self, n: int) -> bytes:
        pos = self._require(n)
        self._pos = pos + n
        return bytes(self._buf[pos:pos + n])

    def skip(self, n: int) -> None:
        pos = self._require(n)
        self._pos = pos + n

    # === Big-endian (MessagePack payloads) ===

    def read_u16_be(self) -> int:
        return self._unpack(_U16_BE)

    def read_u32_be(self) -> int:
        return self._unpack(_U32_BE)

    def read_u64_be(self) -> int:
        return self._unpack(_U64_BE)

    def read_i8(self) -> int:
        return self._unpack(_I8)

    def read_i16_be(self) -> int:
        return self._unpack(_I16_BE)

    def read_i32_be(self) -> int:
        return self._unpack(_I32_BE)

    def read_i64_be(self) -> int:
        return self._unpack(_I64_BE)

    def read_f32_be(self) -> float:
        return self._unpack(_F32_BE)

    def read_f64_be(self) -> float:
        return self._unpack(_F64_BE)

    # === Little-endian (file framing, footer) ===

    def read_u32_le(self) -> int:
        return self._unpack(_U32_LE)

    def read_u64_le(self) -> int:
        return self._unpack(_U64_LE)

    def read_f64_le(self) -> float:
        return self._unpack(_F64_LE)

    def __repr__(self) -> str:
        return f"ByteCursor(pos={self._pos}, size={len(self._buf)})"
