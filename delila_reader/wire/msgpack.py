"""
Schema-directed MessagePack decoder.

Decodes only the MessagePack subset the DELILA recorder emits, straight
into Python ints/floats/bytes. There is no generic value tree: the caller
knows which type comes next and asks for it.

Tag reference (all multi-byte values big-endian):
    0x00-0x7f  positive fixint        0xe0-0xff  negative fixint
    0x80-0x8f  fixmap                 0x90-0x9f  fixarray
    0xa0-0xbf  fixstr                 0xc0       nil
    0xc2/0xc3  false/true             0xc4-0xc6  bin8/16/32
    0xca/0xcb  float32/float64        0xcc-0xcf  uint8/16/32/64
    0xd0-0xd3  int8/16/32/64          0xd9-0xdb  str8/16/32
    0xdc/0xdd  array16/32             0xde/0xdf  map16/32
"""

from typing import List, Optional, Tuple

from .cursor import ByteCursor
from ..core.errors import SchemaViolation


TAG_NIL = 0xc0
TAG_FALSE = 0xc2
TAG_TRUE = 0xc3
TAG_BIN8 = 0xc4
TAG_BIN16 = 0xc5
TAG_BIN32 = 0xc6
TAG_EXT8 = 0xc7
TAG_EXT16 = 0xc8
TAG_EXT32 = 0xc9
TAG_FLOAT32 = 0xca
TAG_FLOAT64 = 0xcb
TAG_UINT8 = 0xcc
TAG_UINT16 = 0xcd
TAG_UINT32 = 0xce
TAG_UINT64 = 0xcf
TAG_INT8 = 0xd0
TAG_INT16 = 0xd1
TAG_INT32 = 0xd2
TAG_INT64 = 0xd3
TAG_STR8 = 0xd9
TAG_STR16 = 0xda
TAG_STR32 = 0xdb
TAG_ARRAY16 = 0xdc
TAG_ARRAY32 = 0xdd
TAG_MAP16 = 0xde
TAG_MAP32 = 0xdf

BIN_TAGS = (TAG_BIN8, TAG_BIN16, TAG_BIN32)

# fixext1..fixext16 payload sizes (excluding the type byte)
_FIXEXT_SIZES = {0xd4: 1, 0xd5: 2, 0xd6: 4, 0xd7: 8, 0xd8: 16}


def _to_i16(value: int) -> int:
    """Wrap an integer into the i16 range the way a C cast does."""
    return ((value + 0x8000) & 0xFFFF) - 0x8000


class MsgPackDecoder:
    """
    Typed MessagePack reads over a ByteCursor.

    Length headers are validated before the tag is consumed, so a failed
    header read leaves the cursor on the offending tag.
    """

    def __init__(self, cursor: ByteCursor):
        self.cursor = cursor

    @property
    def position(self) -> int:
        return self.cursor.position

    def _violation(self, tag: int, expected: str) -> SchemaViolation:
        return SchemaViolation(
            f"unexpected tag 0x{tag:02x}, expected {expected}",
            offset=self.cursor.position,
        )

    def _read_length(self, width: int) -> int:
        """Consume a tag followed by a big-endian length of `width` bytes."""
        cursor = self.cursor
        cursor.ensure(1 + width)
        cursor.skip(1)
        if width == 1:
            return cursor.read_u8()
        if width == 2:
            return cursor.read_u16_be()
        return cursor.read_u32_be()

    def peek_tag(self) -> int:
        return self.cursor.peek_u8()

    # === Containers ===

    def read_array_header(self) -> int:
        """Read a fixarray/array16/array32 header and return the element count."""
        tag = self.cursor.peek_u8()
        if 0x90 <= tag <= 0x9f:
            self.cursor.skip(1)
            return tag & 0x0f
        if tag == TAG_ARRAY16:
            return self._read_length(2)
        if tag == TAG_ARRAY32:
            return self._read_length(4)
        raise self._violation(tag, "array")

    def read_map_header(self) -> int:
        """Read a fixmap/map16/map32 header and return the pair count."""
        tag = self.cursor.peek_u8()
        if 0x80 <= tag <= 0x8f:
            self.cursor.skip(1)
            return tag & 0x0f
        if tag == TAG_MAP16:
            return self._read_length(2)
        if tag == TAG_MAP32:
            return self._read_length(4)
        raise self._violation(tag, "map")

    # === Scalars ===

    def read_unsigned_int(self) -> int:
        """Positive fixint or uint8/16/32/64."""
        cursor = self.cursor
        tag = cursor.peek_u8()
        if tag <= 0x7f:
            cursor.skip(1)
            return tag
        if tag == TAG_UINT8:
            cursor.ensure(2)
            cursor.skip(1)
            return cursor.read_u8()
        if tag == TAG_UINT16:
            cursor.ensure(3)
            cursor.skip(1)
            return cursor.read_u16_be()
        if tag == TAG_UINT32:
            cursor.ensure(5)
            cursor.skip(1)
            return cursor.read_u32_be()
        if tag == TAG_UINT64:
            cursor.ensure(9)
            cursor.skip(1)
            return cursor.read_u64_be()
        raise self._violation(tag, "unsigned int")

    def read_signed_int(self) -> int:
        """
        Any fixint, int8/16/32/64, or an unsigned encoding.

        Encoders pick the smallest representation, so a non-negative sample
        in a signed field may arrive as uint8/16; those fall through to the
        unsigned path.
        """
        cursor = self.cursor
        tag = cursor.peek_u8()
        if tag <= 0x7f:
            cursor.skip(1)
            return tag
        if tag >= 0xe0:
            cursor.skip(1)
            return tag - 0x100
        if tag == TAG_INT8:
            cursor.ensure(2)
            cursor.skip(1)
            return cursor.read_i8()
        if tag == TAG_INT16:
            cursor.ensure(3)
            cursor.skip(1)
            return cursor.read_i16_be()
        if tag == TAG_INT32:
            cursor.ensure(5)
            cursor.skip(1)
            return cursor.read_i32_be()
        if tag == TAG_INT64:
            cursor.ensure(9)
            cursor.skip(1)
            return cursor.read_i64_be()
        if TAG_UINT8 <= tag <= TAG_UINT64:
            return self.read_unsigned_int()
        raise self._violation(tag, "signed int")

    def read_float64(self) -> float:
        """float64 only; the bit pattern is big-endian."""
        tag = self.cursor.peek_u8()
        if tag != TAG_FLOAT64:
            raise self._violation(tag, "float64")
        self.cursor.ensure(9)
        self.cursor.skip(1)
        return self.cursor.read_f64_be()

    def read_float(self) -> float:
        """float32 or float64 (header metadata only)."""
        tag = self.cursor.peek_u8()
        if tag == TAG_FLOAT32:
            self.cursor.ensure(5)
            self.cursor.skip(1)
            return self.cursor.read_f32_be()
        return self.read_float64()

    def read_bool(self) -> bool:
        tag = self.cursor.peek_u8()
        if tag == TAG_TRUE or tag == TAG_FALSE:
            self.cursor.skip(1)
            return tag == TAG_TRUE
        raise self._violation(tag, "bool")

    def read_nil(self) -> bool:
        """Consume a nil if present. Returns True when one was consumed."""
        if self.cursor.peek_u8() == TAG_NIL:
            self.cursor.skip(1)
            return True
        return False

    def read_str(self) -> str:
        """fixstr/str8/str16/str32, decoded as UTF-8."""
        cursor = self.cursor
        tag = cursor.peek_u8()
        if 0xa0 <= tag <= 0xbf:
            length = tag & 0x1f
            cursor.ensure(1 + length)
            cursor.skip(1)
        elif tag in (TAG_STR8, TAG_STR16, TAG_STR32):
            width = {TAG_STR8: 1, TAG_STR16: 2, TAG_STR32: 4}[tag]
            self._peek_length(width)
            length = self._read_length(width)
        else:
            raise self._violation(tag, "str")
        return cursor.read_bytes(length).decode('utf-8', errors='replace')

    def _peek_length(self, width: int) -> int:
        """Validate that a tag + length + payload fit, without consuming."""
        cursor = self.cursor
        length = int.from_bytes(cursor.peek_bytes(1 + width)[1:], 'big')
        cursor.ensure(1 + width + length)
        return length

    # === Sample sequences ===

    def read_bin(self, max_len: Optional[int] = None) -> Tuple[int, bytes]:
        """bin8/16/32. Returns (declared length, bytes kept under max_len)."""
        tag = self.cursor.peek_u8()
        if tag == TAG_BIN8:
            width = 1
        elif tag == TAG_BIN16:
            width = 2
        elif tag == TAG_BIN32:
            width = 4
        else:
            raise self._violation(tag, "bin")
        self._peek_length(width)
        count = self._read_length(width)
        kept = count if max_len is None else min(count, max_len)
        data = self.cursor.read_bytes(kept)
        self.cursor.skip(count - kept)
        return count, data

    def read_bytes_or_array_of_u8(self, max_len: Optional[int] = None) -> Tuple[int, bytes]:
        """
        Digital-probe samples: either a bin blob or an array of uints.

        Returns (declared count, samples). Samples beyond max_len are
        consumed from the stream but not returned.
        """
        if self.cursor.peek_u8() in BIN_TAGS:
            return self.read_bin(max_len)

        count = self.read_array_header()
        kept = count if max_len is None else min(count, max_len)
        samples = bytearray()
        for i in range(count):
            value = self.read_unsigned_int()
            if i < kept:
                samples.append(value & 0xFF)
        return count, bytes(samples)

    def read_int_array(self, max_len: Optional[int] = None) -> Tuple[int, List[int]]:
        """
        Analog-probe samples: array of signed ints coerced to i16.

        Same (declared count, samples) contract as read_bytes_or_array_of_u8.
        """
        count = self.read_array_header()
        kept = count if max_len is None else min(count, max_len)
        samples = []
        for i in range(count):
            value = self.read_signed_int()
            if i < kept:
                samples.append(_to_i16(value))
        return count, samples

    def skip_bytes_or_array_of_u8(self) -> int:
        """Consume a digital probe without keeping samples. Returns the count."""
        count, _ = self.read_bytes_or_array_of_u8(max_len=0)
        return count

    def skip_int_array(self) -> int:
        """Consume an analog probe without keeping samples. Returns the count."""
        count, _ = self.read_int_array(max_len=0)
        return count

    # === Generic skip ===

    def skip_value(self) -> None:
        """Skip one complete MessagePack value of any type."""
        cursor = self.cursor
        tag = cursor.peek_u8()

        if tag <= 0x7f or tag >= 0xe0 or tag in (TAG_NIL, TAG_FALSE, TAG_TRUE):
            cursor.skip(1)
        elif 0x80 <= tag <= 0x8f or tag in (TAG_MAP16, TAG_MAP32):
            for _ in range(self.read_map_header() * 2):
                self.skip_value()
        elif 0x90 <= tag <= 0x9f or tag in (TAG_ARRAY16, TAG_ARRAY32):
            for _ in range(self.read_array_header()):
                self.skip_value()
        elif 0xa0 <= tag <= 0xbf or tag in (TAG_STR8, TAG_STR16, TAG_STR32):
            self.read_str()
        elif tag in BIN_TAGS:
            self.read_bin(max_len=0)
        elif tag in (TAG_FLOAT32, TAG_FLOAT64):
            self.read_float()
        elif TAG_UINT8 <= tag <= TAG_UINT64:
            self.read_unsigned_int()
        elif TAG_INT8 <= tag <= TAG_INT64:
            self.read_signed_int()
        elif tag in _FIXEXT_SIZES:
            cursor.skip(2 + _FIXEXT_SIZES[tag])
        elif tag in (TAG_EXT8, TAG_EXT16, TAG_EXT32):
            width = {TAG_EXT8: 1, TAG_EXT16: 2, TAG_EXT32: 4}[tag]
            length = self._peek_length(width)
            cursor.ensure(1 + width + 1 + length)
            self._read_length(width)
            cursor.skip(1 + length)
        else:
            raise self._violation(tag, "any value")

