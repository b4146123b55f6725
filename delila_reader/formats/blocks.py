"""
Length-prefixed data blocks.

The data region between the header and the footer is a run of blocks:

    Bytes 0-3:   length   Payload length (u32 little-endian)
    Bytes 4-..:  payload  One MessagePack EventBatch

A zero length or a length above the sanity ceiling fails the file before any
payload byte is read. A block whose payload would run past the data region
fails with UnexpectedEndOfData.
"""

import struct
from dataclasses import dataclass
from typing import BinaryIO, Iterator

from ..core.errors import InvalidBlockLength, IoFailure, UnexpectedEndOfData
from ..wire.cursor import ByteCursor


# Default ceiling for a single block (100 MB)
MAX_BLOCK_LENGTH = 100_000_000

BLOCK_PREFIX_SIZE = 4

_PREFIX = struct.Struct('<I')


@dataclass
class BlockSpan:
    """
    Position of one block inside the file.

    Attributes:
        index: Zero-based block number
        offset: File offset of the length prefix
        length: Payload length in bytes
    """
    index: int
    offset: int
    length: int

    @property
    def payload_offset(self) -> int:
        return self.offset + BLOCK_PREFIX_SIZE

    @property
    def end(self) -> int:
        """Offset of the next block."""
        return self.payload_offset + self.length

    @property
    def prefix(self) -> bytes:
        """Length prefix as written in the file."""
        return _PREFIX.pack(self.length)


def _read_exact(stream: BinaryIO, position: int, size: int) -> bytes:
    try:
        stream.seek(position)
        return stream.read(size)
    except OSError as e:
        raise IoFailure(f"read of {size} bytes failed: {e}", offset=position) from e


def read_span(
    stream: BinaryIO,
    offset: int,
    data_end: int,
    index: int,
    max_block_length: int = MAX_BLOCK_LENGTH,
    base: int = 0,
) -> BlockSpan:
    """
    Read and check the length prefix of the block at offset.

    Offsets are relative to the start of the file; base is the stream
    position the file starts at.

    Raises:
        UnexpectedEndOfData: Prefix or payload does not fit in the data region
        InvalidBlockLength: Length is zero or above max_block_length
        IoFailure: Underlying read failed
    """
    if data_end - offset < BLOCK_PREFIX_SIZE:
        raise UnexpectedEndOfData(
            f"block length prefix truncated: {data_end - offset} bytes left in data region",
            offset=offset,
            block_index=index,
        )

    raw = _read_exact(stream, base + offset, BLOCK_PREFIX_SIZE)
    if len(raw) < BLOCK_PREFIX_SIZE:
        raise UnexpectedEndOfData(
            f"block length prefix truncated: got {len(raw)} bytes",
            offset=offset,
            block_index=index,
        )
    length = ByteCursor(raw).read_u32_le()

    if length == 0 or length > max_block_length:
        raise InvalidBlockLength(
            f"invalid block length {length} (must be 1..{max_block_length})",
            offset=offset,
            block_index=index,
        )

    span = BlockSpan(index=index, offset=offset, length=length)
    if span.end > data_end:
        raise UnexpectedEndOfData(
            f"block of {length} bytes overruns data region ending at {data_end}",
            offset=span.payload_offset,
            block_index=index,
        )
    return span


def read_payload(stream: BinaryIO, span: BlockSpan, base: int = 0) -> bytes:
    """Read the payload bytes of a block."""
    payload = _read_exact(stream, base + span.payload_offset, span.length)
    if len(payload) < span.length:
        raise UnexpectedEndOfData(
            f"block payload truncated: need {span.length} bytes, got {len(payload)}",
            offset=span.payload_offset + len(payload),
            block_index=span.index,
        )
    return payload


def scan_blocks(
    stream: BinaryIO,
    data_start: int,
    data_end: int,
    max_block_length: int = MAX_BLOCK_LENGTH,
    base: int = 0,
) -> Iterator[BlockSpan]:
    """
    Walk the length prefixes of the data region without reading payloads.

    Yields every well-framed block in file order, then raises the framing
    error (if any) that stopped the walk.
    """
    offset = data_start
    index = 0
    while offset < data_end:
        span = read_span(stream, offset, data_end, index, max_block_length, base)
        yield span
        offset = span.end
        index += 1
