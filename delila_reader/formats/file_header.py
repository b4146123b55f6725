"""
File header for DELILA data files.

The header provides:
- Magic bytes for reliable format detection
- Length-prefixed run metadata (MessagePack)

Layout:
    Bytes 0-7:   magic       "DELILA02"
    Bytes 8-11:  header_len  Payload length (u32 little-endian)
    Bytes 12-..: payload     MessagePack-encoded run metadata

The payload is not needed to decode events. It is decoded best-effort into
HeaderMetadata; a failure there is reported as a warning, never fatal.
"""

import struct
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import BinaryIO, Dict, List, Optional

from ..core.errors import BadMagic, DecodeError, IoFailure, UnexpectedEndOfData
from ..wire.cursor import ByteCursor
from ..wire.msgpack import MsgPackDecoder


# Magic bytes
FILE_MAGIC = b'DELILA02'

# Format version the recorder writes into the metadata
FORMAT_VERSION = 2

# Magic + length prefix
PREAMBLE_SIZE = 12

# 8s=magic, I=header_len
PREAMBLE_FORMAT = '<8sI'


@dataclass
class HeaderMetadata:
    """Run metadata stored in the header payload."""

    version: int = FORMAT_VERSION
    run_number: int = 0
    exp_name: str = ''
    file_sequence: int = 0
    file_start_time_ns: int = 0
    comment: str = ''
    sort_margin_ratio: float = 0.0
    is_sorted: bool = False
    source_ids: List[int] = field(default_factory=list)
    metadata: Dict[str, str] = field(default_factory=dict)

    # Field order of the positional (array) encoding
    FIELDS = (
        'version',
        'run_number',
        'exp_name',
        'file_sequence',
        'file_start_time_ns',
        'comment',
        'sort_margin_ratio',
        'is_sorted',
        'source_ids',
        'metadata',
    )

    @staticmethod
    def _read_field(mp: MsgPackDecoder, name: str):
        if name in ('exp_name', 'comment'):
            return mp.read_str()
        if name == 'sort_margin_ratio':
            return mp.read_float()
        if name == 'is_sorted':
            return mp.read_bool()
        if name == 'source_ids':
            return [mp.read_unsigned_int() for _ in range(mp.read_array_header())]
        if name == 'metadata':
            pairs = {}
            for _ in range(mp.read_map_header()):
                key = mp.read_str()
                pairs[key] = mp.read_str()
            return pairs
        return mp.read_unsigned_int()

    @classmethod
    def decode(cls, payload: bytes) -> 'HeaderMetadata':
        """
        Decode metadata written either as an array (field order) or as a map
        keyed by field name.

        Raises:
            DecodeError: If the payload does not match either layout
        """
        mp = MsgPackDecoder(ByteCursor(payload))
        values = {}

        tag = mp.peek_tag()
        if 0x80 <= tag <= 0x8f or tag in (0xde, 0xdf):
            for _ in range(mp.read_map_header()):
                key = mp.read_str()
                if key in cls.FIELDS:
                    values[key] = cls._read_field(mp, key)
                else:
                    mp.skip_value()
        else:
            n_fields = mp.read_array_header()
            for index in range(n_fields):
                if index < len(cls.FIELDS):
                    name = cls.FIELDS[index]
                    values[name] = cls._read_field(mp, name)
                else:
                    mp.skip_value()

        return cls(**values)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class FileHeader:
    """File header: magic, payload length and raw payload."""

    magic: bytes = FILE_MAGIC
    header_length: int = 0
    payload: bytes = b''
    metadata: Optional[HeaderMetadata] = None

    def __post_init__(self):
        if isinstance(self.magic, str):
            self.magic = self.magic.encode('ascii')
        if len(self.magic) != 8:
            raise ValueError(f"Magic must be 8 bytes, got {len(self.magic)}")

    @property
    def size(self) -> int:
        """Total bytes occupied in the file (data blocks start here)."""
        return PREAMBLE_SIZE + self.header_length

    def encode(self) -> bytes:
        """Encode preamble and payload to bytes."""
        return struct.pack(PREAMBLE_FORMAT, self.magic, len(self.payload)) + self.payload

    @staticmethod
    def decode_preamble(data: bytes) -> int:
        """
        Validate magic and return the payload length.

        Raises:
            UnexpectedEndOfData: Fewer than PREAMBLE_SIZE bytes
            BadMagic: Magic is not DELILA02
        """
        if len(data) < 8:
            raise UnexpectedEndOfData(
                f"header too small: {len(data)} < {PREAMBLE_SIZE}", offset=0
            )
        if data[:8] != FILE_MAGIC:
            raise BadMagic(
                f"invalid magic {bytes(data[:8])!r} (expected {FILE_MAGIC!r})", offset=0
            )
        if len(data) < PREAMBLE_SIZE:
            raise UnexpectedEndOfData(
                f"header too small: {len(data)} < {PREAMBLE_SIZE}", offset=len(data)
            )
        _, length = struct.unpack(PREAMBLE_FORMAT, data[:PREAMBLE_SIZE])
        return length

    @classmethod
    def decode(cls, data: bytes) -> 'FileHeader':
        """Decode header from the start of a buffer (payload left undecoded)."""
        length = cls.decode_preamble(data)
        end = PREAMBLE_SIZE + length
        if len(data) < end:
            raise UnexpectedEndOfData(
                f"header payload truncated: need {length} bytes, "
                f"{len(data) - PREAMBLE_SIZE} available",
                offset=PREAMBLE_SIZE,
            )
        return cls(header_length=length, payload=bytes(data[PREAMBLE_SIZE:end]))

    @classmethod
    def read_from(cls, stream: BinaryIO) -> 'FileHeader':
        """
        Read header from the current position of a binary stream.

        The magic is checked before the length field or payload is read.
        """
        try:
            magic = stream.read(8)
            if len(magic) == 8 and magic != FILE_MAGIC:
                raise BadMagic(
                    f"invalid magic {magic!r} (expected {FILE_MAGIC!r})", offset=0
                )
            length_bytes = stream.read(4)
            preamble = magic + length_bytes
            length = cls.decode_preamble(preamble)
            payload = stream.read(length)
        except OSError as e:
            raise IoFailure(f"failed to read header: {e}", offset=0) from e

        if len(payload) < length:
            raise UnexpectedEndOfData(
                f"header payload truncated: need {length} bytes, {len(payload)} available",
                offset=PREAMBLE_SIZE + len(payload),
            )
        return cls(header_length=length, payload=payload)

    def decode_metadata(self) -> HeaderMetadata:
        """Decode and cache the payload. Raises DecodeError on failure."""
        if self.metadata is None:
            self.metadata = HeaderMetadata.decode(self.payload)
        return self.metadata

    @classmethod
    def probe(cls, path: Path) -> Optional['FileHeader']:
        """
        Try to read header from file.

        Returns:
            FileHeader if file starts with a valid header, None otherwise.
        """
        path = Path(path)
        if not path.exists() or path.stat().st_size < PREAMBLE_SIZE:
            return None

        try:
            with open(path, 'rb') as f:
                return cls.read_from(f)
        except DecodeError:
            return None


# Verify struct size at module load
_computed_size = struct.calcsize(PREAMBLE_FORMAT)
assert _computed_size == PREAMBLE_SIZE, \
    f"Preamble format size mismatch: {_computed_size} != {PREAMBLE_SIZE}"
