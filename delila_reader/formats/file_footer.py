"""
File footer for DELILA data files.

Fixed 64-byte trailer written when the recorder closes a file. All numeric
fields are little-endian, unlike the big-endian values inside MessagePack
payloads.

Layout (64 bytes):
    Bytes 0-7:   magic                "DLEND002"
    Bytes 8-15:  data_checksum        xxHash64-based checksum of data blocks
    Bytes 16-23: total_events         Events written
    Bytes 24-31: data_bytes           Bytes of data blocks (length prefixes included)
    Bytes 32-39: first_event_time_ns  f64
    Bytes 40-47: last_event_time_ns   f64
    Bytes 48-55: file_end_time_ns     Unix time in ns
    Byte 56:     write_complete       1 = closed cleanly, 0 = interrupted
    Bytes 57-63: reserved
"""

import struct
from dataclasses import dataclass
from typing import List

from ..core.errors import UnexpectedEndOfData


FOOTER_MAGIC = b'DLEND002'

FOOTER_SIZE = 64


@dataclass
class FileFooter:
    """
    Decoded footer.

    A footer with the wrong magic is still decoded field by field so that
    callers can inspect it; is_valid tells whether it can be trusted.
    """

    magic: bytes = FOOTER_MAGIC
    data_checksum: int = 0
    total_events: int = 0
    data_bytes: int = 0
    first_event_time_ns: float = 0.0
    last_event_time_ns: float = 0.0
    file_end_time_ns: int = 0
    write_complete: int = 0

    # 8s=magic, Q=checksum, Q=total_events, Q=data_bytes,
    # d=first_ts, d=last_ts, Q=end_time, B=complete, 7x=reserved
    FORMAT = '<8sQQQddQB7x'

    @property
    def is_valid(self) -> bool:
        """Magic matches DLEND002."""
        return self.magic == FOOTER_MAGIC

    @property
    def is_complete(self) -> bool:
        return self.write_complete == 1

    def encode(self) -> bytes:
        """Encode footer to its fixed 64 bytes."""
        return struct.pack(
            self.FORMAT,
            self.magic,
            self.data_checksum,
            self.total_events,
            self.data_bytes,
            self.first_event_time_ns,
            self.last_event_time_ns,
            self.file_end_time_ns,
            self.write_complete,
        )

    @classmethod
    def decode(cls, data: bytes) -> 'FileFooter':
        """
        Decode footer from exactly FOOTER_SIZE bytes.

        The magic is not enforced here; check is_valid or validate().
        """
        if len(data) < FOOTER_SIZE:
            raise UnexpectedEndOfData(
                f"footer too small: {len(data)} < {FOOTER_SIZE}", offset=len(data)
            )

        (magic, checksum, total, data_bytes, first_ts, last_ts,
         end_time, complete) = struct.unpack(cls.FORMAT, data[:FOOTER_SIZE])

        return cls(
            magic=magic,
            data_checksum=checksum,
            total_events=total,
            data_bytes=data_bytes,
            first_event_time_ns=first_ts,
            last_event_time_ns=last_ts,
            file_end_time_ns=end_time,
            write_complete=complete,
        )

    def validate(self) -> List[str]:
        """
        Validate footer fields.

        Returns:
            List of validation messages (empty if valid).
        """
        errors = []

        if self.magic != FOOTER_MAGIC:
            errors.append(f"Invalid footer magic: {self.magic!r}")

        if not self.is_complete:
            errors.append("File incomplete (write_complete flag not set)")

        if self.total_events > 0 and self.first_event_time_ns > self.last_event_time_ns:
            errors.append(
                f"First event time {self.first_event_time_ns} after "
                f"last event time {self.last_event_time_ns}"
            )

        return errors

    def to_dict(self) -> dict:
        return {
            'magic': self.magic.decode('ascii', errors='replace'),
            'valid': self.is_valid,
            'data_checksum': f"{self.data_checksum:016x}",
            'total_events': self.total_events,
            'data_bytes': self.data_bytes,
            'first_event_time_ns': self.first_event_time_ns,
            'last_event_time_ns': self.last_event_time_ns,
            'file_end_time_ns': self.file_end_time_ns,
            'write_complete': self.is_complete,
        }


# Verify struct size at module load
_computed_size = struct.calcsize(FileFooter.FORMAT)
assert _computed_size == FOOTER_SIZE, \
    f"FileFooter format size mismatch: {_computed_size} != {FOOTER_SIZE}"
