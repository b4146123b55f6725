"""
Error codes and decode exceptions for DELILA files.

Two layers:
- DecodeError and its subclasses are raised inside the decoder and carry
  the byte offset, block index and event index where decoding stopped.
- DelilaError is a structured diagnostic for machine-parseable reports.

Code format: E{category}{number}
- E1xxx: Data errors (fatal for the block or the file)
- E2xxx: Footer and integrity warnings
- E3xxx: Configuration errors
"""

from enum import Enum
from dataclasses import dataclass
from typing import Optional


class ErrorCode(Enum):
    """Structured error codes."""

    # E1xxx: Data errors
    E1001_BAD_MAGIC = "E1001"
    E1002_UNEXPECTED_END = "E1002"
    E1003_INVALID_BLOCK_LENGTH = "E1003"
    E1004_SCHEMA_VIOLATION = "E1004"
    E1005_IO_FAILURE = "E1005"
    E1006_HEADER_DECODE_FAILED = "E1006"

    # E2xxx: Footer / integrity warnings
    E2001_FOOTER_BAD_MAGIC = "E2001"
    E2002_FOOTER_MISSING = "E2002"
    E2003_EVENT_COUNT_MISMATCH = "E2003"
    E2004_INCOMPLETE_WRITE = "E2004"
    E2005_CHECKSUM_MISMATCH = "E2005"
    E2006_DATA_BYTES_MISMATCH = "E2006"

    # E3xxx: Configuration errors
    E3001_INVALID_CONFIG = "E3001"
    E3002_MISSING_ENV_VAR = "E3002"


# Error code metadata
ERROR_METADATA = {
    ErrorCode.E1001_BAD_MAGIC: {
        'severity': 'error',
        'message': 'Invalid file magic',
        'recoverable': False,
    },
    ErrorCode.E1002_UNEXPECTED_END: {
        'severity': 'error',
        'message': 'Unexpected end of data',
        'recoverable': True,
    },
    ErrorCode.E1003_INVALID_BLOCK_LENGTH: {
        'severity': 'error',
        'message': 'Invalid data block length',
        'recoverable': True,
    },
    ErrorCode.E1004_SCHEMA_VIOLATION: {
        'severity': 'error',
        'message': 'Event batch does not match the schema',
        'recoverable': True,
    },
    ErrorCode.E1005_IO_FAILURE: {
        'severity': 'error',
        'message': 'Failed to read input stream',
        'recoverable': False,
    },
    ErrorCode.E1006_HEADER_DECODE_FAILED: {
        'severity': 'warning',
        'message': 'Failed to decode header metadata',
        'recoverable': True,
    },
    ErrorCode.E2001_FOOTER_BAD_MAGIC: {
        'severity': 'warning',
        'message': 'Invalid footer magic',
        'recoverable': True,
    },
    ErrorCode.E2002_FOOTER_MISSING: {
        'severity': 'warning',
        'message': 'File too short to contain a footer',
        'recoverable': True,
    },
    ErrorCode.E2003_EVENT_COUNT_MISMATCH: {
        'severity': 'warning',
        'message': 'Footer event count differs from decoded events',
        'recoverable': True,
    },
    ErrorCode.E2004_INCOMPLETE_WRITE: {
        'severity': 'warning',
        'message': 'Footer marks the file as incompletely written',
        'recoverable': True,
    },
    ErrorCode.E2005_CHECKSUM_MISMATCH: {
        'severity': 'warning',
        'message': 'Data checksum mismatch',
        'recoverable': True,
    },
    ErrorCode.E2006_DATA_BYTES_MISMATCH: {
        'severity': 'warning',
        'message': 'Footer data byte count differs from data region',
        'recoverable': True,
    },
    ErrorCode.E3001_INVALID_CONFIG: {
        'severity': 'error',
        'message': 'Invalid configuration',
        'recoverable': False,
    },
    ErrorCode.E3002_MISSING_ENV_VAR: {
        'severity': 'warning',
        'message': 'Environment variable not set',
        'recoverable': True,
    },
}


@dataclass
class DelilaError:
    """
    Structured diagnostic with context.

    Example:
        error = DelilaError(
            code=ErrorCode.E2003_EVENT_COUNT_MISMATCH,
            context={'footer': 100, 'decoded': 95},
        )
    """
    code: ErrorCode
    context: Optional[dict] = None

    @property
    def severity(self) -> str:
        return ERROR_METADATA.get(self.code, {}).get('severity', 'error')

    @property
    def message(self) -> str:
        base_msg = ERROR_METADATA.get(self.code, {}).get('message', 'Unknown error')
        if self.context:
            return f"{base_msg}: {self.context}"
        return base_msg

    @property
    def recoverable(self) -> bool:
        return ERROR_METADATA.get(self.code, {}).get('recoverable', False)

    def to_dict(self) -> dict:
        return {
            'code': self.code.value,
            'severity': self.severity,
            'message': self.message,
            'recoverable': self.recoverable,
            'context': self.context,
        }


class DecodeError(Exception):
    """
    Base class for failures raised while decoding a DELILA stream.

    Offsets are relative to the buffer being decoded until the file reader
    relocates them with locate(), after which they are absolute file offsets.
    """

    code = ErrorCode.E1004_SCHEMA_VIOLATION

    def __init__(
        self,
        detail: str,
        offset: Optional[int] = None,
        block_index: Optional[int] = None,
        event_index: Optional[int] = None,
    ):
        super().__init__(detail)
        self.detail = detail
        self.offset = offset
        self.block_index = block_index
        self.event_index = event_index

    def locate(
        self,
        base_offset: int = 0,
        block_index: Optional[int] = None,
        event_index: Optional[int] = None,
    ) -> 'DecodeError':
        """Shift the offset by base_offset and attach block/event indices."""
        if self.offset is not None:
            self.offset += base_offset
        if block_index is not None:
            self.block_index = block_index
        if event_index is not None:
            self.event_index = event_index
        return self

    def to_diagnostic(self) -> DelilaError:
        context = {'detail': self.detail}
        if self.offset is not None:
            context['offset'] = self.offset
        if self.block_index is not None:
            context['block_index'] = self.block_index
        if self.event_index is not None:
            context['event_index'] = self.event_index
        return DelilaError(code=self.code, context=context)

    def __str__(self) -> str:
        parts = [self.detail]
        if self.offset is not None:
            parts.append(f"offset={self.offset}")
        if self.block_index is not None:
            parts.append(f"block={self.block_index}")
        if self.event_index is not None:
            parts.append(f"event={self.event_index}")
        return ' '.join(parts)


class BadMagic(DecodeError):
    """File magic does not match DELILA02."""
    code = ErrorCode.E1001_BAD_MAGIC


class UnexpectedEndOfData(DecodeError):
    """A read needed more bytes than the buffer or region holds."""
    code = ErrorCode.E1002_UNEXPECTED_END


class InvalidBlockLength(DecodeError):
    """Block length prefix is zero or above the sanity ceiling."""
    code = ErrorCode.E1003_INVALID_BLOCK_LENGTH


class SchemaViolation(DecodeError):
    """Unexpected array arity or unrecognised MessagePack tag."""
    code = ErrorCode.E1004_SCHEMA_VIOLATION


class IoFailure(DecodeError):
    """Underlying stream read failed."""
    code = ErrorCode.E1005_IO_FAILURE
