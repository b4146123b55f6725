"""
DELILA reader - Decoder for DELILA event-stream files.

This package provides:
- wire: Byte cursor and MessagePack value decoder
- schema: Event/waveform records and the batch decoder
- formats: File header, data blocks, footer and the streaming reader
- sinks: Downstream consumers (collect, sample cap, statistics)
- config: YAML configuration with environment variable support
- core: Error codes and decode reports
- cli: Command-line interface
"""

__version__ = "0.2.0"

from .wire import ByteCursor, MsgPackDecoder
from .schema import (
    EventFlags,
    EventRecord,
    WaveformRecord,
    BatchHeader,
    DecodedBatch,
    SchemaDecoder,
    decode_batch,
)
from .formats import (
    FileHeader,
    HeaderMetadata,
    FileFooter,
    FILE_MAGIC,
    FOOTER_MAGIC,
    FOOTER_SIZE,
    MAX_BLOCK_LENGTH,
    BlockSpan,
    ChecksumCalculator,
    DelilaReader,
    DecodeHandle,
    ReaderState,
)
from .sinks import EventSink, ListSink, CallbackSink, SampleCapSink, StatisticsSink
from .config import ReaderConfig, load_config
from .core import (
    ErrorCode,
    DelilaError,
    DecodeError,
    BadMagic,
    UnexpectedEndOfData,
    InvalidBlockLength,
    SchemaViolation,
    IoFailure,
    DecodeReport,
    ReportStatus,
    ValidationResult,
)

__all__ = [
    # Version
    '__version__',
    # Wire
    'ByteCursor',
    'MsgPackDecoder',
    # Schema
    'EventFlags',
    'EventRecord',
    'WaveformRecord',
    'BatchHeader',
    'DecodedBatch',
    'SchemaDecoder',
    'decode_batch',
    # Formats
    'FileHeader',
    'HeaderMetadata',
    'FileFooter',
    'FILE_MAGIC',
    'FOOTER_MAGIC',
    'FOOTER_SIZE',
    'MAX_BLOCK_LENGTH',
    'BlockSpan',
    'ChecksumCalculator',
    'DelilaReader',
    'DecodeHandle',
    'ReaderState',
    # Sinks
    'EventSink',
    'ListSink',
    'CallbackSink',
    'SampleCapSink',
    'StatisticsSink',
    # Config
    'ReaderConfig',
    'load_config',
    # Core
    'ErrorCode',
    'DelilaError',
    'DecodeError',
    'BadMagic',
    'UnexpectedEndOfData',
    'InvalidBlockLength',
    'SchemaViolation',
    'IoFailure',
    'DecodeReport',
    'ReportStatus',
    'ValidationResult',
]
