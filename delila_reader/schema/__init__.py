"""DELILA event batch schema: record types and decoder."""

from .event_flags import EventFlags
from .records import (
    EventRecord,
    WaveformRecord,
    BatchHeader,
    DecodedBatch,
)
from .decoder import SchemaDecoder, decode_batch

__all__ = [
    'EventFlags',
    'EventRecord',
    'WaveformRecord',
    'BatchHeader',
    'DecodedBatch',
    'SchemaDecoder',
    'decode_batch',
]
