"""
Event batch decoder for the DELILA MessagePack schema.

One decoder covers both usage shapes:
- full: events with their waveform samples
- summary: event fields only; waveform bytes are consumed but discarded

The waveform switch only changes what is kept, never what is read, so the
cursor stays aligned in both modes.
"""

import logging
from typing import Optional

from .records import (
    BATCH_FIELDS,
    EVENT_FIELDS,
    EVENT_FIELDS_WITH_WAVEFORM,
    WAVEFORM_FIELDS,
    BatchHeader,
    DecodedBatch,
    EventRecord,
    WaveformRecord,
)
from ..core.errors import DecodeError, SchemaViolation
from ..wire.cursor import ByteCursor
from ..wire.msgpack import MsgPackDecoder

logger = logging.getLogger(__name__)


class SchemaDecoder:
    """
    Decode DELILA event batches from MessagePack bytes.

    Usage:
        decoder = SchemaDecoder(include_waveform=True)
        batch = decoder.decode_batch(block_payload)
        for event in batch.events:
            process(event)
        if batch.error:
            report(batch.error)

    The lower-level decode_* methods operate on an explicit MsgPackDecoder
    and raise DecodeError subclasses on malformed input.
    """

    def __init__(self, include_waveform: bool = True):
        self.include_waveform = include_waveform

    def decode_batch_header(self, mp: MsgPackDecoder) -> BatchHeader:
        """
        Read [source_id, sequence_number, timestamp, events-array-header].

        sequence_number and timestamp are read to keep the cursor aligned.
        """
        start = mp.position
        n_fields = mp.read_array_header()
        if n_fields != BATCH_FIELDS:
            raise SchemaViolation(
                f"batch array has {n_fields} elements, expected {BATCH_FIELDS}",
                offset=start,
            )

        source_id = mp.read_unsigned_int() & 0xFFFFFFFF
        sequence_number = mp.read_unsigned_int()
        timestamp = mp.read_unsigned_int()
        event_count = mp.read_array_header()

        return BatchHeader(
            source_id=source_id,
            sequence_number=sequence_number,
            timestamp=timestamp,
            event_count=event_count,
        )

    def decode_event(self, mp: MsgPackDecoder, source_id: int = 0) -> EventRecord:
        """Read one 6- or 7-element event array."""
        start = mp.position
        n_fields = mp.read_array_header()
        if n_fields not in (EVENT_FIELDS, EVENT_FIELDS_WITH_WAVEFORM):
            raise SchemaViolation(
                f"event array has {n_fields} elements, "
                f"expected {EVENT_FIELDS} or {EVENT_FIELDS_WITH_WAVEFORM}",
                offset=start,
            )

        module = mp.read_unsigned_int() & 0xFF
        channel = mp.read_unsigned_int() & 0xFF
        energy = mp.read_unsigned_int() & 0xFFFF
        energy_short = mp.read_unsigned_int() & 0xFFFF
        timestamp_ns = mp.read_float64()
        flags = mp.read_unsigned_int()

        waveform = None
        if n_fields == EVENT_FIELDS_WITH_WAVEFORM:
            if self.include_waveform:
                waveform = self.decode_waveform(mp)
            else:
                self.skip_waveform(mp)

        return EventRecord(
            module=module,
            channel=channel,
            energy=energy,
            energy_short=energy_short,
            timestamp_ns=timestamp_ns,
            flags=flags,
            waveform=waveform,
            source_id=source_id,
        )

    def _read_waveform_header(self, mp: MsgPackDecoder) -> None:
        start = mp.position
        n_fields = mp.read_array_header()
        if n_fields != WAVEFORM_FIELDS:
            raise SchemaViolation(
                f"waveform array has {n_fields} elements, expected {WAVEFORM_FIELDS}",
                offset=start,
            )

    def decode_waveform(self, mp: MsgPackDecoder) -> WaveformRecord:
        """Read the 8-element waveform array in field order."""
        self._read_waveform_header(mp)

        _, analog1 = mp.read_int_array()
        _, analog2 = mp.read_int_array()
        _, digital1 = mp.read_bytes_or_array_of_u8()
        _, digital2 = mp.read_bytes_or_array_of_u8()
        _, digital3 = mp.read_bytes_or_array_of_u8()
        _, digital4 = mp.read_bytes_or_array_of_u8()
        time_resolution = mp.read_unsigned_int() & 0xFF
        trigger_threshold = mp.read_unsigned_int() & 0xFFFF

        return WaveformRecord(
            analog_probe_1=analog1,
            analog_probe_2=analog2,
            digital_probe_1=digital1,
            digital_probe_2=digital2,
            digital_probe_3=digital3,
            digital_probe_4=digital4,
            time_resolution=time_resolution,
            trigger_threshold=trigger_threshold,
        )

    def skip_waveform(self, mp: MsgPackDecoder) -> None:
        """Consume a waveform array, validating tags but keeping nothing."""
        self._read_waveform_header(mp)
        mp.skip_int_array()
        mp.skip_int_array()
        for _ in range(4):
            mp.skip_bytes_or_array_of_u8()
        mp.read_unsigned_int()
        mp.read_unsigned_int()

    def decode_batch(self, data: bytes, max_events: Optional[int] = None) -> DecodedBatch:
        """
        Decode a complete block payload.

        Never raises DecodeError: the first failure is returned on the
        result with the events decoded before it. Offsets are relative to
        the start of data.

        Args:
            data: One block payload (without its length prefix)
            max_events: Stop after this many events (remaining bytes unread)
        """
        mp = MsgPackDecoder(ByteCursor(data))
        batch = DecodedBatch()

        try:
            batch.header = self.decode_batch_header(mp)
        except DecodeError as e:
            batch.error = e
            return batch

        count = batch.header.event_count
        if max_events is not None:
            count = min(count, max_events)

        source_id = batch.header.source_id
        for index in range(count):
            try:
                batch.events.append(self.decode_event(mp, source_id))
            except DecodeError as e:
                logger.debug("Event %d of batch failed: %s", index, e)
                batch.error = e.locate(event_index=index)
                return batch

        return batch


def decode_batch(data: bytes, include_waveform: bool = True) -> DecodedBatch:
    """Convenience wrapper: decode one block payload."""
    return SchemaDecoder(include_waveform=include_waveform).decode_batch(data)
