"""
Tests for the event/waveform schema decoder.

These tests verify:
1. Event fields decode exactly (timestamp bit-exact)
2. Waveform decoding is deterministic
3. Summary mode skips waveforms but keeps the cursor aligned
4. A malformed event stops the batch and keeps earlier events
"""

import pytest

from delila_reader.core.errors import ErrorCode, SchemaViolation, UnexpectedEndOfData
from delila_reader.schema import EventFlags, EventRecord, SchemaDecoder, decode_batch
from delila_reader.wire import ByteCursor, MsgPackDecoder

from builders import (
    encode_batch,
    encode_batch_head,
    encode_event,
    encode_waveform,
    pack_array_header,
    pack_f64,
    pack_uint,
)


WAVEFORM = encode_waveform(
    analog1=[-100, 0, 100, 32767],
    analog2=[-32768, 1, 2, 3],
    digital=([0, 1, 0, 1], [1, 1, 1, 1], [0, 0, 0, 0], [1, 0, 0, 1]),
    time_resolution=2,
    trigger_threshold=1000,
)


def mp(data: bytes) -> MsgPackDecoder:
    return MsgPackDecoder(ByteCursor(data))


class TestDecodeEvent:
    """Test single event decoding."""

    def test_fields_without_waveform(self):
        data = encode_event(1, 2, 100, 50, 1234.5, 0)
        event = SchemaDecoder().decode_event(mp(data), source_id=7)

        assert event == EventRecord(
            module=1,
            channel=2,
            energy=100,
            energy_short=50,
            timestamp_ns=1234.5,
            flags=0,
            waveform=None,
            source_id=7,
        )

    @pytest.mark.parametrize('timestamp', [0.0, 0.1 + 0.2, 1e18 + 0.5, 5e-324, -1.0])
    def test_timestamp_bit_exact(self, timestamp):
        event = SchemaDecoder().decode_event(mp(encode_event(timestamp_ns=timestamp)))
        assert event.timestamp_ns == timestamp

    def test_wide_flags(self):
        data = encode_event(flags=2**63 | EventFlags.PILEUP)
        event = SchemaDecoder().decode_event(mp(data))
        assert event.flags == 2**63 | 1
        assert event.has_pileup
        assert not event.has_over_range

    def test_fields_masked_to_width(self):
        data = encode_event(module=0x1ff, channel=0x102, energy=0x12345, energy_short=0x10001)
        event = SchemaDecoder().decode_event(mp(data))
        assert event.module == 0xff
        assert event.channel == 0x02
        assert event.energy == 0x2345
        assert event.energy_short == 0x0001

    def test_with_waveform(self):
        data = encode_event(3, 4, 500, 60, 99.0, 0, waveform=WAVEFORM)
        event = SchemaDecoder().decode_event(mp(data))

        wf = event.waveform
        assert event.has_waveform
        assert wf.analog_probe_1 == [-100, 0, 100, 32767]
        assert wf.analog_probe_2 == [-32768, 1, 2, 3]
        assert wf.digital_probe_1 == b'\x00\x01\x00\x01'
        assert wf.digital_probe_4 == b'\x01\x00\x00\x01'
        assert wf.time_resolution == 2
        assert wf.trigger_threshold == 1000
        assert wf.n_samples == 4

    def test_digital_array_form_matches_bin(self):
        as_array = encode_waveform(
            analog1=[1, 2], digital=([1, 0], [0, 1], [1, 1], [0, 0]), digital_as_bin=False
        )
        as_bin = encode_waveform(
            analog1=[1, 2], digital=([1, 0], [0, 1], [1, 1], [0, 0]), digital_as_bin=True
        )
        decoder = SchemaDecoder()
        assert decoder.decode_waveform(mp(as_array)) == decoder.decode_waveform(mp(as_bin))

    def test_decoding_is_deterministic(self):
        data = encode_event(3, 4, 500, 60, 99.0, 0x10, waveform=WAVEFORM)
        decoder = SchemaDecoder()
        assert decoder.decode_event(mp(data)) == decoder.decode_event(mp(data))

    @pytest.mark.parametrize('arity', [0, 5, 8])
    def test_bad_event_arity(self, arity):
        data = pack_array_header(arity) + pack_uint(0) * arity
        with pytest.raises(SchemaViolation) as exc:
            SchemaDecoder().decode_event(mp(data))
        assert exc.value.offset == 0
        assert exc.value.code == ErrorCode.E1004_SCHEMA_VIOLATION

    def test_bad_waveform_arity(self):
        bad_waveform = pack_array_header(7) + pack_array_header(0) * 7
        data = encode_event(waveform=bad_waveform)
        with pytest.raises(SchemaViolation) as exc:
            SchemaDecoder().decode_event(mp(data))
        # Waveform array starts after the 6 scalar fields
        assert exc.value.offset == len(encode_event())

    def test_timestamp_must_be_float64(self):
        data = pack_array_header(6) + pack_uint(1) * 4 + pack_uint(5) + pack_uint(0)
        with pytest.raises(SchemaViolation):
            SchemaDecoder().decode_event(mp(data))


class TestSummaryMode:
    """Test waveform skipping."""

    def test_waveform_skipped_cursor_aligned(self):
        payload = encode_batch([
            encode_event(1, 1, 10, 1, 1.0, 0, waveform=WAVEFORM),
            encode_event(2, 2, 20, 2, 2.0, 0),
        ])
        batch = SchemaDecoder(include_waveform=False).decode_batch(payload)

        assert batch.ok
        assert [e.waveform for e in batch.events] == [None, None]
        assert batch.events[1].module == 2
        assert batch.events[1].timestamp_ns == 2.0

    def test_summary_matches_full_fields(self):
        payload = encode_batch([encode_event(1, 1, 10, 1, 1.0, 0x04, waveform=WAVEFORM)])
        full = decode_batch(payload, include_waveform=True).events[0]
        summary = decode_batch(payload, include_waveform=False).events[0]
        assert full.waveform is not None
        assert (full.module, full.energy, full.flags) == (summary.module, summary.energy, summary.flags)

    def test_summary_still_validates_waveform(self):
        bad_waveform = pack_array_header(3) + pack_uint(0) * 3
        payload = encode_batch([encode_event(waveform=bad_waveform)])
        batch = SchemaDecoder(include_waveform=False).decode_batch(payload)
        assert isinstance(batch.error, SchemaViolation)


class TestDecodeBatch:
    """Test whole-block decoding."""

    def test_batch_header_fields(self):
        payload = encode_batch([encode_event()], source_id=9, sequence_number=2**40, timestamp=123)
        batch = SchemaDecoder().decode_batch(payload)

        assert batch.header.source_id == 9
        assert batch.header.sequence_number == 2**40
        assert batch.header.timestamp == 123
        assert batch.header.event_count == 1
        assert batch.events[0].source_id == 9

    def test_empty_batch(self):
        batch = SchemaDecoder().decode_batch(encode_batch([]))
        assert batch.ok
        assert batch.events == []

    def test_bad_batch_arity(self):
        payload = pack_array_header(3) + pack_uint(0) * 2 + pack_array_header(0)
        batch = SchemaDecoder().decode_batch(payload)
        assert batch.header is None
        assert isinstance(batch.error, SchemaViolation)

    def test_partial_result_on_bad_event(self):
        good = [encode_event(1, 0, 10, 1, 1.0, 0), encode_event(1, 1, 20, 2, 2.0, 0)]
        bad = pack_array_header(5) + pack_uint(0) * 5
        payload = encode_batch(good + [bad, encode_event(1, 2, 30, 3, 3.0, 0)])

        batch = SchemaDecoder().decode_batch(payload)

        assert [e.energy for e in batch.events] == [10, 20]
        assert isinstance(batch.error, SchemaViolation)
        assert batch.error.event_index == 2
        assert batch.error.offset == len(encode_batch_head(4)) + len(good[0]) + len(good[1])

    def test_truncated_batch(self):
        payload = encode_batch([encode_event(), encode_event()])[:-3]
        batch = SchemaDecoder().decode_batch(payload)
        assert len(batch.events) == 1
        assert isinstance(batch.error, UnexpectedEndOfData)
        assert batch.error.event_index == 1

    def test_max_events(self):
        payload = encode_batch([encode_event(energy=i) for i in range(5)])
        batch = SchemaDecoder().decode_batch(payload, max_events=2)
        assert [e.energy for e in batch.events] == [0, 1]
        assert batch.ok

    def test_declared_count_exceeds_events(self):
        """The missing event fails with its index."""
        payload = encode_batch_head(2) + encode_event() + pack_f64(1.0)
        batch = SchemaDecoder().decode_batch(payload)
        assert len(batch.events) == 1
        assert batch.error.event_index == 1
