"""
Tests for DelilaReader.

CRITICAL TESTS:
1. test_end_to_end_single_event - Minimal file decodes to the expected record
2. test_zero_length_block_fails_before_payload - No payload read for length 0
3. test_bad_footer_magic_keeps_events - Footer problems are warnings
4. test_failure_after_partial_block - Events before a bad event are kept
5. test_parallel_matches_sequential - Thread pool merge preserves file order
"""

import io
import struct

import pytest

from delila_reader.config import ReaderConfig
from delila_reader.core.errors import (
    BadMagic,
    InvalidBlockLength,
    IoFailure,
    SchemaViolation,
    UnexpectedEndOfData,
)
from delila_reader.core.report import ReportStatus
from delila_reader.formats import DelilaReader, ReaderState
from delila_reader.formats.blocks import BlockSpan
from delila_reader.sinks import ListSink

from builders import (
    build_file,
    encode_batch,
    encode_batch_head,
    encode_event,
    pack_array_header,
    pack_uint,
)


def codes(items):
    return [item['code'] for item in items]


def read_all(source, config=None):
    handle = DelilaReader.open(source, config)
    events = list(DelilaReader.read(handle))
    return handle, events


class RecordingStream(io.BytesIO):
    """BytesIO that records the size of every read."""

    def __init__(self, data: bytes):
        super().__init__(data)
        self.reads = []

    def read(self, size=-1):
        data = super().read(size)
        self.reads.append((self.tell() - len(data), size))
        return data


class FailingTail(io.BytesIO):
    """BytesIO whose reads break down from a given offset on."""

    def __init__(self, data: bytes, fail_at: int, short: bool = False):
        super().__init__(data)
        self.fail_at = fail_at
        self.short = short

    def read(self, size=-1):
        if self.tell() >= self.fail_at:
            if self.short:
                return super().read(8)
            raise OSError("device removed")
        return super().read(size)


class NonSeekable(io.RawIOBase):
    def __init__(self, data: bytes):
        self._inner = io.BytesIO(data)

    def readable(self):
        return True

    def seekable(self):
        return False

    def read(self, size=-1):
        return self._inner.read(size)


class TestEndToEnd:
    """Test complete files."""

    def test_end_to_end_single_event(self, simple_file_bytes):
        handle = DelilaReader.open(simple_file_bytes)
        events = list(DelilaReader.read(handle))

        assert len(events) == 1
        event = events[0]
        assert event.module == 1
        assert event.channel == 2
        assert event.energy == 100
        assert event.energy_short == 50
        assert event.timestamp_ns == 1234.5
        assert event.flags == 0
        assert event.waveform is None

        footer = DelilaReader.footer(handle)
        assert footer.total_events == 1
        assert footer.is_complete

        assert handle.state == ReaderState.DONE
        assert handle.report.warnings == []
        assert handle.report.errors == []
        assert handle.checksum_ok is True

    def test_empty_header_skips_metadata(self, simple_file_bytes):
        handle = DelilaReader.open(simple_file_bytes)
        assert handle.header.header_length == 0
        assert handle.metadata is None
        assert handle.report.header == {'header_length': 0}
        assert handle.report.warnings == []

    def test_path_source(self, simple_file):
        events = list(DelilaReader.read_path(simple_file))
        assert [e.energy for e in events] == [100]

    def test_multi_block(self, multi_block_file):
        handle, events = read_all(multi_block_file)

        assert [e.timestamp_ns for e in events] == [10.0, 20.0, 30.0, 40.0, 50.0, 60.0]
        assert [e.source_id for e in events] == [0, 0, 1, 1, 1, 0]
        assert events[2].waveform.analog_probe_1 == [-5, 0, 300]
        assert handle.report.blocks_decoded == 3
        assert handle.report.events_decoded == 6
        assert handle.report.warnings == []

    def test_header_metadata_on_handle(self, multi_block_file):
        handle = DelilaReader.open(multi_block_file)
        assert handle.metadata.run_number == 42
        assert handle.report.header['exp_name'] == 'beamtime'
        handle.close()

    def test_empty_data_region(self):
        handle, events = read_all(build_file([], total_events=0))
        assert events == []
        assert handle.state == ReaderState.DONE
        assert handle.report.warnings == []

    def test_non_seekable_stream(self, simple_file_bytes):
        handle, events = read_all(NonSeekable(simple_file_bytes))
        assert len(events) == 1
        assert handle.state == ReaderState.DONE

    def test_stream_with_offset(self, simple_file_bytes):
        stream = io.BytesIO(b'prefix' + simple_file_bytes)
        stream.seek(6)
        handle, events = read_all(stream)
        assert len(events) == 1
        assert handle.report.warnings == []


class TestStateMachine:
    """Test reader state transitions."""

    def test_open_leaves_header_validated(self, simple_file_bytes):
        handle = DelilaReader.open(simple_file_bytes)
        assert handle.state == ReaderState.HEADER_VALIDATED
        assert handle.data_start == 12
        assert handle.data_end == len(simple_file_bytes) - 64

    def test_next_event_then_none(self, simple_file_bytes):
        handle = DelilaReader.open(simple_file_bytes)
        assert DelilaReader.next_event(handle).energy == 100
        assert DelilaReader.next_event(handle) is None
        assert DelilaReader.next_event(handle) is None
        assert handle.state == ReaderState.DONE

    def test_bad_header_magic(self, simple_file_bytes):
        with pytest.raises(BadMagic):
            DelilaReader.open(b'DELILA01' + simple_file_bytes[8:])

    def test_truncated_header(self):
        with pytest.raises(UnexpectedEndOfData):
            DelilaReader.open(b'DELILA02\x10\x00\x00\x00abc')

    def test_missing_file(self, tmp_path):
        with pytest.raises(IoFailure):
            DelilaReader.open(tmp_path / 'missing.delila')

    def test_zero_length_block_fails_before_payload(self):
        data = struct.pack('<I', 0) + b'\xff' * 32
        stream = RecordingStream(build_file(data=data))

        handle = DelilaReader.open(stream)
        stream.reads.clear()
        events = list(DelilaReader.read(handle))

        assert events == []
        assert handle.state == ReaderState.FAILED
        assert isinstance(handle.error, InvalidBlockLength)
        assert handle.error.offset == 12
        assert handle.error.block_index == 0
        # Only the 4-byte length prefix was read
        assert stream.reads == [(12, 4)]
        assert handle.report.failure['code'] == 'E1003'

    def test_failure_after_partial_block(self):
        good = [encode_event(energy=1), encode_event(energy=2)]
        block0 = encode_batch(good)
        bad = pack_array_header(5) + pack_uint(0) * 5
        block1 = encode_batch([encode_event(energy=3), bad, encode_event(energy=4)])
        block2 = encode_batch([encode_event(energy=5)])
        handle = DelilaReader.open(build_file([block0, block1, block2], total_events=6))

        energies = [DelilaReader.next_event(handle).energy for _ in range(3)]
        assert energies == [1, 2, 3]

        with pytest.raises(SchemaViolation) as exc:
            DelilaReader.next_event(handle)

        error = exc.value
        block1_payload = 12 + 4 + len(block0) + 4
        assert error.block_index == 1
        assert error.event_index == 1
        assert error.offset == block1_payload + len(encode_batch_head(3)) + len(encode_event(energy=3))

        # Raised once, then end of stream
        assert DelilaReader.next_event(handle) is None
        assert handle.state == ReaderState.FAILED
        assert handle.report.events_decoded == 3
        assert handle.report.blocks_decoded == 1

    def test_read_reports_instead_of_raising(self):
        block0 = encode_batch([encode_event(energy=1)])
        # Second block holds a single reserved tag
        data = struct.pack('<I', len(block0)) + block0 + struct.pack('<I', 1) + b'\xc1'
        handle, events = read_all(build_file(data=data))

        assert [e.energy for e in events] == [1]
        assert handle.report.failed
        assert handle.report.failure['code'] == 'E1004'
        handle.report.compute_status()
        assert handle.report.status == ReportStatus.ERROR

    def test_block_overruns_data_region(self):
        payload = encode_batch([encode_event()])
        data = struct.pack('<I', len(payload) + 100) + payload
        handle, events = read_all(build_file(data=data))
        assert events == []
        assert isinstance(handle.error, UnexpectedEndOfData)
        assert handle.error.offset == 16

    def test_custom_block_ceiling(self, simple_file_bytes):
        config = ReaderConfig()
        config.decode.max_block_length = 4
        handle, events = read_all(simple_file_bytes, config)
        assert events == []
        assert isinstance(handle.error, InvalidBlockLength)


class TestMaxEvents:
    """Test early stop."""

    def test_max_events(self, multi_block_file):
        handle = DelilaReader.open(multi_block_file)
        events = list(DelilaReader.read(handle, max_events=3))

        assert [e.timestamp_ns for e in events] == [10.0, 20.0, 30.0]
        assert handle.report.stopped_early
        # No footer cross-checks on an early stop
        assert handle.report.warnings == []

    def test_max_events_from_config(self, multi_block_file):
        config = ReaderConfig()
        config.decode.max_events = 2
        handle, events = read_all(multi_block_file, config)
        assert len(events) == 2

    def test_report_counts_only_returned_events(self, multi_block_file):
        handle = DelilaReader.open(multi_block_file)
        # Stops one event into the second block
        events = list(DelilaReader.read(handle, max_events=3))

        assert len(events) == 3
        assert handle.report.events_decoded == 3
        assert handle.report.blocks_decoded == 2

    def test_max_events_beyond_total(self, multi_block_file):
        handle = DelilaReader.open(multi_block_file)
        events = list(DelilaReader.read(handle, max_events=100))
        assert len(events) == 6
        assert not handle.report.stopped_early

    def test_resume_after_early_stop(self, multi_block_file):
        handle = DelilaReader.open(multi_block_file)
        first = list(DelilaReader.read(handle, max_events=2))
        rest = list(DelilaReader.read(handle, max_events=None))
        assert len(first) + len(rest) == 6


class TestFooterChecks:
    """Test footer cross-checks."""

    def test_bad_footer_magic_keeps_events(self, multi_block_payloads):
        data = build_file(multi_block_payloads, total_events=6, magic=b'DELILA02')
        data = data[:-64] + b'BADMAGIC' + data[-56:]
        handle, events = read_all(data)

        assert len(events) == 6
        assert handle.state == ReaderState.DONE
        assert codes(handle.report.warnings) == ['E2001']
        assert not DelilaReader.footer(handle).is_valid

    def test_event_count_mismatch(self, multi_block_payloads):
        handle, events = read_all(build_file(multi_block_payloads, total_events=7))
        assert len(events) == 6
        assert codes(handle.report.warnings) == ['E2003']

    def test_event_count_check_disabled(self, multi_block_payloads):
        config = ReaderConfig()
        config.validation.check_event_count = False
        handle, _ = read_all(build_file(multi_block_payloads, total_events=7), config)
        assert handle.report.warnings == []

    def test_incomplete_write(self, multi_block_payloads):
        handle, events = read_all(build_file(multi_block_payloads, total_events=6, write_complete=0))
        assert len(events) == 6
        assert codes(handle.report.warnings) == ['E2004']
        assert handle.checksum_ok is None

    def test_data_bytes_mismatch(self, multi_block_payloads):
        handle, _ = read_all(build_file(multi_block_payloads, total_events=6, data_bytes=1))
        assert codes(handle.report.warnings) == ['E2006']

    def test_data_bytes_zero_not_checked(self, multi_block_payloads):
        handle, _ = read_all(build_file(multi_block_payloads, total_events=6, data_bytes=0))
        assert handle.report.warnings == []

    def test_checksum_mismatch(self, multi_block_payloads):
        handle, _ = read_all(build_file(multi_block_payloads, total_events=6, data_checksum=1))
        assert codes(handle.report.warnings) == ['E2005']
        assert handle.checksum_ok is False

    def test_checksum_disabled(self, multi_block_payloads):
        config = ReaderConfig()
        config.validation.verify_checksum = False
        handle, _ = read_all(build_file(multi_block_payloads, total_events=6, data_checksum=1), config)
        assert handle.report.warnings == []
        assert handle.checksum_ok is None

    def test_file_too_short_for_footer(self, simple_file_bytes):
        # Interrupted recording: one complete block, no trailer
        data = simple_file_bytes[:-64]
        assert len(data) == 36
        handle, events = read_all(data)

        assert [e.energy for e in events] == [100]
        assert handle.state == ReaderState.DONE
        assert handle.error is None
        assert codes(handle.report.warnings) == ['E2002']
        assert DelilaReader.footer(handle) is None

    def test_short_file_keeps_blocks_that_fit(self, multi_block_payloads):
        data = build_file(multi_block_payloads[2:], include_footer=False)
        data += struct.pack('<I', len(multi_block_payloads[0])) + multi_block_payloads[0][:10]
        handle, events = read_all(data)

        assert [e.timestamp_ns for e in events] == [60.0]
        assert isinstance(handle.error, UnexpectedEndOfData)
        assert codes(handle.report.warnings) == ['E2002']

    def test_short_file_validates_as_recoverable(self, simple_file_bytes):
        result = DelilaReader.validate(simple_file_bytes[:-64])
        assert not result.is_valid
        assert result.needs_recovery
        assert result.recoverable_events == 1

    def test_footer_read_failure_is_recorded(self, simple_file_bytes):
        stream = FailingTail(simple_file_bytes, len(simple_file_bytes) - 64)
        handle = DelilaReader.open(stream)

        assert DelilaReader.next_event(handle).energy == 100
        with pytest.raises(IoFailure):
            DelilaReader.next_event(handle)
        assert DelilaReader.next_event(handle) is None
        assert handle.state == ReaderState.FAILED
        assert handle.report.failure['code'] == 'E1005'

    def test_truncated_footer_read_is_recorded(self, simple_file_bytes):
        stream = FailingTail(simple_file_bytes, len(simple_file_bytes) - 64, short=True)
        handle, events = read_all(stream)

        assert len(events) == 1
        assert handle.state == ReaderState.FAILED
        assert handle.report.failed
        assert handle.report.failure['code'] == 'E1002'

    def test_footer_is_lazy(self, multi_block_file):
        handle = DelilaReader.open(multi_block_file)
        footer = DelilaReader.footer(handle)
        assert footer.total_events == 6
        assert handle.state == ReaderState.HEADER_VALIDATED

        events = list(DelilaReader.read(handle))
        assert len(events) == 6
        assert DelilaReader.footer(handle) is footer

    def test_footer_after_failure(self):
        data = struct.pack('<I', 0) + b'\x00' * 8
        handle, _ = read_all(build_file(data=data, total_events=9))
        assert handle.state == ReaderState.FAILED
        assert DelilaReader.footer(handle).total_events == 9

    def test_header_metadata_failure_is_warning(self, multi_block_payloads):
        handle, events = read_all(build_file(multi_block_payloads, total_events=6,
                                             header_payload=b'\xc1'))
        assert len(events) == 6
        assert codes(handle.report.warnings) == ['E1006']
        assert handle.metadata is None

    def test_header_decode_disabled(self, multi_block_payloads):
        config = ReaderConfig()
        config.decode.decode_header = False
        handle, _ = read_all(build_file(multi_block_payloads, total_events=6,
                                        header_payload=b'\xc1'), config)
        assert handle.report.warnings == []


class TestConvenience:
    """Test count, validate, drain and scanning."""

    def test_count_uses_footer(self, multi_block_payloads):
        # Footer claims 99; a complete, valid footer is trusted
        assert DelilaReader.count(build_file(multi_block_payloads, total_events=99)) == 99

    def test_count_decodes_when_footer_untrusted(self, multi_block_payloads):
        data = build_file(multi_block_payloads, total_events=99, write_complete=0)
        assert DelilaReader.count(data) == 6

    def test_validate_good_file(self, multi_block_file):
        result = DelilaReader.validate(multi_block_file)
        assert result.is_valid
        assert not result.needs_recovery
        assert result.recoverable_blocks == 3
        assert result.recoverable_events == 6
        assert result.checksum_ok is True
        assert result.header['run_number'] == 42

    def test_validate_corrupt_file_needs_recovery(self, multi_block_payloads):
        data = b''.join(struct.pack('<I', len(p)) + p for p in multi_block_payloads[:2])
        data += struct.pack('<I', 0)
        result = DelilaReader.validate(build_file(data=data, total_events=6))

        assert not result.is_valid
        assert result.needs_recovery
        assert result.recoverable_blocks == 2
        assert result.recoverable_events == 5
        assert result.footer['total_events'] == 6
        assert result.errors

    def test_validate_bad_magic(self, simple_file_bytes):
        result = DelilaReader.validate(b'XXXXXXXX' + simple_file_bytes[8:])
        assert not result.is_valid
        assert not result.needs_recovery
        assert result.errors

    def test_validate_ignores_config_max_events(self, multi_block_file):
        config = ReaderConfig()
        config.decode.max_events = 1
        assert DelilaReader.validate(multi_block_file, config).recoverable_events == 6

    def test_drain(self, multi_block_file):
        sink = ListSink()
        with DelilaReader.open(multi_block_file) as handle:
            report = DelilaReader.drain(handle, sink)

        assert len(sink) == 6
        assert sink.closed
        assert report.status == ReportStatus.OK
        assert report.to_dict()['events_decoded'] == 6

    def test_scan_blocks(self, multi_block_file, multi_block_payloads, header_payload):
        spans = DelilaReader.scan_blocks(multi_block_file)
        start = 12 + len(header_payload)
        assert [s.length for s in spans] == [len(p) for p in multi_block_payloads]
        assert spans[0] == BlockSpan(index=0, offset=start, length=len(multi_block_payloads[0]))
        assert spans[-1].end == start + sum(4 + len(p) for p in multi_block_payloads)


class TestParallel:
    """Test parallel block decoding."""

    def test_parallel_matches_sequential(self, multi_block_file):
        _, sequential = read_all(multi_block_file)
        events, report = DelilaReader.decode_parallel(multi_block_file, workers=4)

        assert events == sequential
        assert report.blocks_decoded == 3
        assert report.warnings == []
        assert report.status == ReportStatus.OK

    def test_parallel_stops_at_first_bad_block(self):
        bad = pack_array_header(2) + pack_uint(0) * 2
        payloads = [
            encode_batch([encode_event(energy=1)]),
            encode_batch([encode_event(energy=2), bad]),
            encode_batch([encode_event(energy=3)]),
        ]
        data = build_file(payloads, total_events=3)

        handle, sequential = read_all(data)
        events, report = DelilaReader.decode_parallel(data, workers=3)

        assert [e.energy for e in events] == [e.energy for e in sequential] == [1, 2]
        assert report.failure == handle.report.failure

    def test_parallel_framing_error(self):
        payload = encode_batch([encode_event(energy=1)])
        data = struct.pack('<I', len(payload)) + payload + struct.pack('<I', 0)
        events, report = DelilaReader.decode_parallel(build_file(data=data), workers=2)

        assert [e.energy for e in events] == [1]
        assert report.failure['code'] == 'E1003'

    def test_parallel_workers_from_config(self, multi_block_file):
        config = ReaderConfig()
        config.parallel.workers = 2
        events, _ = DelilaReader.decode_parallel(multi_block_file, config=config)
        assert len(events) == 6
