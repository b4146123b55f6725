"""
DelilaReader - High-level interface for reading DELILA data files.

DelilaReader handles:
- Header validation and best-effort metadata decoding
- Streaming block-by-block event decoding
- Footer cross-checks (event count, data bytes, checksum)

Decoding follows a small state machine:

    START -> HEADER_VALIDATED -> STREAMING -> FOOTER -> DONE
                                     |
                                     +-> FAILED (absorbing)

A decode failure never rolls back events already returned. The failure is
recorded on the handle's report with its absolute file offset and the
block and event index where decoding stopped.
"""

import io
import copy
import logging
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, BinaryIO, Deque, Iterator, List, Optional, Tuple, Union

from .blocks import BlockSpan, read_payload, read_span, scan_blocks
from .checksum import ChecksumCalculator
from .file_footer import FileFooter, FOOTER_SIZE
from .file_header import FileHeader
from ..config.schema import ReaderConfig
from ..core.errors import DecodeError, DelilaError, ErrorCode, IoFailure
from ..core.report import DecodeReport, ValidationResult
from ..schema.decoder import SchemaDecoder
from ..schema.records import EventRecord

logger = logging.getLogger(__name__)


Source = Union[str, Path, bytes, bytearray, memoryview, BinaryIO]


class ReaderState(Enum):
    """Decode progress of one handle."""
    START = 'start'
    HEADER_VALIDATED = 'header_validated'
    STREAMING = 'streaming'
    FOOTER = 'footer'
    DONE = 'done'
    FAILED = 'failed'


@dataclass
class DecodeHandle:
    """
    An opened DELILA file and its decode progress.

    Attributes:
        stream: Seekable binary stream positioned anywhere
        base: Stream position of the first file byte
        file_size: Total file size in bytes
        header: Decoded file header
        data_start: Offset of the first data block
        data_end: Offset one past the last data block byte
        config: Reader configuration
        report: Progress and diagnostics
    """
    stream: BinaryIO
    base: int
    file_size: int
    header: FileHeader
    data_start: int
    data_end: int
    config: ReaderConfig
    report: DecodeReport
    decoder: SchemaDecoder
    owns_stream: bool = False

    state: ReaderState = ReaderState.HEADER_VALIDATED
    position: int = 0
    block_index: int = 0
    events_emitted: int = 0
    checksum: Optional[ChecksumCalculator] = None
    checksum_ok: Optional[bool] = None

    error: Optional[DecodeError] = None
    error_raised: bool = False

    _pending: Deque[EventRecord] = field(default_factory=deque)
    _footer: Optional[FileFooter] = None
    _footer_read: bool = False

    @property
    def metadata(self):
        """Header metadata, or None if not decoded."""
        return self.header.metadata

    @property
    def has_footer(self) -> bool:
        return self.file_size >= self.data_start + FOOTER_SIZE

    def close(self) -> None:
        if self.owns_stream:
            self.stream.close()

    def __enter__(self) -> 'DecodeHandle':
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()


def _prepare_config(config: Optional[ReaderConfig], **decode_overrides) -> ReaderConfig:
    config = copy.deepcopy(config) if config is not None else ReaderConfig()
    for key, value in decode_overrides.items():
        setattr(config.decode, key, value)
    return config


class DelilaReader:
    """
    High-level interface for reading DELILA files.

    Usage:
        # Option 1: Open and read separately
        handle = DelilaReader.open(path)
        for event in DelilaReader.read(handle):
            process(event)
        print(handle.report.summary())

        # Option 2: Convenience method
        for event in DelilaReader.read_path(path):
            process(event)

        # Option 3: Pull one event at a time
        event = DelilaReader.next_event(handle)
    """

    @classmethod
    def open(cls, source: Source, config: Optional[ReaderConfig] = None) -> DecodeHandle:
        """
        Open a DELILA file and validate its header.

        Args:
            source: Path, raw bytes, or binary stream
            config: Reader configuration (defaults if None)

        Returns:
            DecodeHandle in the HEADER_VALIDATED state

        Raises:
            BadMagic: File does not start with DELILA02
            UnexpectedEndOfData: Header truncated
            IoFailure: File cannot be opened or read
        """
        config = config if config is not None else ReaderConfig()
        stream, owns_stream, source_name = cls._open_stream(source)

        try:
            base = stream.tell()
            header = FileHeader.read_from(stream)
            file_size = stream.seek(0, io.SEEK_END) - base
        except OSError as e:
            if owns_stream:
                stream.close()
            raise IoFailure(f"failed to read {source_name}: {e}", offset=0) from e
        except DecodeError:
            if owns_stream:
                stream.close()
            raise

        report = DecodeReport(source_file=source_name)
        report.header = {'header_length': header.header_length}

        if config.decode.decode_header and header.header_length:
            try:
                metadata = header.decode_metadata()
                report.header.update(metadata.to_dict())
            except DecodeError as e:
                logger.warning("Header metadata not decoded: %s", e)
                report.add_warning(DelilaError(
                    code=ErrorCode.E1006_HEADER_DECODE_FAILED,
                    context={'detail': str(e)},
                ))

        data_start = header.size
        if file_size >= data_start + FOOTER_SIZE:
            data_end = file_size - FOOTER_SIZE
        else:
            # No room for a footer: every byte after the header is block data
            data_end = file_size
            logger.warning(
                "File too short for a footer: %d bytes after %d-byte header",
                file_size - data_start, data_start,
            )
            report.add_warning(DelilaError(
                code=ErrorCode.E2002_FOOTER_MISSING,
                context={'file_size': file_size, 'data_start': data_start},
            ))

        handle = DecodeHandle(
            stream=stream,
            base=base,
            file_size=file_size,
            header=header,
            data_start=data_start,
            data_end=data_end,
            config=config,
            report=report,
            decoder=SchemaDecoder(include_waveform=config.decode.include_waveform),
            owns_stream=owns_stream,
            position=data_start,
        )
        if config.validation.verify_checksum:
            handle.checksum = ChecksumCalculator()

        logger.debug(
            "Opened %s: data region [%d, %d)", source_name, data_start, data_end
        )
        return handle

    @staticmethod
    def _open_stream(source: Source) -> Tuple[BinaryIO, bool, Optional[str]]:
        if isinstance(source, (str, Path)):
            path = Path(source)
            try:
                return open(path, 'rb'), True, str(path)
            except OSError as e:
                raise IoFailure(f"cannot open {path}: {e}", offset=0) from e

        if isinstance(source, (bytes, bytearray, memoryview)):
            return io.BytesIO(bytes(source)), True, None

        name = getattr(source, 'name', None)
        name = str(name) if name is not None else None
        seekable = getattr(source, 'seekable', None)
        if seekable is not None and seekable():
            return source, False, name

        try:
            return io.BytesIO(source.read()), True, name
        except OSError as e:
            raise IoFailure(f"failed to read stream: {e}", offset=0) from e

    @classmethod
    def next_event(cls, handle: DecodeHandle) -> Optional[EventRecord]:
        """
        Return the next decoded event, or None at the end of the stream.

        After the last good event of a failed file, the recorded DecodeError
        is raised once; later calls return None.
        """
        while True:
            if handle._pending:
                handle.events_emitted += 1
                handle.report.events_decoded += 1
                return handle._pending.popleft()

            if handle.state is ReaderState.FAILED:
                if handle.error is not None and not handle.error_raised:
                    handle.error_raised = True
                    raise handle.error
                return None

            if handle.state in (ReaderState.FOOTER, ReaderState.DONE):
                return None

            if handle.state is ReaderState.HEADER_VALIDATED:
                handle.state = ReaderState.STREAMING

            cls._advance(handle)

    @classmethod
    def _advance(cls, handle: DecodeHandle) -> None:
        """Decode the next block into the pending queue, or finish the file."""
        if handle.position >= handle.data_end:
            handle.state = ReaderState.FOOTER
            cls._finish(handle)
            return

        try:
            span = read_span(
                handle.stream,
                handle.position,
                handle.data_end,
                handle.block_index,
                handle.config.decode.max_block_length,
                handle.base,
            )
            payload = read_payload(handle.stream, span, handle.base)
        except DecodeError as e:
            cls._fail(handle, e)
            return

        cls._accept_block(handle, span, payload, handle.decoder.decode_batch(payload))

    @classmethod
    def _accept_block(cls, handle: DecodeHandle, span: BlockSpan, payload: bytes, batch) -> None:
        """Queue a decoded block's events and move past it."""
        if handle.checksum is not None:
            handle.checksum.update_block(span.prefix, payload)

        handle._pending.extend(batch.events)
        handle.report.data_bytes += span.end - span.offset
        handle.position = span.end
        handle.block_index = span.index + 1

        if batch.error is not None:
            cls._fail(
                handle,
                batch.error.locate(base_offset=span.payload_offset, block_index=span.index),
            )
            return

        handle.report.blocks_decoded += 1
        logger.debug(
            "Block %d: %d events, %d bytes at offset %d",
            span.index, len(batch.events), span.length, span.offset,
        )

    @staticmethod
    def _fail(handle: DecodeHandle, error: DecodeError) -> None:
        logger.warning("Decode stopped: %s", error)
        handle.error = error
        handle.state = ReaderState.FAILED
        handle.report.record_failure(error)

    @classmethod
    def footer(cls, handle: DecodeHandle) -> Optional[FileFooter]:
        """
        Read the footer (lazily, once).

        Seeks to the trailer without decoding the remaining blocks. Returns
        None when the file is too short to hold a footer.

        Raises:
            IoFailure: Trailer could not be read
            UnexpectedEndOfData: Stream ended inside the trailer
        """
        if handle._footer_read:
            return handle._footer
        handle._footer_read = True

        if not handle.has_footer:
            return None

        position = handle.base + handle.file_size - FOOTER_SIZE
        try:
            handle.stream.seek(position)
            raw = handle.stream.read(FOOTER_SIZE)
        except OSError as e:
            raise IoFailure(f"failed to read footer: {e}", offset=position - handle.base) from e

        footer = FileFooter.decode(raw)
        handle._footer = footer
        handle.report.footer = footer.to_dict()

        if not footer.is_valid:
            logger.warning("Invalid footer magic: %r", footer.magic)
            handle.report.add_warning(DelilaError(
                code=ErrorCode.E2001_FOOTER_BAD_MAGIC,
                context={'magic': footer.magic.hex()},
            ))
        return footer

    @classmethod
    def _finish(cls, handle: DecodeHandle) -> None:
        """Cross-check the footer against what was decoded."""
        try:
            footer = cls.footer(handle)
        except DecodeError as e:
            cls._fail(handle, e)
            return
        handle.state = ReaderState.DONE

        # Untrusted footer: only the magic warning applies
        if footer is None or not footer.is_valid:
            return

        report = handle.report
        validation = handle.config.validation

        if not footer.is_complete:
            logger.warning("Footer marks file as incompletely written")
            report.add_warning(DelilaError(
                code=ErrorCode.E2004_INCOMPLETE_WRITE,
                context={'write_complete': footer.write_complete},
            ))

        if validation.check_event_count and footer.total_events != report.events_decoded:
            logger.warning(
                "Footer reports %d events, decoded %d",
                footer.total_events, report.events_decoded,
            )
            report.add_warning(DelilaError(
                code=ErrorCode.E2003_EVENT_COUNT_MISMATCH,
                context={'footer': footer.total_events, 'decoded': report.events_decoded},
            ))

        region_bytes = handle.data_end - handle.data_start
        if validation.check_data_bytes and footer.data_bytes and footer.data_bytes != region_bytes:
            logger.warning(
                "Footer reports %d data bytes, data region holds %d",
                footer.data_bytes, region_bytes,
            )
            report.add_warning(DelilaError(
                code=ErrorCode.E2006_DATA_BYTES_MISMATCH,
                context={'footer': footer.data_bytes, 'region': region_bytes},
            ))

        if handle.checksum is not None and footer.is_complete:
            computed = handle.checksum.finalize()
            handle.checksum_ok = computed == footer.data_checksum
            if not handle.checksum_ok:
                logger.warning(
                    "Checksum mismatch: footer %016x, computed %016x",
                    footer.data_checksum, computed,
                )
                report.add_warning(DelilaError(
                    code=ErrorCode.E2005_CHECKSUM_MISMATCH,
                    context={
                        'footer': f"{footer.data_checksum:016x}",
                        'computed': f"{computed:016x}",
                    },
                ))

    @classmethod
    def read(cls, handle: DecodeHandle, max_events: Optional[int] = None) -> Iterator[EventRecord]:
        """
        Stream events from an opened handle.

        Failures are recorded on handle.report instead of being raised.

        Args:
            handle: Previously opened DecodeHandle
            max_events: Stop after this many events (config default if None)

        Yields:
            EventRecord objects in file order
        """
        if max_events is None:
            max_events = handle.config.decode.max_events
        yield from cls._iter_events(handle, max_events)

    @classmethod
    def _iter_events(cls, handle: DecodeHandle, limit: Optional[int]) -> Iterator[EventRecord]:
        while True:
            if limit is not None and handle.events_emitted >= limit:
                unread = handle.state in (
                    ReaderState.HEADER_VALIDATED, ReaderState.STREAMING
                ) and handle.position < handle.data_end
                if handle._pending or unread:
                    handle.report.stopped_early = True
                return

            try:
                event = cls.next_event(handle)
            except DecodeError:
                return

            if event is None:
                return
            yield event

    @classmethod
    def read_path(cls, path: Source, config: Optional[ReaderConfig] = None) -> Iterator[EventRecord]:
        """
        Convenience method: open and read in one call.

        Yields:
            EventRecord objects
        """
        with cls.open(path, config) as handle:
            yield from cls.read(handle)

    @classmethod
    def drain(cls, handle: DecodeHandle, sink, max_events: Optional[int] = None) -> DecodeReport:
        """
        Push every event into a sink, close it and return the final report.
        """
        for event in cls.read(handle, max_events):
            sink.push(event)
        sink.close()

        handle.report.compute_status()
        return handle.report

    @classmethod
    def count(cls, path: Source, config: Optional[ReaderConfig] = None) -> int:
        """
        Count events in a file.

        Uses the footer total when the footer is valid and complete,
        otherwise decodes the file without keeping waveforms.
        """
        config = _prepare_config(config, include_waveform=False, decode_header=False)
        with cls.open(path, config) as handle:
            footer = cls.footer(handle)
            if footer is not None and footer.is_valid and footer.is_complete:
                return footer.total_events
            return sum(1 for _ in cls._iter_events(handle, None))

    @classmethod
    def validate(cls, path: Source, config: Optional[ReaderConfig] = None) -> ValidationResult:
        """
        Decode the whole file and check it against its footer.

        Returns:
            ValidationResult. A file is valid when every block decodes and
            the footer is present, well-formed and consistent with the data.
        """
        config = _prepare_config(config, include_waveform=False, max_events=None)
        result = ValidationResult()

        try:
            handle = cls.open(path, config)
        except DecodeError as e:
            result.is_valid = False
            result.errors.append(str(e))
            return result

        with handle:
            for _ in cls._iter_events(handle, None):
                pass
            if handle.state is ReaderState.FAILED:
                # Footer is still reported for failed files
                try:
                    cls.footer(handle)
                except DecodeError as e:
                    result.errors.append(str(e))

            report = handle.report
            result.header = report.header
            result.footer = report.footer
            result.recoverable_blocks = report.blocks_decoded
            result.recoverable_events = report.events_decoded
            result.checksum_ok = handle.checksum_ok

            if handle.error is not None:
                result.errors.append(str(handle.error))
            result.warnings.extend(w['message'] for w in report.warnings)

            integrity = [w for w in report.warnings if w['code'].startswith('E2')]
            footer = handle._footer
            result.is_valid = (
                handle.error is None
                and footer is not None
                and footer.is_valid
                and footer.is_complete
                and not integrity
            )
        return result

    @classmethod
    def scan_blocks(cls, path: Source, config: Optional[ReaderConfig] = None) -> List[BlockSpan]:
        """
        Sequentially list the block spans of a file without decoding them.

        Raises:
            DecodeError: The framing error that stopped the scan
        """
        config = _prepare_config(config, decode_header=False)
        with cls.open(path, config) as handle:
            return list(scan_blocks(
                handle.stream,
                handle.data_start,
                handle.data_end,
                config.decode.max_block_length,
                handle.base,
            ))

    @classmethod
    def decode_parallel(
        cls,
        path: Source,
        workers: Optional[int] = None,
        config: Optional[ReaderConfig] = None,
    ) -> Tuple[List[EventRecord], DecodeReport]:
        """
        Decode blocks on a thread pool and merge them in file order.

        Block spans are found by a sequential pre-scan; the first failing
        block (in file order) truncates the result exactly as sequential
        decoding would.

        Returns:
            (events, report)
        """
        config = _prepare_config(config)
        if workers is None:
            workers = config.parallel.workers

        with cls.open(path, config) as handle:
            handle.state = ReaderState.STREAMING
            spans: List[BlockSpan] = []
            payloads: List[bytes] = []
            framing_error: Optional[DecodeError] = None

            try:
                for span in scan_blocks(
                    handle.stream,
                    handle.data_start,
                    handle.data_end,
                    config.decode.max_block_length,
                    handle.base,
                ):
                    payloads.append(read_payload(handle.stream, span, handle.base))
                    spans.append(span)
            except DecodeError as e:
                framing_error = e

            decoder = handle.decoder
            with ThreadPoolExecutor(max_workers=max(1, workers)) as pool:
                batches = list(pool.map(decoder.decode_batch, payloads))

            events: List[EventRecord] = []
            for span, payload, batch in zip(spans, payloads, batches):
                cls._accept_block(handle, span, payload, batch)
                handle.report.events_decoded += len(handle._pending)
                events.extend(handle._pending)
                handle._pending.clear()
                if handle.state is ReaderState.FAILED:
                    break
            else:
                if framing_error is not None:
                    cls._fail(handle, framing_error)
                else:
                    handle.state = ReaderState.FOOTER
                    cls._finish(handle)

            handle.events_emitted = len(events)
            handle.report.compute_status()
            logger.debug("Parallel decode: %d events with %d workers", len(events), workers)
            return events, handle.report
