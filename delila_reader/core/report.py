"""
Report schema for DELILA decode results.

Reports are structured JSON documents containing:
- Metadata (version, timestamp, source)
- Header metadata and footer summary
- Decode progress (blocks, events)
- Errors and warnings as structured diagnostics
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from .errors import DelilaError, DecodeError


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class ReportStatus(Enum):
    """Overall report status."""
    OK = 'ok'
    WARNING = 'warning'
    ERROR = 'error'


@dataclass
class DecodeReport:
    """
    Progress and diagnostics for one decode pass.

    Example:
        handle = DelilaReader.open(path)
        events = list(DelilaReader.read(handle))
        report = handle.report
        report.compute_status()
        print(report.to_json())
    """
    # Metadata
    version: int = 1
    created_at: str = field(default_factory=_now)

    source_file: Optional[str] = None

    # Progress (events counted as they are handed to the caller)
    events_decoded: int = 0
    blocks_decoded: int = 0
    data_bytes: int = 0
    stopped_early: bool = False

    # Sections filled as the file is read
    header: Optional[dict] = None
    footer: Optional[dict] = None

    # Status
    status: ReportStatus = ReportStatus.OK
    status_reason: Optional[str] = None

    # Fatal decode failure, if any
    failure: Optional[dict] = None

    errors: List[dict] = field(default_factory=list)
    warnings: List[dict] = field(default_factory=list)

    def add_error(self, error: DelilaError) -> None:
        """Add an error to the report."""
        self.errors.append(error.to_dict())

    def add_warning(self, warning: DelilaError) -> None:
        """Add a warning to the report."""
        self.warnings.append(warning.to_dict())

    def record_failure(self, error: DecodeError) -> None:
        """Record the decode failure that stopped the stream."""
        diagnostic = error.to_diagnostic()
        self.failure = diagnostic.to_dict()
        self.add_error(diagnostic)

    @property
    def failed(self) -> bool:
        return self.failure is not None

    def compute_status(self) -> None:
        """
        Compute overall status from collected diagnostics.

        Priority: ERROR > WARNING > OK
        """
        if self.errors:
            self.status = ReportStatus.ERROR
            self.status_reason = '; '.join(e['message'] for e in self.errors)
        elif self.warnings:
            self.status = ReportStatus.WARNING
            self.status_reason = '; '.join(w['message'] for w in self.warnings)
        else:
            self.status = ReportStatus.OK
            self.status_reason = None

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            'version': self.version,
            'created_at': self.created_at,
            'source': {
                'file': self.source_file,
            },
            'status': self.status.value,
            'status_reason': self.status_reason,
            'events_decoded': self.events_decoded,
            'blocks_decoded': self.blocks_decoded,
            'data_bytes': self.data_bytes,
            'stopped_early': self.stopped_early,
            'header': self.header,
            'footer': self.footer,
            'failure': self.failure,
            'errors': self.errors,
            'warnings': self.warnings,
        }

    def to_json(self, indent: int = 2) -> str:
        """Convert to JSON string."""
        return json.dumps(self.to_dict(), indent=indent)

    def summary(self) -> str:
        """One-line human summary."""
        text = (
            f"{self.events_decoded} events in {self.blocks_decoded} blocks "
            f"[{self.status.value}]"
        )
        if self.status_reason:
            text += f" {self.status_reason}"
        return text


@dataclass
class ValidationResult:
    """Outcome of a full-file validation pass."""

    is_valid: bool = True
    header: Optional[dict] = None
    footer: Optional[dict] = None
    recoverable_blocks: int = 0
    recoverable_events: int = 0
    checksum_ok: Optional[bool] = None
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def needs_recovery(self) -> bool:
        """Data is readable but the footer cannot be trusted or is absent."""
        return not self.is_valid and self.recoverable_events > 0

    def to_dict(self) -> dict:
        return {
            'is_valid': self.is_valid,
            'needs_recovery': self.needs_recovery,
            'header': self.header,
            'footer': self.footer,
            'recoverable_blocks': self.recoverable_blocks,
            'recoverable_events': self.recoverable_events,
            'checksum_ok': self.checksum_ok,
            'errors': self.errors,
            'warnings': self.warnings,
        }
