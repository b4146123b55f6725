"""Core types shared across the reader: errors and reports."""

from .errors import (
    ErrorCode,
    ERROR_METADATA,
    DelilaError,
    DecodeError,
    BadMagic,
    UnexpectedEndOfData,
    InvalidBlockLength,
    SchemaViolation,
    IoFailure,
)
from .report import ReportStatus, DecodeReport, ValidationResult

__all__ = [
    'ErrorCode',
    'ERROR_METADATA',
    'DelilaError',
    'DecodeError',
    'BadMagic',
    'UnexpectedEndOfData',
    'InvalidBlockLength',
    'SchemaViolation',
    'IoFailure',
    'ReportStatus',
    'DecodeReport',
    'ValidationResult',
]
