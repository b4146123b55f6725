"""
File framing for DELILA data files.

Provides:
- FileHeader / HeaderMetadata: magic, header length and run metadata
- FileFooter: fixed 64-byte trailer
- Block spans for the length-prefixed data region
- ChecksumCalculator: footer data checksum
- DelilaReader: streaming reader over the whole file
"""

from .file_header import (
    FileHeader,
    HeaderMetadata,
    FILE_MAGIC,
    FORMAT_VERSION,
    PREAMBLE_SIZE,
)
from .file_footer import FileFooter, FOOTER_MAGIC, FOOTER_SIZE
from .blocks import BlockSpan, MAX_BLOCK_LENGTH, scan_blocks
from .checksum import ChecksumCalculator
from .reader import DelilaReader, DecodeHandle, ReaderState

__all__ = [
    'FileHeader',
    'HeaderMetadata',
    'FILE_MAGIC',
    'FORMAT_VERSION',
    'PREAMBLE_SIZE',
    'FileFooter',
    'FOOTER_MAGIC',
    'FOOTER_SIZE',
    'BlockSpan',
    'MAX_BLOCK_LENGTH',
    'scan_blocks',
    'ChecksumCalculator',
    'DelilaReader',
    'DecodeHandle',
    'ReaderState',
]
