"""
Incremental data checksum matching the recorder's footer value.

Each update hashes its chunk with xxHash64 (seed 0) and folds it into the
running state:

    state = rotl64(state, 5) ^ xxh64(chunk)

The final value is state ^ total_bytes. The recorder calls update() twice
per block (length prefix, then payload), so chunk boundaries matter.
"""

import xxhash


U64_MASK = 0xFFFFFFFFFFFFFFFF


def rotl64(value: int, shift: int) -> int:
    """Rotate a 64-bit value left."""
    value &= U64_MASK
    return ((value << shift) | (value >> (64 - shift))) & U64_MASK


class ChecksumCalculator:
    """Running checksum over data blocks."""

    def __init__(self):
        self._state = 0
        self._bytes_processed = 0

    @property
    def bytes_processed(self) -> int:
        return self._bytes_processed

    def update(self, data: bytes) -> None:
        if not data:
            return
        block_hash = xxhash.xxh64_intdigest(data, seed=0)
        self._state = rotl64(self._state, 5) ^ block_hash
        self._bytes_processed += len(data)

    def update_block(self, length_prefix: bytes, payload: bytes) -> None:
        """Fold one data block in the same chunking as the recorder."""
        self.update(length_prefix)
        self.update(payload)

    def finalize(self) -> int:
        return (self._state ^ self._bytes_processed) & U64_MASK

    def reset(self) -> None:
        self._state = 0
        self._bytes_processed = 0
