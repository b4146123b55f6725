"""
Event flag bit constants.

Each event carries a 64-bit flags word filled in by the digitizer firmware:
- PILEUP: Two pulses overlapped inside the integration gate
- TRIGGER_LOST: At least one trigger was lost before this event
- OVER_RANGE: Signal saturated the ADC range
- TRIGGER_1024: Marker emitted every 1024 triggers
- N_LOST_TRIGGER: N triggers were lost (count reported by firmware)
"""

from typing import List


class EventFlags:
    """Event flag bit constants."""

    PILEUP = 0x01

    TRIGGER_LOST = 0x02

    # Signal saturation (over range)
    OVER_RANGE = 0x04

    TRIGGER_1024 = 0x08

    N_LOST_TRIGGER = 0x10

    _NAMES = {
        PILEUP: 'PILEUP',
        TRIGGER_LOST: 'TRIGGER_LOST',
        OVER_RANGE: 'OVER_RANGE',
        TRIGGER_1024: 'TRIGGER_1024',
        N_LOST_TRIGGER: 'N_LOST_TRIGGER',
    }

    @classmethod
    def name(cls, bit: int) -> str:
        """Get human-readable name for a single flag bit."""
        return cls._NAMES.get(bit, f'UNKNOWN(0x{bit:x})')

    @classmethod
    def names(cls, flags: int) -> List[str]:
        """Names of every bit set in a flags word, lowest bit first."""
        result = []
        bit = 1
        remaining = flags
        while remaining:
            if remaining & bit:
                result.append(cls.name(bit))
                remaining &= ~bit
            bit <<= 1
        return result

    @classmethod
    def is_known(cls, bit: int) -> bool:
        """Check if a single bit value is a documented flag."""
        return bit in cls._NAMES
