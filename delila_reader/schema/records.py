"""
Decoded record types for DELILA event batches.

MessagePack layout written by the recorder:
    EventBatch  := [source_id, sequence_number, timestamp, [EventRecord*]]
    EventRecord := [module, channel, energy, energy_short, timestamp_ns, flags]
                   or the same 6 fields followed by a Waveform
    Waveform    := [analog1, analog2, digital1, digital2, digital3, digital4,
                    time_resolution, trigger_threshold]
"""

from dataclasses import dataclass, field, replace
from typing import List, Optional

from .event_flags import EventFlags
from ..core.errors import DecodeError


# Array arities
BATCH_FIELDS = 4
EVENT_FIELDS = 6
EVENT_FIELDS_WITH_WAVEFORM = 7
WAVEFORM_FIELDS = 8


@dataclass
class WaveformRecord:
    """
    Waveform samples attached to an event.

    Attributes:
        analog_probe_1: Signed 16-bit samples
        analog_probe_2: Signed 16-bit samples
        digital_probe_1..4: Unsigned 8-bit samples
        time_resolution: Sampling divider code (0=1x, 1=2x, 2=4x, 3=8x)
        trigger_threshold: Trigger threshold in ADC counts
    """
    analog_probe_1: List[int] = field(default_factory=list)
    analog_probe_2: List[int] = field(default_factory=list)
    digital_probe_1: bytes = b''
    digital_probe_2: bytes = b''
    digital_probe_3: bytes = b''
    digital_probe_4: bytes = b''
    time_resolution: int = 0
    trigger_threshold: int = 0

    @property
    def digital_probes(self) -> List[bytes]:
        return [
            self.digital_probe_1,
            self.digital_probe_2,
            self.digital_probe_3,
            self.digital_probe_4,
        ]

    @property
    def n_samples(self) -> int:
        """Longest probe length."""
        lengths = [len(self.analog_probe_1), len(self.analog_probe_2)]
        lengths.extend(len(p) for p in self.digital_probes)
        return max(lengths)

    def truncated(self, max_samples: int) -> 'WaveformRecord':
        """Copy with every probe cut to at most max_samples."""
        return replace(
            self,
            analog_probe_1=self.analog_probe_1[:max_samples],
            analog_probe_2=self.analog_probe_2[:max_samples],
            digital_probe_1=self.digital_probe_1[:max_samples],
            digital_probe_2=self.digital_probe_2[:max_samples],
            digital_probe_3=self.digital_probe_3[:max_samples],
            digital_probe_4=self.digital_probe_4[:max_samples],
        )

    def to_dict(self) -> dict:
        return {
            'analog_probe_1': list(self.analog_probe_1),
            'analog_probe_2': list(self.analog_probe_2),
            'digital_probe_1': list(self.digital_probe_1),
            'digital_probe_2': list(self.digital_probe_2),
            'digital_probe_3': list(self.digital_probe_3),
            'digital_probe_4': list(self.digital_probe_4),
            'time_resolution': self.time_resolution,
            'trigger_threshold': self.trigger_threshold,
        }


@dataclass
class EventRecord:
    """
    One detector hit.

    Attributes:
        module: Hardware module ID (u8)
        channel: Channel within module (u8)
        energy: Long-gate energy integral (u16)
        energy_short: Short-gate energy integral for PSD (u16)
        timestamp_ns: Timestamp in nanoseconds (f64)
        flags: Status flags (see EventFlags)
        waveform: Attached samples, if the event was written with one
        source_id: Source ID of the batch the event arrived in
    """
    module: int
    channel: int
    energy: int
    energy_short: int
    timestamp_ns: float
    flags: int
    waveform: Optional[WaveformRecord] = None
    source_id: int = 0

    @property
    def has_waveform(self) -> bool:
        return self.waveform is not None

    @property
    def has_pileup(self) -> bool:
        return (self.flags & EventFlags.PILEUP) != 0

    @property
    def has_trigger_lost(self) -> bool:
        return (self.flags & EventFlags.TRIGGER_LOST) != 0

    @property
    def has_over_range(self) -> bool:
        return (self.flags & EventFlags.OVER_RANGE) != 0

    def to_dict(self) -> dict:
        result = {
            'source_id': self.source_id,
            'module': self.module,
            'channel': self.channel,
            'energy': self.energy,
            'energy_short': self.energy_short,
            'timestamp_ns': self.timestamp_ns,
            'flags': self.flags,
        }
        if self.waveform is not None:
            result['waveform'] = self.waveform.to_dict()
        return result

    def __repr__(self) -> str:
        return (
            f"EventRecord(mod={self.module}, ch={self.channel}, "
            f"E={self.energy}, Es={self.energy_short}, "
            f"t={self.timestamp_ns}, flags=0x{self.flags:x}, "
            f"waveform={self.has_waveform})"
        )


@dataclass
class BatchHeader:
    """Leading fields of an event batch plus the declared event count."""
    source_id: int
    sequence_number: int
    timestamp: int
    event_count: int


@dataclass
class DecodedBatch:
    """
    Result of decoding one data block.

    events holds everything decoded before error (if any). A batch with an
    error is never resumed: cursor alignment after a bad event is unknown.
    """
    header: Optional[BatchHeader] = None
    events: List[EventRecord] = field(default_factory=list)
    error: Optional[DecodeError] = None

    @property
    def ok(self) -> bool:
        return self.error is None
