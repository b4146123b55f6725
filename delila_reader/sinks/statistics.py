"""
Streaming per-channel statistics.

Memory use is bounded by the number of distinct (module, channel) pairs;
events are never retained. Energy mean/variance use Welford's online
algorithm.
"""

import math
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

from .base import EventSink
from ..schema.event_flags import EventFlags
from ..schema.records import EventRecord


@dataclass
class ChannelStats:
    """Running statistics for one (module, channel) pair."""
    count: int = 0
    energy_min: int = 0
    energy_max: int = 0
    energy_mean: float = 0.0
    energy_m2: float = 0.0
    pileup: int = 0
    waveforms: int = 0

    def add(self, event: EventRecord) -> None:
        energy = event.energy
        if self.count == 0:
            self.energy_min = energy
            self.energy_max = energy
        else:
            self.energy_min = min(self.energy_min, energy)
            self.energy_max = max(self.energy_max, energy)

        self.count += 1
        delta = energy - self.energy_mean
        self.energy_mean += delta / self.count
        self.energy_m2 += delta * (energy - self.energy_mean)

        if event.has_pileup:
            self.pileup += 1
        if event.has_waveform:
            self.waveforms += 1

    @property
    def energy_stddev(self) -> float:
        if self.count < 2:
            return 0.0
        return math.sqrt(self.energy_m2 / (self.count - 1))

    def to_dict(self) -> dict:
        return {
            'count': self.count,
            'energy_min': self.energy_min,
            'energy_max': self.energy_max,
            'energy_mean': self.energy_mean,
            'energy_stddev': self.energy_stddev,
            'pileup': self.pileup,
            'waveforms': self.waveforms,
        }


@dataclass
class EventStatistics:
    """Aggregate over a whole event stream."""
    total_events: int = 0
    waveform_events: int = 0
    first_timestamp_ns: Optional[float] = None
    last_timestamp_ns: Optional[float] = None
    min_timestamp_ns: Optional[float] = None
    max_timestamp_ns: Optional[float] = None
    # Decreasing timestamps seen in arrival order
    out_of_order: int = 0

    channels: Dict[Tuple[int, int], ChannelStats] = field(default_factory=dict)
    flag_counts: Dict[str, int] = field(default_factory=dict)
    sources: Dict[int, int] = field(default_factory=dict)

    def add(self, event: EventRecord) -> None:
        ts = event.timestamp_ns
        if self.total_events == 0:
            self.first_timestamp_ns = ts
            self.min_timestamp_ns = ts
            self.max_timestamp_ns = ts
        else:
            if ts < self.last_timestamp_ns:
                self.out_of_order += 1
            self.min_timestamp_ns = min(self.min_timestamp_ns, ts)
            self.max_timestamp_ns = max(self.max_timestamp_ns, ts)
        self.last_timestamp_ns = ts
        self.total_events += 1

        key = (event.module, event.channel)
        stats = self.channels.get(key)
        if stats is None:
            stats = self.channels[key] = ChannelStats()
        stats.add(event)

        if event.has_waveform:
            self.waveform_events += 1

        for name in EventFlags.names(event.flags):
            self.flag_counts[name] = self.flag_counts.get(name, 0) + 1

        self.sources[event.source_id] = self.sources.get(event.source_id, 0) + 1

    @property
    def duration_ns(self) -> float:
        if self.total_events == 0:
            return 0.0
        return self.max_timestamp_ns - self.min_timestamp_ns

    def to_dict(self) -> dict:
        return {
            'total_events': self.total_events,
            'waveform_events': self.waveform_events,
            'first_timestamp_ns': self.first_timestamp_ns,
            'last_timestamp_ns': self.last_timestamp_ns,
            'duration_ns': self.duration_ns,
            'out_of_order': self.out_of_order,
            'flags': dict(self.flag_counts),
            'sources': {str(k): v for k, v in sorted(self.sources.items())},
            'channels': {
                f"{module}:{channel}": stats.to_dict()
                for (module, channel), stats in sorted(self.channels.items())
            },
        }


class StatisticsSink(EventSink):
    """
    Sink that folds every event into an EventStatistics.

    Example:
        sink = StatisticsSink()
        DelilaReader.drain(handle, sink)
        print(sink.stats.to_dict())
    """

    def __init__(self):
        self.stats = EventStatistics()

    def push(self, event: EventRecord) -> None:
        self.stats.add(event)
