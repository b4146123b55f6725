"""Downstream consumers of decoded events."""

from .base import EventSink, ListSink, CallbackSink
from .capped import SampleCapSink, MAX_WAVEFORM_SAMPLES
from .statistics import ChannelStats, EventStatistics, StatisticsSink

__all__ = [
    'EventSink',
    'ListSink',
    'CallbackSink',
    'SampleCapSink',
    'MAX_WAVEFORM_SAMPLES',
    'ChannelStats',
    'EventStatistics',
    'StatisticsSink',
]
