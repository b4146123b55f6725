"""
Waveform sample cap applied at the output boundary.

Decoding keeps every sample the file holds. Consumers with fixed-size
columns wrap their sink in SampleCapSink to cut each probe to at most
max_samples before the record reaches them.
"""

import logging
from dataclasses import replace

from .base import EventSink
from ..schema.records import EventRecord

logger = logging.getLogger(__name__)


# Column width used by the recorder's tabular output
MAX_WAVEFORM_SAMPLES = 16384


class SampleCapSink(EventSink):
    """
    Truncate waveform probes before forwarding to an inner sink.

    Example:
        inner = ListSink()
        sink = SampleCapSink(inner, max_samples=1024)
        DelilaReader.drain(handle, sink)
        print(sink.truncated_events)
    """

    def __init__(self, inner: EventSink, max_samples: int = MAX_WAVEFORM_SAMPLES):
        if max_samples <= 0:
            raise ValueError(f"max_samples must be positive, got {max_samples}")
        self.inner = inner
        self.max_samples = max_samples
        self.truncated_events = 0

    def push(self, event: EventRecord) -> None:
        waveform = event.waveform
        if waveform is not None and waveform.n_samples > self.max_samples:
            self.truncated_events += 1
            event = replace(event, waveform=waveform.truncated(self.max_samples))
        self.inner.push(event)

    def close(self) -> None:
        if self.truncated_events:
            logger.info(
                "Truncated waveforms of %d events to %d samples",
                self.truncated_events, self.max_samples,
            )
        self.inner.close()
