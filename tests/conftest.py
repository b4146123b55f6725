"""Pytest fixtures shared by the DELILA reader tests."""

import pytest

from builders import (
    build_file,
    encode_batch,
    encode_event,
    encode_header_payload,
    encode_waveform,
)


# The single event used by the end-to-end example
SIMPLE_EVENT = dict(
    module=1,
    channel=2,
    energy=100,
    energy_short=50,
    timestamp_ns=1234.5,
    flags=0,
)


@pytest.fixture
def simple_file_bytes() -> bytes:
    """Header length 0, one block with one event, valid footer."""
    payload = encode_batch([encode_event(**SIMPLE_EVENT)])
    return build_file([payload], total_events=1)


@pytest.fixture
def simple_file(tmp_path, simple_file_bytes):
    path = tmp_path / 'run0001_0000.delila'
    path.write_bytes(simple_file_bytes)
    return path


@pytest.fixture
def header_payload() -> bytes:
    return encode_header_payload({
        'version': 2,
        'run_number': 42,
        'exp_name': 'beamtime',
        'file_sequence': 3,
        'file_start_time_ns': 1_700_000_000_000_000_000,
        'comment': 'calibration',
        'sort_margin_ratio': 0.05,
        'is_sorted': True,
        'source_ids': [0, 1],
        'metadata': {'target': 'Au'},
    })


@pytest.fixture
def multi_block_payloads():
    """Three blocks from two sources, 2 + 3 + 1 events, one with a waveform."""
    waveform = encode_waveform(
        analog1=[-5, 0, 300],
        analog2=[1, 2, 3],
        digital=([0, 1, 1], [1, 0, 0], [0, 0, 0], [1, 1, 1]),
        time_resolution=1,
        trigger_threshold=500,
    )
    return [
        encode_batch([
            encode_event(0, 0, 1000, 200, 10.0, 0),
            encode_event(0, 1, 1100, 210, 20.0, 0x01),
        ], source_id=0, sequence_number=0),
        encode_batch([
            encode_event(1, 0, 2000, 400, 30.0, 0, waveform=waveform),
            encode_event(1, 0, 2100, 420, 40.0, 0x04),
            encode_event(1, 3, 50, 10, 50.0, 0x03),
        ], source_id=1, sequence_number=0),
        encode_batch([
            encode_event(0, 0, 900, 180, 60.0, 0),
        ], source_id=0, sequence_number=1),
    ]


@pytest.fixture
def multi_block_file(tmp_path, multi_block_payloads, header_payload):
    path = tmp_path / 'run0042_0003.delila'
    path.write_bytes(build_file(
        multi_block_payloads,
        total_events=6,
        header_payload=header_payload,
        first_event_time_ns=10.0,
        last_event_time_ns=60.0,
    ))
    return path
