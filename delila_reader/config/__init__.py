"""Configuration management for the DELILA reader."""

from .schema import (
    ReaderConfig,
    DecodeConfig,
    ValidationConfig,
    ParallelConfig,
    LoggingConfig,
    DEFAULT_MAX_BLOCK_LENGTH,
    DEFAULT_MAX_WAVEFORM_SAMPLES,
    load_config,
    generate_default_config,
)

__all__ = [
    'ReaderConfig',
    'DecodeConfig',
    'ValidationConfig',
    'ParallelConfig',
    'LoggingConfig',
    'DEFAULT_MAX_BLOCK_LENGTH',
    'DEFAULT_MAX_WAVEFORM_SAMPLES',
    'load_config',
    'generate_default_config',
]
