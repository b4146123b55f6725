"""
Configuration schema for the DELILA reader.

Supports:
- YAML file loading
- Environment variable substitution (${VAR_NAME})
- Validation with error messages

Example config (delila.yml):
    version: 1

    decode:
      include_waveform: false
      max_events: 100000

    validation:
      verify_checksum: true

    parallel:
      workers: ${DELILA_WORKERS}
"""

import os
import re
import logging
from pathlib import Path
from dataclasses import dataclass, field, asdict
from typing import Optional, List, Any

import yaml

logger = logging.getLogger(__name__)


# Sanity ceiling for a single data block
DEFAULT_MAX_BLOCK_LENGTH = 100_000_000

# Output-side cap on waveform samples per probe
DEFAULT_MAX_WAVEFORM_SAMPLES = 16384

_ENV_PATTERN = re.compile(r'\$\{([^}]+)\}')


def _substitute_env_vars(value: Any) -> Any:
    """
    Substitute ${VAR_NAME} with environment variable values.

    A whole-value reference to a numeric variable is converted back to a
    number so that `workers: ${DELILA_WORKERS}` yields an int.
    """
    if isinstance(value, str):
        def replace(match):
            var_name = match.group(1)
            env_value = os.environ.get(var_name)
            if env_value is None:
                logger.warning("Environment variable %s not set", var_name)
                return match.group(0)  # Keep original if not found
            return env_value

        substituted = _ENV_PATTERN.sub(replace, value)
        if substituted != value and _ENV_PATTERN.fullmatch(value):
            return yaml.safe_load(substituted)
        return substituted

    elif isinstance(value, dict):
        return {k: _substitute_env_vars(v) for k, v in value.items()}

    elif isinstance(value, list):
        return [_substitute_env_vars(v) for v in value]

    return value


@dataclass
class DecodeConfig:
    """Decoding settings."""
    include_waveform: bool = True
    decode_header: bool = True
    max_events: Optional[int] = None
    max_block_length: int = DEFAULT_MAX_BLOCK_LENGTH
    max_waveform_samples: int = DEFAULT_MAX_WAVEFORM_SAMPLES


@dataclass
class ValidationConfig:
    """Footer cross-checks."""
    verify_checksum: bool = True
    check_event_count: bool = True
    check_data_bytes: bool = True


@dataclass
class ParallelConfig:
    """Parallel block decoding."""
    workers: int = 1


@dataclass
class LoggingConfig:
    """Logging settings."""
    level: str = 'WARNING'


@dataclass
class ReaderConfig:
    """Root configuration."""

    version: int = 1
    decode: DecodeConfig = field(default_factory=DecodeConfig)
    validation: ValidationConfig = field(default_factory=ValidationConfig)
    parallel: ParallelConfig = field(default_factory=ParallelConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def load(cls, path: Path) -> 'ReaderConfig':
        """Load from YAML file with env var substitution."""
        path = Path(path)

        if not path.exists():
            raise FileNotFoundError(f"Config not found: {path}")

        with open(path) as f:
            data = yaml.safe_load(f) or {}

        data = _substitute_env_vars(data)
        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: dict) -> 'ReaderConfig':
        """Create from dictionary."""
        return cls(
            version=data.get('version', 1),
            decode=DecodeConfig(**(data.get('decode') or {})),
            validation=ValidationConfig(**(data.get('validation') or {})),
            parallel=ParallelConfig(**(data.get('parallel') or {})),
            logging=LoggingConfig(**(data.get('logging') or {})),
        )

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return asdict(self)

    def to_yaml(self) -> str:
        """Convert to YAML string."""
        return yaml.dump(self.to_dict(), default_flow_style=False, sort_keys=False)

    def validate(self) -> List[str]:
        """Validate config. Returns list of errors (empty if valid)."""
        errors = []

        if self.decode.max_events is not None and self.decode.max_events < 0:
            errors.append(f"Invalid max_events: {self.decode.max_events}")

        if not 0 < self.decode.max_block_length <= 0xFFFFFFFF:
            errors.append(f"Invalid max_block_length: {self.decode.max_block_length}")

        if self.decode.max_waveform_samples <= 0:
            errors.append(
                f"Invalid max_waveform_samples: {self.decode.max_waveform_samples}"
            )

        if not isinstance(self.parallel.workers, int) or self.parallel.workers < 1:
            errors.append(f"Invalid workers: {self.parallel.workers}")

        if self.logging.level.upper() not in ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'):
            errors.append(f"Invalid logging level: {self.logging.level}")

        return errors


def load_config(path: Optional[Path] = None) -> ReaderConfig:
    """Load config from file or return defaults."""
    if path and Path(path).exists():
        return ReaderConfig.load(path)

    search_paths = [
        Path('./delila.yml'),
        Path('./delila.yaml'),
        Path.home() / '.delila' / 'config.yml',
    ]

    for p in search_paths:
        if p.exists():
            return ReaderConfig.load(p)

    return ReaderConfig()


def generate_default_config() -> str:
    """Generate default config as YAML."""
    return """# DELILA reader configuration
version: 1

decode:
  include_waveform: true
  decode_header: true
  max_events: null
  max_block_length: 100000000
  max_waveform_samples: 16384

validation:
  verify_checksum: true
  check_event_count: true
  check_data_bytes: true

parallel:
  workers: 1

logging:
  level: WARNING
"""
