"""gptpart runtime configuration and settings."""
import os
from dataclasses import dataclass
from typing import Optional

from gptpart.core.errors import GptPartError

MIB = 1024 * 1024


class ConfigError(GptPartError):
    """Raised when an environment setting can't be parsed."""
    pass


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError:
        raise ConfigError(f"{name} must be a whole number of bytes, got {value!r}")


@dataclass
class GptPartConfig:
    """Runtime configuration for gptpart operations.

    Attributes:
        default_format: Snapshot format used when none is given (default: json)
        min_start: Default start of the first partition in bytes (default: 1 MiB)
        lock_dir: Directory holding per-device lock files (default: /run/gptpart,
            with a per-user directory used when it isn't writable)
        log_file: Optional log file path, enables file logging when set
        default_block_size: Block size assumed for image files (default: 512)
    """

    default_format: str = "json"
    # Leaves room for the protective MBR, GPT header and entry array
    min_start: int = MIB
    lock_dir: str = "/run/gptpart"
    log_file: Optional[str] = None
    default_block_size: int = 512

    @classmethod
    def from_env(cls) -> "GptPartConfig":
        """Create config from environment variables.

        Environment variables:
            GPTPART_DEFAULT_FORMAT: Snapshot format (json, yaml)
            GPTPART_MIN_START: Default first partition start, in bytes
            GPTPART_LOCK_DIR: Lock file directory
            GPTPART_LOG_FILE: Log file path
            GPTPART_DEFAULT_BLOCK_SIZE: Block size for image files

        Returns:
            GptPartConfig instance with values from environment or defaults

        Raises:
            ConfigError: If a numeric variable isn't a whole number
        """
        return cls(
            default_format=os.getenv("GPTPART_DEFAULT_FORMAT", cls.default_format).lower(),
            min_start=_env_int("GPTPART_MIN_START", cls.min_start),
            lock_dir=os.getenv("GPTPART_LOCK_DIR", cls.lock_dir),
            log_file=os.getenv("GPTPART_LOG_FILE") or None,
            default_block_size=_env_int("GPTPART_DEFAULT_BLOCK_SIZE", cls.default_block_size),
        )


# Global config instance (can be overridden)
_config: Optional[GptPartConfig] = None


def get_config() -> GptPartConfig:
    """Get the global gptpart configuration.

    Returns:
        GptPartConfig instance (creates from environment if not set)
    """
    global _config
    if _config is None:
        _config = GptPartConfig.from_env()
    return _config


def set_config(config: Optional[GptPartConfig]):
    """Set the global gptpart configuration.

    Args:
        config: GptPartConfig instance to use globally, or None to reload
            from the environment on next access
    """
    global _config
    _config = config
