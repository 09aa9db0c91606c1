"""
Configuration Management for livequery

🔧 Environment-aware defaults:
Engine defaults (page sizes, stale-result policy, polling timeouts, effect
flush limits) and logging settings. A configuration object is carried by the
ServiceContext handed to every service factory; nothing here is read from a
process-wide slot.
"""

import json
import logging
import os
from dataclasses import dataclass, field, asdict
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Union


class Environment(Enum):
    """Application environments"""
    DEVELOPMENT = "development"
    TESTING = "testing"
    PRODUCTION = "production"


class PageMode(Enum):
    """How a cursor result is merged into the page window"""
    ACCUMULATE = "accumulate"   # append to the items already shown
    REPLACE = "replace"         # show only the new page


@dataclass
class PaginationConfig:
    """Pagination engine defaults"""
    page_size: int = 10
    max_page_size: int = 100
    next_mode: PageMode = PageMode.ACCUMULATE
    discard_stale_results: bool = True


@dataclass
class PollingConfig:
    """Polling helper defaults, in seconds"""
    interval: float = 2.0
    timeout: float = 15.0


@dataclass
class ReactivityConfig:
    """Reactive runtime configuration"""
    max_flush_iterations: int = 100


@dataclass
class LoggingConfig:
    """Logging configuration"""
    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


@dataclass
class LiveQueryConfig:
    """Complete configuration"""
    environment: Environment = Environment.DEVELOPMENT
    debug: bool = False

    pagination: PaginationConfig = field(default_factory=PaginationConfig)
    polling: PollingConfig = field(default_factory=PollingConfig)
    reactivity: ReactivityConfig = field(default_factory=ReactivityConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def for_environment(cls, environment: Environment) -> 'LiveQueryConfig':
        """Create configuration for specific environment"""
        config = cls(environment=environment)

        if environment == Environment.DEVELOPMENT:
            config.debug = True
            config.logging.level = "DEBUG"

        elif environment == Environment.TESTING:
            config.logging.level = "WARNING"
            config.polling.interval = 0.01
            config.polling.timeout = 0.2

        elif environment == Environment.PRODUCTION:
            config.debug = False
            config.logging.level = "INFO"

        return config

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> 'LiveQueryConfig':
        """Create configuration from dictionary"""
        environment = Environment(config_dict.get("environment", Environment.DEVELOPMENT.value))
        config = cls.for_environment(environment)

        if "debug" in config_dict:
            config.debug = bool(config_dict["debug"])

        for section in ("pagination", "polling", "reactivity", "logging"):
            target = getattr(config, section)
            for key, value in config_dict.get(section, {}).items():
                if not hasattr(target, key):
                    continue
                if section == "pagination" and key == "next_mode":
                    value = PageMode(value)
                setattr(target, key, value)

        return config

    @classmethod
    def from_file(cls, config_path: Union[str, Path]) -> 'LiveQueryConfig':
        """Load configuration from a JSON file"""
        config_path = Path(config_path)

        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        if config_path.suffix != '.json':
            raise ValueError(f"Unsupported configuration file format: {config_path.suffix}")

        with open(config_path) as f:
            return cls.from_dict(json.load(f))

    @classmethod
    def from_environment(cls) -> 'LiveQueryConfig':
        """Create configuration from environment variables"""
        env_name = os.getenv('LIVEQUERY_ENV', 'development')
        config = cls.for_environment(Environment(env_name))

        if os.getenv('LIVEQUERY_DEBUG'):
            config.debug = os.getenv('LIVEQUERY_DEBUG').lower() == 'true'

        if os.getenv('LIVEQUERY_PAGE_SIZE'):
            config.pagination.page_size = int(os.getenv('LIVEQUERY_PAGE_SIZE'))

        if os.getenv('LIVEQUERY_DISCARD_STALE'):
            config.pagination.discard_stale_results = os.getenv('LIVEQUERY_DISCARD_STALE').lower() == 'true'

        if os.getenv('LIVEQUERY_POLL_INTERVAL'):
            config.polling.interval = float(os.getenv('LIVEQUERY_POLL_INTERVAL'))

        if os.getenv('LIVEQUERY_POLL_TIMEOUT'):
            config.polling.timeout = float(os.getenv('LIVEQUERY_POLL_TIMEOUT'))

        if os.getenv('LIVEQUERY_LOG_LEVEL'):
            config.logging.level = os.getenv('LIVEQUERY_LOG_LEVEL').upper()

        return config

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary"""
        data = asdict(self)
        data["environment"] = self.environment.value
        data["pagination"]["next_mode"] = self.pagination.next_mode.value
        return data


def configure_logging(config: Optional[LoggingConfig] = None) -> logging.Logger:
    """Apply level and format to the ``livequery`` logger"""
    config = config or LoggingConfig()
    root = logging.getLogger("livequery")
    root.setLevel(config.level)
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(config.format))
        root.addHandler(handler)
    return root


__all__ = [
    "LiveQueryConfig", "Environment", "PageMode", "PaginationConfig",
    "PollingConfig", "ReactivityConfig", "LoggingConfig", "configure_logging",
]
