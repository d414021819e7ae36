"""Configuration management for Typing Stats."""

import json
import logging
import uuid
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Optional

from platformdirs import user_config_dir, user_data_dir, user_log_dir

__all__ = [
    "Config",
    "RemoteSettings",
    "PersistenceSettings",
    "setup_logging",
    "DEFAULT_API_URL",
    "DISPLAY_KEYSTROKES",
    "DISPLAY_WORDS",
]

logger = logging.getLogger(__name__)

APP_NAME = "Typing Stats"
APP_AUTHOR = "TypingStats"

DEFAULT_API_URL = "http://127.0.0.1:8001/api/stats"

# Remote sync
DEFAULT_POLL_INTERVAL = 60  # seconds
MIN_POLL_INTERVAL = 15
DEFAULT_QUOTA_BYTES = 1_000_000  # ~1 MB of serialized records

# Local persistence
DEFAULT_DEBOUNCE_SECONDS = 1.0

DISPLAY_KEYSTROKES = "keystrokes"
DISPLAY_WORDS = "words"


@dataclass
class RemoteSettings:
    """Remote store connection settings."""

    api_url: str = DEFAULT_API_URL
    enabled: bool = True
    poll_interval_seconds: int = DEFAULT_POLL_INTERVAL
    quota_bytes: int = DEFAULT_QUOTA_BYTES
    timeout: int = 30
    compress: bool = True  # Use gzip compression for uploads


@dataclass
class PersistenceSettings:
    """Local persistence settings."""

    debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS


@dataclass
class Config:
    """Main configuration object."""

    device_id: Optional[str] = None
    display_mode: str = DISPLAY_KEYSTROKES
    remote: RemoteSettings = field(default_factory=RemoteSettings)
    persistence: PersistenceSettings = field(default_factory=PersistenceSettings)
    auto_start: bool = False
    debug_mode: bool = False

    @classmethod
    def get_config_dir(cls) -> Path:
        """Get the configuration directory path."""
        return Path(user_config_dir(APP_NAME, APP_AUTHOR))

    @classmethod
    def get_data_dir(cls) -> Path:
        """Get the data directory path (for the SQLite store)."""
        return Path(user_data_dir(APP_NAME, APP_AUTHOR))

    @classmethod
    def get_log_dir(cls) -> Path:
        """Get the log directory path."""
        return Path(user_log_dir(APP_NAME, APP_AUTHOR))

    @classmethod
    def get_config_file(cls) -> Path:
        """Get the config file path."""
        return cls.get_config_dir() / "config.json"

    @classmethod
    def load(cls, config_file: Optional[Path] = None) -> "Config":
        """Load config from file, or return defaults."""
        config_file = config_file or cls.get_config_file()
        if config_file.exists():
            try:
                with open(config_file, "r") as f:
                    data = json.load(f)
                return cls._from_dict(data)
            except Exception as e:
                logger.warning(f"Failed to load config: {e}, using defaults")
        return cls()

    @classmethod
    def _from_dict(cls, data: dict) -> "Config":
        """Create Config from dictionary, ignoring unknown keys."""
        remote_data = data.pop("remote", None) or {}
        persistence_data = data.pop("persistence", None) or {}

        remote = RemoteSettings(
            **{k: v for k, v in remote_data.items() if k in RemoteSettings.__dataclass_fields__}
        )
        remote.poll_interval_seconds = max(MIN_POLL_INTERVAL, remote.poll_interval_seconds)

        config = cls(
            remote=remote,
            persistence=PersistenceSettings(
                **{k: v for k, v in persistence_data.items() if k in PersistenceSettings.__dataclass_fields__}
            ),
            **{
                k: v
                for k, v in data.items()
                if k in cls.__dataclass_fields__ and k not in ("remote", "persistence")
            },
        )
        if config.display_mode not in (DISPLAY_KEYSTROKES, DISPLAY_WORDS):
            config.display_mode = DISPLAY_KEYSTROKES
        return config

    def save_to(self, config_file: Path) -> None:
        config_file.parent.mkdir(parents=True, exist_ok=True)
        with open(config_file, "w") as f:
            json.dump(asdict(self), f, indent=2)
        logger.info(f"Config saved to {config_file}")

    def save(self) -> None:
        """Save config to the default location."""
        self.save_to(self.get_config_file())

    def ensure_device_id(self) -> str:
        """Return this installation's device id, generating it on first run."""
        if not self.device_id:
            self.device_id = str(uuid.uuid4())
            logger.info(f"Generated device id {self.device_id}")
            try:
                self.save()
            except OSError as e:
                logger.warning(f"Failed to persist device id: {e}")
        return self.device_id

    def toggle_display_mode(self) -> str:
        self.display_mode = (
            DISPLAY_WORDS if self.display_mode == DISPLAY_KEYSTROKES else DISPLAY_KEYSTROKES
        )
        return self.display_mode


def setup_logging(debug: bool = False) -> None:
    """Configure logging."""
    log_dir = Config.get_log_dir()
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "typing-stats.log"

    level = logging.DEBUG if debug else logging.INFO
    format_str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=level,
        format=format_str,
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler(),
        ],
    )

    # Reduce noise from libraries
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("requests").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
