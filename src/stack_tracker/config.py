"""Configuration management for Stack Tracker."""

import os
from dataclasses import dataclass, field
from pathlib import Path


def _default_base_dir() -> Path:
    """Resolve the data root. STACK_TRACKER_HOME wins over the home directory."""
    override = os.environ.get("STACK_TRACKER_HOME", "")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".stack-tracker"


@dataclass
class Config:
    """Application configuration."""

    # Paths
    base_dir: Path = field(default_factory=_default_base_dir)
    data_dir: Path = field(init=False)
    exports_dir: Path = field(init=False)
    remote_db_path: Path = field(init=False)
    session_file: Path = field(init=False)

    # Remote service settings
    remote_url: str = field(default_factory=lambda: os.environ.get("STACK_TRACKER_REMOTE_URL", ""))
    remote_api_key: str = field(default_factory=lambda: os.environ.get("STACK_TRACKER_API_KEY", ""))
    request_timeout: float = 15.0

    # Storage keys for the local JSON blobs
    holdings_key: str = "stacktracker_holdings"
    pending_key: str = "stacktracker_pending_actions"

    def __post_init__(self) -> None:
        self.base_dir = Path(self.base_dir)
        self.data_dir = self.base_dir / "data"
        self.exports_dir = self.base_dir / "exports"
        self.remote_db_path = self.data_dir / "remote.db"
        self.session_file = self.data_dir / "session.yaml"

        # Ensure directories exist
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.exports_dir.mkdir(parents=True, exist_ok=True)

    @property
    def uses_http_remote(self) -> bool:
        return bool(self.remote_url)


def get_config() -> Config:
    """Get the default configuration."""
    return Config()
