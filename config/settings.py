"""
Centralized configuration from environment variables.
Loads all settings without hardcoding.
"""
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from dotenv import load_dotenv


PLAYER_MODES = ('local', 'webapi')


@dataclass
class SpotifyConfig:
    """Spotify API configuration."""
    client_id: str
    redirect_uri: str
    token_storage_path: Path
    scopes: str = "user-read-currently-playing user-read-playback-state"
    token_encryption_key: Optional[str] = None
    auth_timeout: float = 120.0
    request_timeout: float = 10.0

    @classmethod
    def from_env(cls) -> 'SpotifyConfig':
        """Load from environment variables."""
        return cls(
            client_id=os.getenv('SPOTIFY_CLIENT_ID', ''),
            redirect_uri=os.getenv('REDIRECT_URI', 'http://127.0.0.1:4202'),
            token_storage_path=Path(os.getenv('TOKEN_PATH', 'data/.spotify_tokens.json')),
            scopes=os.getenv('SPOTIFY_SCOPES', 'user-read-currently-playing user-read-playback-state'),
            token_encryption_key=os.getenv('TOKEN_ENCRYPTION_KEY') or None,
            auth_timeout=float(os.getenv('AUTH_TIMEOUT', '120')),
            request_timeout=float(os.getenv('REQUEST_TIMEOUT', '10'))
        )


@dataclass
class PlayerConfig:
    """Playback source and polling configuration."""
    mode: str = 'local'
    polling_interval_ms: int = 3000
    app_identifier: str = 'spotify'
    thumbnail_dir: Path = Path(tempfile.gettempdir())
    miss_threshold: int = 3

    @classmethod
    def from_env(cls) -> 'PlayerConfig':
        """Load from environment with defaults."""
        return cls(
            mode=os.getenv('PLAYER_MODE', 'local').strip().lower(),
            polling_interval_ms=int(os.getenv('POLLING_INTERVAL_MS', '3000')),
            app_identifier=os.getenv('PLAYER_APP_ID', 'spotify'),
            thumbnail_dir=Path(os.getenv('THUMBNAIL_DIR', tempfile.gettempdir()))
        )

    def validate(self) -> None:
        """Validate player settings."""
        if self.mode not in PLAYER_MODES:
            raise ValueError(f"PLAYER_MODE must be one of {PLAYER_MODES}, got '{self.mode}'")
        if self.polling_interval_ms <= 0:
            raise ValueError("POLLING_INTERVAL_MS must be positive")
        if self.miss_threshold < 1:
            raise ValueError("miss_threshold must be at least 1")


@dataclass
class AppConfig:
    """Application-wide configuration."""
    spotify: SpotifyConfig
    player: PlayerConfig
    log_level: str = "INFO"

    @classmethod
    def load(cls, env_file: Optional[str] = None) -> 'AppConfig':
        """
        Load all configuration.

        Args:
            env_file: Path to .env file (optional, will search parent dirs)
        """
        if env_file:
            load_dotenv(env_file)
        else:
            load_dotenv()

        config = cls(
            spotify=SpotifyConfig.from_env(),
            player=PlayerConfig.from_env(),
            log_level=os.getenv('LOG_LEVEL', 'INFO')
        )

        config.validate()

        return config

    def validate(self) -> None:
        """
        Validate critical settings.

        The client id is not required here: local mode
        never uses it, and remote mode reports it as a failed refresh.
        """
        self.player.validate()


# Singleton instance
_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Get or create configuration singleton."""
    global _config
    if _config is None:
        _config = AppConfig.load()
    return _config


def reset_config() -> None:
    """Reset configuration (useful for testing)."""
    global _config
    _config = None
