"""
Now-playing companion entry point.
Authenticates if needed, then polls the configured playback source.
"""
import argparse
import sys
import time
from typing import Optional

from clients import SpotifyAPIClient
from clients.auth import CredentialStore, TokenLifecycleManager
from config import AppConfig
from schemas import PlaybackConnectivity, TrackSnapshot
from scheduler import PollingScheduler
from sources import LocalSessionSource, PlaybackSource, RemoteApiSource, WindowsMediaSessionProvider
from utils import set_log_level, setup_logger


logger = setup_logger(__name__)


def format_position(ms: int) -> str:
    seconds = max(ms, 0) // 1000
    return f"{seconds // 60}:{seconds % 60:02d}"


def build_auth(config: AppConfig) -> TokenLifecycleManager:
    store = CredentialStore(
        config.spotify.token_storage_path,
        encryption_key=config.spotify.token_encryption_key
    )
    auth = TokenLifecycleManager(config.spotify, store=store)
    auth.load()
    return auth


def build_source(config: AppConfig, auth: Optional[TokenLifecycleManager]) -> PlaybackSource:
    """Create the playback source for the configured player mode."""
    if config.player.mode == 'webapi':
        return RemoteApiSource(SpotifyAPIClient(config.spotify, auth))

    return LocalSessionSource(
        WindowsMediaSessionProvider(),
        thumbnail_dir=config.player.thumbnail_dir,
        app_identifier=config.player.app_identifier
    )


def attach_console_listeners(scheduler: PollingScheduler) -> None:
    def on_track(snapshot: TrackSnapshot, is_new_track: bool) -> None:
        state = "▶" if snapshot.is_playing else "⏸"
        logger.info(
            f"{state} {snapshot.track_name} - {snapshot.artist_name} "
            f"[{format_position(snapshot.progress_ms)}/{format_position(snapshot.duration_ms)}]"
        )
        if is_new_track and snapshot.album_art_ref:
            logger.debug(f"   Album art: {snapshot.album_art_ref}")

    def on_connectivity(connectivity: PlaybackConnectivity) -> None:
        logger.info(f"Playback connectivity: {connectivity.value}")

    scheduler.on_track_updated(on_track)
    scheduler.on_playback_stopped(lambda: logger.info("⏹ Playback stopped"))
    scheduler.on_error(lambda message: logger.warning(f"⚠️  {message}"))
    scheduler.on_connectivity_changed(on_connectivity)


def ensure_authenticated(config: AppConfig, auth: TokenLifecycleManager) -> bool:
    if auth.is_authenticated:
        return True

    if not config.spotify.client_id:
        logger.error("SPOTIFY_CLIENT_ID is required for PLAYER_MODE=webapi")
        return False

    logger.info("Not connected to Spotify, starting browser login...")
    return auth.authenticate(config.spotify.client_id)


def main() -> int:
    parser = argparse.ArgumentParser(
        description='Show what Spotify is playing right now'
    )
    parser.add_argument(
        '--env-file',
        type=str,
        default=None,
        help='Path to a .env file (default: search parent directories)'
    )
    parser.add_argument(
        '--disconnect',
        action='store_true',
        help='Forget stored Spotify credentials and exit'
    )
    parser.add_argument(
        '--once',
        action='store_true',
        help='Poll a single time and exit'
    )

    args = parser.parse_args()

    try:
        config = AppConfig.load(args.env_file)
    except ValueError as e:
        logger.error(f"❌ Invalid configuration: {e}")
        return 1

    set_log_level(config.log_level)

    auth = None
    if config.player.mode == 'webapi' or args.disconnect:
        auth = build_auth(config)

    if args.disconnect:
        auth.clear_tokens()
        return 0

    if auth is not None and not ensure_authenticated(config, auth):
        logger.error("❌ Authentication failed. Check your client id and try again.")
        return 1

    try:
        source = build_source(config, auth)
    except RuntimeError as e:
        logger.error(f"❌ {e}")
        return 1

    scheduler = PollingScheduler(source, miss_threshold=config.player.miss_threshold)
    attach_console_listeners(scheduler)

    if args.once:
        scheduler.poll_once()
        scheduler.close()
        return 0

    scheduler.start(config.player.polling_interval_ms)

    try:
        while scheduler.is_running:
            time.sleep(1)
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    finally:
        scheduler.close()

    return 0


if __name__ == "__main__":
    sys.exit(main())
