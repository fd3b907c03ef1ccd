"""
Spotify OAuth token lifecycle.
Handles the Authorization Code with PKCE flow, refresh and persistence.
"""
import threading
import urllib.parse
import webbrowser
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import requests

from config import SpotifyConfig
from schemas import AuthSession, TokenRecord
from utils import setup_logger
from .oauth_server import AuthCallbackListener, ListenerCancelledError, ListenerTimeoutError
from .pkce import generate_pkce_pair
from .token_manager import CredentialStore


logger = setup_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenLifecycleManager:
    """
    Owns the current token record.

    Responsibilities:
    - Run the PKCE authorization flow
    - Refresh the access token shortly before it expires
    - Serialize every token mutation on one lock
    - Persist the record after every successful exchange or refresh

    Concurrent callers of ensure_valid() queue on the lock; the first one
    refreshes, the rest find a fresh token and return without a network call.
    None of the public methods raise: failures are logged and reported as False.
    """

    AUTH_URL = "https://accounts.spotify.com/authorize"
    TOKEN_URL = "https://accounts.spotify.com/api/token"
    REFRESH_SKEW = timedelta(minutes=1)

    def __init__(
        self,
        config: SpotifyConfig,
        store: Optional[CredentialStore] = None,
        session: Optional[requests.Session] = None,
        open_browser: Callable[[str], bool] = webbrowser.open,
        clock: Callable[[], datetime] = _utcnow
    ):
        """
        Initialize the token lifecycle manager.

        Args:
            config: Spotify API configuration
            store: Credential store (defaults to one at config.token_storage_path)
            session: HTTP session used for the token endpoint
            open_browser: Opens the authorization URL in the default handler
            clock: Returns the current UTC time
        """
        self.config = config
        self.store = store or CredentialStore(
            config.token_storage_path,
            encryption_key=config.token_encryption_key
        )
        self.session = session or requests.Session()
        self._open_browser = open_browser
        self._clock = clock

        self._lock = threading.Lock()
        self._tokens = TokenRecord()
        self._client_id = config.client_id

    @property
    def is_authenticated(self) -> bool:
        return self._tokens.is_authenticated

    @property
    def access_token(self) -> str:
        return self._tokens.access_token

    @property
    def client_id(self) -> str:
        return self._client_id

    @property
    def tokens(self) -> TokenRecord:
        """Snapshot of the current token record."""
        with self._lock:
            return TokenRecord(
                access_token=self._tokens.access_token,
                refresh_token=self._tokens.refresh_token,
                expires_at=self._tokens.expires_at
            )

    def set_client_id(self, client_id: str) -> None:
        with self._lock:
            self._client_id = client_id

    def load(self) -> None:
        """Load persisted tokens; an unusable file leaves the user signed out."""
        record = self.store.load()
        with self._lock:
            self._tokens = record

        if record.is_authenticated:
            logger.info("Loaded stored Spotify credentials")
        else:
            logger.info("No stored Spotify credentials, authentication required")

    def ensure_valid(self) -> bool:
        """
        Make sure the access token is usable.

        Returns:
            True if the token is valid for more than REFRESH_SKEW, otherwise
            the outcome of a refresh
        """
        with self._lock:
            if self._tokens.expires_at > self._clock() + self.REFRESH_SKEW:
                return True

            logger.debug("Access token expired or about to expire, refreshing...")
            return self._refresh_locked()

    def refresh(self) -> bool:
        """
        Unconditionally exchange the refresh token for a new access token.

        Returns:
            True on success; on failure the token record is unchanged
        """
        with self._lock:
            return self._refresh_locked()

    def _refresh_locked(self) -> bool:
        if not self._tokens.refresh_token:
            logger.warning("No refresh token available, need to re-authenticate")
            return False
        if not self._client_id:
            logger.warning("Spotify client id is not set, cannot refresh token")
            return False

        data = {
            'grant_type': 'refresh_token',
            'refresh_token': self._tokens.refresh_token,
            'client_id': self._client_id
        }

        tokens = self._post_token_request(data, "Token refresh")
        if tokens is None:
            return False

        try:
            access_token = tokens['access_token']
            expires_in = int(tokens['expires_in'])
        except (KeyError, TypeError, ValueError) as e:
            logger.error(f"Token refresh returned an unexpected body: {e!r}")
            return False

        # The refresh token rotates only when the response supplies one
        refresh_token = tokens.get('refresh_token') or self._tokens.refresh_token

        self._store_locked(TokenRecord(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=self._clock() + timedelta(seconds=expires_in)
        ))

        logger.info("Access token refreshed")
        return True

    def create_auth_session(self, client_id: str) -> AuthSession:
        """Start a new authorization attempt with a fresh PKCE pair."""
        code_verifier, code_challenge = generate_pkce_pair()
        return AuthSession(
            client_id=client_id,
            code_verifier=code_verifier,
            code_challenge=code_challenge,
            redirect_uri=self.config.redirect_uri
        )

    def get_authorization_url(self, auth_session: AuthSession) -> str:
        """
        Build authorization URL for OAuth flow.

        Args:
            auth_session: Authorization attempt state

        Returns:
            Authorization URL
        """
        params = {
            'client_id': auth_session.client_id,
            'response_type': 'code',
            'redirect_uri': auth_session.redirect_uri,
            'scope': self.config.scopes,
            'code_challenge_method': 'S256',
            'code_challenge': auth_session.code_challenge
        }

        return f"{self.AUTH_URL}?{urllib.parse.urlencode(params)}"

    def authenticate(
        self,
        client_id: str,
        cancel_event: Optional[threading.Event] = None
    ) -> bool:
        """
        Perform the full PKCE authorization flow.
        Opens the browser and waits for the redirect.

        Args:
            client_id: Spotify application client id
            cancel_event: Optional event that abandons the attempt when set

        Returns:
            True if tokens were obtained and saved
        """
        try:
            return self._authenticate(client_id, cancel_event)
        except Exception:
            logger.exception("Authentication failed unexpectedly")
            return False

    def _authenticate(self, client_id: str, cancel_event: Optional[threading.Event]) -> bool:
        if not client_id:
            logger.error("Spotify client id is required to authenticate")
            return False

        logger.info("Starting OAuth authentication...")

        with self._lock:
            self._client_id = client_id

        auth_session = self.create_auth_session(client_id)
        auth_url = self.get_authorization_url(auth_session)

        try:
            with AuthCallbackListener(auth_session.redirect_uri) as listener:
                logger.info("Opening browser for authorization...")
                if not self._open_browser(auth_url):
                    logger.warning(f"Could not open a browser, visit: {auth_url}")

                code = listener.wait_for_callback(
                    timeout=self.config.auth_timeout,
                    cancel_event=cancel_event
                )
        except ListenerTimeoutError as e:
            logger.warning(f"Authorization timed out: {e}")
            return False
        except ListenerCancelledError:
            logger.info("Authorization cancelled")
            return False
        except OSError as e:
            logger.error(f"Could not start callback listener on {auth_session.redirect_uri}: {e}")
            return False

        if not code:
            logger.error("Failed to get authorization code")
            return False

        return self._exchange_code_for_tokens(code, auth_session)

    def _exchange_code_for_tokens(self, code: str, auth_session: AuthSession) -> bool:
        """
        Exchange authorization code for access/refresh tokens.

        Args:
            code: Authorization code
            auth_session: Authorization attempt that produced the code
        """
        logger.info("Exchanging authorization code for tokens...")

        data = {
            'grant_type': 'authorization_code',
            'code': code,
            'redirect_uri': auth_session.redirect_uri,
            'client_id': auth_session.client_id,
            'code_verifier': auth_session.code_verifier
        }

        tokens = self._post_token_request(data, "Token exchange")
        if tokens is None:
            return False

        try:
            record = TokenRecord(
                access_token=tokens['access_token'],
                refresh_token=tokens['refresh_token'],
                expires_at=self._clock() + timedelta(seconds=int(tokens['expires_in']))
            )
        except (KeyError, TypeError, ValueError) as e:
            logger.error(f"Token exchange returned an unexpected body: {e!r}")
            return False

        with self._lock:
            self._store_locked(record)

        logger.info("Tokens obtained and saved")
        return True

    def clear_tokens(self) -> None:
        """Forget the credentials and persist the empty record."""
        with self._lock:
            self._store_locked(TokenRecord())
        logger.info("Disconnected from Spotify")

    def _post_token_request(self, data: dict, action: str) -> Optional[dict]:
        try:
            response = self.session.post(
                self.TOKEN_URL,
                data=data,
                timeout=self.config.request_timeout
            )
        except requests.exceptions.RequestException as e:
            logger.warning(f"{action} failed: {e}")
            return None

        if not 200 <= response.status_code < 300:
            logger.warning(f"{action} failed with status {response.status_code}")
            return None

        try:
            return response.json()
        except ValueError as e:
            logger.error(f"{action} returned invalid JSON: {e}")
            return None

    def _store_locked(self, record: TokenRecord) -> None:
        self._tokens = record
        try:
            self.store.save(record)
        except OSError as e:
            logger.error(f"Failed to save tokens: {e}")
