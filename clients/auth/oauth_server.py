"""
OAuth Callback Listener.
Temporary loopback HTTP server that catches the OAuth redirect.
"""
import html
import threading
import time
import urllib.parse
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Optional

from utils import setup_logger


logger = setup_logger(__name__)

# Granularity at which a waiting listener notices cancellation
POLL_SLICE_SECONDS = 0.25

# Longest a connected client may stay silent before it is dropped
REQUEST_READ_TIMEOUT_SECONDS = 5.0

PAGE_TEMPLATE = """<html>
<head><title>Spotify Authentication</title></head>
<body style="font-family: 'Segoe UI', Arial; background: #1E1E2E; color: white; text-align: center; padding: 50px;">
    <h1 style="color: {color};">{title}</h1>
    <p>{message}</p>
</body>
</html>
"""


class ListenerTimeoutError(Exception):
    """No redirect arrived within the allowed window."""
    pass


class ListenerCancelledError(Exception):
    """The wait was cancelled before a redirect arrived."""
    pass


class _CallbackHTTPServer(HTTPServer):
    """HTTPServer that records the single callback it receives."""

    def __init__(self, server_address):
        super().__init__(server_address, OAuthCallbackHandler)
        self.callback_received = False
        self.authorization_code: Optional[str] = None
        self.error: Optional[str] = None
        self.read_timeout: float = REQUEST_READ_TIMEOUT_SECONDS


class OAuthCallbackHandler(BaseHTTPRequestHandler):
    """HTTP request handler for the OAuth redirect."""

    def setup(self):
        # A connection that never sends a request must not stall the wait loop
        self.timeout = self.server.read_timeout
        super().setup()

    def do_GET(self):
        """Handle GET request (OAuth callback)."""
        query_params = urllib.parse.parse_qs(urllib.parse.urlparse(self.path).query)

        code = query_params.get('code', [None])[0]
        error = query_params.get('error', [None])[0]

        self.server.callback_received = True
        self.server.authorization_code = code
        self.server.error = error

        if error or not code:
            error = error or 'No authorization code received'
            page = PAGE_TEMPLATE.format(
                color='#F87171',
                title='Authentication Failed',
                message=html.escape(error)
            )
            logger.error(f"OAuth error: {error}")
        else:
            page = PAGE_TEMPLATE.format(
                color='#1DB954',
                title='Connected to Spotify!',
                message='You can close this tab.'
            )
            logger.info("Authorization code received")

        body = page.encode('utf-8')
        self.send_response(200)
        self.send_header('Content-Type', 'text/html; charset=utf-8')
        self.send_header('Content-Length', str(len(body)))
        self.send_header('Connection', 'close')
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format, *args):
        """Suppress default server logging."""
        pass


class AuthCallbackListener:
    """
    Loopback listener for a single OAuth redirect.

    The socket is bound when the listener is opened, so the browser can be
    sent to the authorization URL only after the port is ready. Use it as a
    context manager so the port is released on every exit path:

        with AuthCallbackListener(redirect_uri) as listener:
            webbrowser.open(auth_url)
            code = listener.wait_for_callback(timeout=120)
    """

    def __init__(self, redirect_uri: str):
        """
        Initialize callback listener.

        Args:
            redirect_uri: Registered redirect URI (e.g., http://127.0.0.1:4202)
        """
        self.redirect_uri = redirect_uri

        parsed = urllib.parse.urlparse(redirect_uri)
        self.host = parsed.hostname or '127.0.0.1'
        self.port = parsed.port or 80

        self._server: Optional[_CallbackHTTPServer] = None

    @property
    def is_bound(self) -> bool:
        return self._server is not None

    def open(self) -> None:
        """Bind the loopback socket."""
        if self._server is not None:
            return
        self._server = _CallbackHTTPServer((self.host, self.port))
        logger.info(f"Callback listener bound on {self.host}:{self.port}")

    def close(self) -> None:
        """Release the socket. Safe to call more than once."""
        if self._server is None:
            return
        self._server.server_close()
        self._server = None
        logger.debug(f"Callback listener on {self.host}:{self.port} released")

    def __enter__(self) -> 'AuthCallbackListener':
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def wait_for_callback(
        self,
        timeout: float = 120.0,
        cancel_event: Optional[threading.Event] = None
    ) -> Optional[str]:
        """
        Block until exactly one redirect request arrives.

        Args:
            timeout: Maximum wait time in seconds
            cancel_event: Optional event that aborts the wait when set

        Returns:
            Authorization code, or None if the redirect carried an error
            or no code

        Raises:
            ListenerTimeoutError: No request arrived within timeout
            ListenerCancelledError: cancel_event was set first
        """
        if self._server is None:
            raise RuntimeError("Listener is not open")

        server = self._server
        deadline = time.monotonic() + timeout

        logger.info("Waiting for authorization...")

        while not server.callback_received:
            if cancel_event is not None and cancel_event.is_set():
                raise ListenerCancelledError("Authorization cancelled")

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise ListenerTimeoutError(f"No authorization callback within {timeout:.0f}s")

            server.timeout = min(POLL_SLICE_SECONDS, remaining)
            server.read_timeout = min(REQUEST_READ_TIMEOUT_SECONDS, remaining)
            server.handle_request()

        return server.authorization_code if not server.error else None


def listen_once(
    redirect_uri: str,
    timeout: float = 120.0,
    cancel_event: Optional[threading.Event] = None
) -> Optional[str]:
    """Bind, wait for one redirect and release the port."""
    with AuthCallbackListener(redirect_uri) as listener:
        return listener.wait_for_callback(timeout=timeout, cancel_event=cancel_event)
