"""
Authentication module for Spotify OAuth.
Handles the PKCE flow, token lifecycle, and persistence.
"""
from .spotify_auth import TokenLifecycleManager
from .token_manager import CredentialStore
from .oauth_server import (
    AuthCallbackListener,
    ListenerTimeoutError,
    ListenerCancelledError,
    listen_once
)
from .pkce import generate_pkce_pair, generate_code_verifier, generate_code_challenge

__all__ = [
    'TokenLifecycleManager',
    'CredentialStore',
    'AuthCallbackListener',
    'ListenerTimeoutError',
    'ListenerCancelledError',
    'listen_once',
    'generate_pkce_pair',
    'generate_code_verifier',
    'generate_code_challenge'
]
