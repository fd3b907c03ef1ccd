"""
PKCE (Proof Key for Code Exchange) helpers.
Stateless, safe to call from any thread.
"""
import base64
import hashlib
import secrets
from typing import Tuple


# 96 random bytes encode to a 128-character verifier, the RFC 7636 maximum
VERIFIER_BYTES = 96


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode('ascii').rstrip('=')


def generate_code_verifier(num_bytes: int = VERIFIER_BYTES) -> str:
    """Generate a PKCE code verifier from a cryptographically secure source."""
    return _b64url(secrets.token_bytes(num_bytes))


def generate_code_challenge(verifier: str) -> str:
    """Generate the S256 code challenge for a verifier."""
    digest = hashlib.sha256(verifier.encode('ascii')).digest()
    return _b64url(digest)


def generate_pkce_pair() -> Tuple[str, str]:
    """
    Generate a fresh verifier/challenge pair.

    Returns:
        Tuple of (code_verifier, code_challenge)
    """
    verifier = generate_code_verifier()
    return verifier, generate_code_challenge(verifier)
