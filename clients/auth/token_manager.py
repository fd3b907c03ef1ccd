"""
Credential store for persisting OAuth tokens.
Handles token persistence to disk, optionally encrypted at rest.
"""
import json
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

from schemas import TokenRecord, EPOCH
from utils import setup_logger


logger = setup_logger(__name__)


class CredentialStore:
    """
    Loads and saves the token record.

    Stores tokens as a JSON document with an ISO-8601 expiry timestamp.
    When an encryption key is given the document is Fernet-encrypted.
    A missing, unreadable or corrupt file loads as an empty record.
    """

    def __init__(self, storage_path: Path, encryption_key: Optional[str] = None):
        """
        Initialize credential store.

        Args:
            storage_path: Path to token storage file
            encryption_key: Optional urlsafe-base64 Fernet key
        """
        self.storage_path = Path(storage_path)
        self._fernet = Fernet(encryption_key.encode('ascii')) if encryption_key else None

    def save(self, record: TokenRecord) -> None:
        """
        Persist a token record atomically.

        Args:
            record: Token record to write

        Raises:
            OSError: If the file cannot be written
        """
        token_data = {
            'access_token': record.access_token,
            'refresh_token': record.refresh_token,
            'expires_at': record.expires_at.isoformat(),
            'saved_at': datetime.now(timezone.utc).isoformat()
        }

        payload = json.dumps(token_data, indent=2).encode('utf-8')
        if self._fernet is not None:
            payload = self._fernet.encrypt(payload)

        self.storage_path.parent.mkdir(parents=True, exist_ok=True)

        # Write next to the target so os.replace stays on one filesystem
        fd, tmp_path = tempfile.mkstemp(
            dir=str(self.storage_path.parent),
            prefix=f".{self.storage_path.name}.",
            suffix='.tmp'
        )
        try:
            with os.fdopen(fd, 'wb') as f:
                f.write(payload)
            os.replace(tmp_path, self.storage_path)
        except Exception:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

        logger.debug(f"Tokens saved to {self.storage_path}")

    def load(self) -> TokenRecord:
        """
        Load the token record from storage.

        Returns:
            Stored record, or an empty record if none is usable
        """
        if not self.storage_path.exists():
            logger.debug("No stored tokens found")
            return TokenRecord()

        try:
            payload = self.storage_path.read_bytes()
            if self._fernet is not None:
                payload = self._fernet.decrypt(payload)

            token_data = json.loads(payload.decode('utf-8'))
            record = self._record_from_dict(token_data)
        except InvalidToken:
            logger.warning("Stored tokens could not be decrypted, treating as signed out")
            return TokenRecord()
        except (OSError, ValueError, TypeError, AttributeError) as e:
            logger.warning(f"Stored tokens are unreadable ({e}), treating as signed out")
            return TokenRecord()

        logger.debug("Tokens loaded from storage")
        return record

    def clear(self) -> None:
        """Persist an empty record."""
        self.save(TokenRecord())
        logger.info("Tokens cleared")

    @staticmethod
    def _record_from_dict(token_data: dict) -> TokenRecord:
        expires_raw = token_data.get('expires_at')
        expires_at = EPOCH
        if expires_raw:
            expires_at = datetime.fromisoformat(expires_raw)
            if expires_at.tzinfo is None:
                expires_at = expires_at.replace(tzinfo=timezone.utc)

        return TokenRecord(
            access_token=token_data.get('access_token') or '',
            refresh_token=token_data.get('refresh_token') or '',
            expires_at=expires_at
        )
