"""Owner credential storage.

Airtable OAuth tokens are stored Fernet-encrypted on the owner row.
Acquiring and refreshing tokens happens outside this service.
"""

import logging
from datetime import datetime, timedelta, timezone

from cryptography.fernet import Fernet, InvalidToken
from sqlalchemy.orm import Session

from formbridge.core.config import settings
from formbridge.db.models import Owner

logger = logging.getLogger(__name__)


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# Token Encryption
# ============================================================================


def _get_fernet() -> Fernet:
    """Get Fernet instance for encryption/decryption."""
    key = settings.FERNET_KEY
    if not key:
        raise ValueError("FERNET_KEY not configured")
    return Fernet(key.encode())


def encrypt_token(token: str) -> str:
    """Encrypt a token for storage."""
    return _get_fernet().encrypt(token.encode()).decode()


def decrypt_token(encrypted_token: str) -> str:
    """Decrypt a stored token."""
    return _get_fernet().decrypt(encrypted_token.encode()).decode()


# ============================================================================
# Owner tokens
# ============================================================================


def save_owner_tokens(
    db: Session,
    owner: Owner,
    access_token: str,
    refresh_token: str | None = None,
    expires_in: int | None = None,
) -> Owner:
    """Store (or replace) an owner's Airtable tokens."""
    owner.access_token_encrypted = encrypt_token(access_token)
    if refresh_token:
        owner.refresh_token_encrypted = encrypt_token(refresh_token)
    owner.token_expires_at = _now_utc() + timedelta(seconds=expires_in) if expires_in else None
    db.commit()
    db.refresh(owner)
    return owner


def get_access_token(owner: Owner | None) -> str | None:
    """
    Decrypted access token, or None when the owner cannot call Airtable.

    None covers: no owner, inactive owner, no stored token, expired token,
    and a token that no longer decrypts (rotated FERNET_KEY).
    """
    if owner is None or not owner.has_valid_token():
        return None
    try:
        return decrypt_token(owner.access_token_encrypted)
    except InvalidToken:
        logger.warning("Stored Airtable token could not be decrypted: owner_id=%s", owner.id)
        return None
