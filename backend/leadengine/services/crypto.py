"""Encryption of lead contact fields at rest, plus blind lookup keys."""

import base64
import hashlib

from cryptography.fernet import Fernet, InvalidToken
import structlog

from leadengine.config import settings

logger = structlog.get_logger()

ENCRYPTED_CONTACT_FIELDS = ("email", "phone", "alternate_phone")
_PREFIX = "enc:"


def _get_fernet(key: str) -> Fernet:
    # Accept any passphrase; a non-Fernet key is stretched deterministically.
    # In production, always set a proper Fernet key via env
    if len(key) < 32:
        derived = hashlib.sha256(key.encode()).digest()
        key = base64.urlsafe_b64encode(derived).decode()
    try:
        return Fernet(key.encode())
    except ValueError:
        derived = hashlib.sha256(key.encode()).digest()
        return Fernet(base64.urlsafe_b64encode(derived))


def contact_key(value: str | None) -> str | None:
    """Deterministic lookup key for an email or phone number."""
    if not value:
        return None
    normalized = value.strip().lower()
    if not normalized:
        return None
    return hashlib.sha256(normalized.encode()).hexdigest()


class ContactCipher:
    """Encrypts/decrypts the contact block of a lead document.

    Ciphertext carries an ``enc:`` prefix so plaintext written before
    encryption was enabled still reads back unchanged.
    """

    def __init__(self, enabled: bool | None = None, key: str | None = None):
        self.enabled = settings.encrypt_contact_data if enabled is None else enabled
        self._fernet = _get_fernet(key or settings.encryption_key)

    def encrypt_value(self, plaintext: str | None) -> str | None:
        if not plaintext or not self.enabled or plaintext.startswith(_PREFIX):
            return plaintext
        return _PREFIX + self._fernet.encrypt(plaintext.encode()).decode()

    def decrypt_value(self, stored: str | None) -> str | None:
        if not stored or not stored.startswith(_PREFIX):
            return stored
        try:
            return self._fernet.decrypt(stored[len(_PREFIX):].encode()).decode()
        except InvalidToken:
            logger.error("contact_decrypt_failed")
            return None

    def encrypt_contact(self, contact: dict) -> dict:
        out = dict(contact)
        for field in ENCRYPTED_CONTACT_FIELDS:
            out[field] = self.encrypt_value(out.get(field))
        return out

    def decrypt_contact(self, contact: dict) -> dict:
        out = dict(contact)
        for field in ENCRYPTED_CONTACT_FIELDS:
            out[field] = self.decrypt_value(out.get(field))
        return out
