"""
RYT DID Encryption Service
AES-256-CBC sealing of identity records before they are published in
public token metadata.
"""

import os
import json
import base64
import hashlib
from typing import Any, Dict, Optional, Union
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.backends import default_backend

from did_onboarding.config import config


ALGORITHM = "AES-256-CBC"


class EncryptionService:
    """AES-256-CBC encryption service for identity records."""

    def __init__(self, master_key: str = None):
        """
        Initialize encryption service.

        Args:
            master_key: Hex-encoded 32-byte master key (256 bits)
        """
        key_hex = master_key or config.MASTER_KEY
        if not key_hex:
            raise ValueError("Master key not configured")

        self.key = bytes.fromhex(key_hex)
        if len(self.key) != 32:
            raise ValueError("Master key must be 32 bytes (256 bits)")

    def encrypt(self, data: bytes) -> bytes:
        """
        Encrypt data using AES-256-CBC.

        Returns:
            Base64-encoded ciphertext (IV + encrypted data)
        """
        iv = os.urandom(16)

        padder = padding.PKCS7(128).padder()
        padded_data = padder.update(data) + padder.finalize()

        cipher = Cipher(
            algorithms.AES(self.key),
            modes.CBC(iv),
            backend=default_backend()
        )
        encryptor = cipher.encryptor()
        ciphertext = encryptor.update(padded_data) + encryptor.finalize()

        return base64.b64encode(iv + ciphertext)

    def decrypt(self, encrypted_data: Union[bytes, str]) -> bytes:
        """
        Decrypt data using AES-256-CBC.

        Args:
            encrypted_data: Base64-encoded ciphertext (IV + encrypted data)
        """
        combined = base64.b64decode(encrypted_data)
        iv = combined[:16]
        ciphertext = combined[16:]

        cipher = Cipher(
            algorithms.AES(self.key),
            modes.CBC(iv),
            backend=default_backend()
        )
        decryptor = cipher.decryptor()
        padded_data = decryptor.update(ciphertext) + decryptor.finalize()

        unpadder = padding.PKCS7(128).unpadder()
        return unpadder.update(padded_data) + unpadder.finalize()

    def seal_record(self, record: Dict[str, Any]) -> str:
        """Encrypt a JSON-serializable record into a base64 string."""
        payload = json.dumps(record, sort_keys=True).encode("utf-8")
        return self.encrypt(payload).decode("ascii")

    def open_record(self, sealed: str) -> Dict[str, Any]:
        """Inverse of seal_record."""
        return json.loads(self.decrypt(sealed).decode("utf-8"))


def get_encryption_service() -> Optional[EncryptionService]:
    """Encryption service for the configured master key, or None if unset."""
    if not config.is_encryption_configured():
        return None
    return EncryptionService(config.MASTER_KEY)


def compute_sha256(data: Union[bytes, str]) -> str:
    """Compute SHA256 hash of data."""
    if isinstance(data, str):
        data = data.encode('utf-8')
    return hashlib.sha256(data).hexdigest()


def compute_record_hash(record: Dict[str, Any]) -> str:
    """SHA256 over the canonical JSON form of a record."""
    return compute_sha256(json.dumps(record, sort_keys=True))
