"""AES-256-CBC encryption for stored gateway credentials.

Ciphertext is stored as ``{"encrypted": <hex>, "iv": <hex>}``. Keys come from
an ordered candidate list: the first key encrypts, decryption tries each key
in turn. The index of the key that succeeded tells the caller whether the
value should be re-encrypted with the primary key.
"""

import hashlib
import os
from dataclasses import dataclass

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from paybroker.core.config import Settings, get_settings
from paybroker.core.exceptions import ConfigurationError, CredentialDecryptionError

IV_LENGTH = 16


@dataclass(frozen=True)
class DecryptResult:
    plaintext: str
    key_index: int

    @property
    def needs_rotation(self) -> bool:
        return self.key_index > 0


def derive_key(raw: str) -> bytes:
    """Use a 32-byte key as-is; hash anything else down to 32 bytes."""
    encoded = raw.encode("utf-8")
    if len(encoded) == 32:
        return encoded
    return hashlib.sha256(encoded).digest()


def candidate_keys(settings: Settings | None = None) -> list[bytes]:
    settings = settings or get_settings()
    raw: list[str] = []
    if settings.credentials_encryption_keys:
        raw.extend(k.strip() for k in settings.credentials_encryption_keys.split(","))
    else:
        raw.append(settings.credentials_encryption_key.strip())
        raw.append(settings.credentials_encryption_key_old.strip())

    keys: list[bytes] = []
    for value in raw:
        if not value:
            continue
        key = derive_key(value)
        if key not in keys:
            keys.append(key)
    return keys


def is_encrypted_value(value: object) -> bool:
    return (
        isinstance(value, dict)
        and isinstance(value.get("encrypted"), str)
        and isinstance(value.get("iv"), str)
    )


class CredentialCipher:
    def __init__(self, keys: list[bytes]):
        self._keys = keys

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "CredentialCipher":
        return cls(candidate_keys(settings))

    @property
    def configured(self) -> bool:
        return bool(self._keys)

    def encrypt(self, plaintext: str) -> dict[str, str]:
        if not self._keys:
            raise ConfigurationError("Credential encryption key is not configured")
        iv = os.urandom(IV_LENGTH)
        padder = padding.PKCS7(algorithms.AES.block_size).padder()
        padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()
        encryptor = Cipher(algorithms.AES(self._keys[0]), modes.CBC(iv)).encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()
        return {"encrypted": ciphertext.hex(), "iv": iv.hex()}

    def decrypt(self, value: dict) -> DecryptResult:
        if not self._keys:
            raise ConfigurationError("Credential encryption key is not configured")
        if not is_encrypted_value(value):
            raise CredentialDecryptionError("Stored credential is not an encrypted value")

        try:
            ciphertext = bytes.fromhex(value["encrypted"])
            iv = bytes.fromhex(value["iv"])
        except ValueError:
            raise CredentialDecryptionError("Stored credential is corrupt") from None

        for index, key in enumerate(self._keys):
            try:
                decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
                padded = decryptor.update(ciphertext) + decryptor.finalize()
                unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
                plaintext = unpadder.update(padded) + unpadder.finalize()
                return DecryptResult(plaintext=plaintext.decode("utf-8"), key_index=index)
            except (ValueError, UnicodeDecodeError):
                continue

        raise CredentialDecryptionError("Stored credential could not be decrypted with any configured key")
