from __future__ import annotations

import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from ido_extractor.domain.contracts import EncryptedPayload


PBKDF2_ITERATIONS = 100_000
KEY_LENGTH_BYTES = 32
SALT_LENGTH_BYTES = 16
IV_LENGTH_BYTES = 12


class DecryptionError(ValueError):
    """Wrong password, tampered ciphertext or malformed hex input."""


def derive_key(password: str, salt: bytes) -> bytes:
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH_BYTES,
        salt=salt,
        iterations=PBKDF2_ITERATIONS,
    )
    return kdf.derive(str(password or "").encode("utf-8"))


def encrypt(data: str, password: str) -> EncryptedPayload:
    salt = os.urandom(SALT_LENGTH_BYTES)
    iv = os.urandom(IV_LENGTH_BYTES)
    key = derive_key(password, salt)
    # AESGCM appends the 16 byte tag to the ciphertext, same layout as WebCrypto.
    ciphertext = AESGCM(key).encrypt(iv, str(data).encode("utf-8"), None)
    return EncryptedPayload(encrypted=ciphertext.hex(), salt=salt.hex(), iv=iv.hex())


def decrypt(encrypted_hex: str, salt_hex: str, iv_hex: str, password: str) -> str:
    try:
        ciphertext = bytes.fromhex(str(encrypted_hex or ""))
        salt = bytes.fromhex(str(salt_hex or ""))
        iv = bytes.fromhex(str(iv_hex or ""))
    except ValueError as exc:
        raise DecryptionError("Encrypted payload is not valid hex.") from exc
    if not ciphertext or not salt or not iv:
        raise DecryptionError("Encrypted payload is incomplete.")

    key = derive_key(password, salt)
    try:
        plaintext = AESGCM(key).decrypt(iv, ciphertext, None)
    except (InvalidTag, ValueError) as exc:
        raise DecryptionError("Unable to decrypt payload with the given password.") from exc
    try:
        return plaintext.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise DecryptionError("Decrypted payload is not valid text.") from exc
