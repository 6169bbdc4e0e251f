"""
Symmetric cipher used by the credential vault.

Tokens have the form ``base64(iv) + ":" + base64(ciphertext)`` where the
ciphertext is AES-256-CBC with PKCS7 padding and the key is the SHA-256 digest
of the operator supplied secret.

NOTE: CBC carries no authentication tag, so some tampering goes unnoticed and
decrypts to different bytes. Switching to an AEAD mode changes the stored
token format and needs a migration of existing records.
"""
import base64
import binascii
import hashlib
import os

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from autoflow.errors import DecryptionError

KEY_SIZE = 32
IV_SIZE = 16
SEPARATOR = ":"


def derive_key(secret: str) -> bytes:
    return hashlib.sha256(str(secret).encode("utf-8")).digest()[:KEY_SIZE]


def encrypt_string(plaintext: str, secret: str) -> str:
    """
    Encrypts a string with a fresh random IV, so equal inputs give different tokens.
    """
    iv = os.urandom(IV_SIZE)
    padder = padding.PKCS7(algorithms.AES.block_size).padder()
    padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()

    encryptor = Cipher(algorithms.AES(derive_key(secret)), modes.CBC(iv)).encryptor()
    encrypted = encryptor.update(padded) + encryptor.finalize()

    return (
        base64.b64encode(iv).decode("ascii")
        + SEPARATOR
        + base64.b64encode(encrypted).decode("ascii")
    )


def decrypt_string(token: str, secret: str) -> str:
    """
    Decrypts a token produced by encrypt_string.

    Raises DecryptionError for malformed tokens, a wrong secret (detected
    through padding or UTF-8 failures) and corrupted ciphertext.
    """
    if not isinstance(token, str) or SEPARATOR not in token:
        raise DecryptionError("Malformed encrypted token")

    iv_b64, data_b64 = token.split(SEPARATOR, 1)
    try:
        iv = base64.b64decode(iv_b64, validate=True)
        encrypted = base64.b64decode(data_b64, validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecryptionError("Encrypted token is not valid base64") from e

    if len(iv) != IV_SIZE:
        raise DecryptionError("Encrypted token has an invalid IV")
    if not encrypted or len(encrypted) % IV_SIZE:
        raise DecryptionError("Encrypted token has an invalid ciphertext length")

    decryptor = Cipher(algorithms.AES(derive_key(secret)), modes.CBC(iv)).decryptor()
    padded = decryptor.update(encrypted) + decryptor.finalize()

    try:
        unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
        raw = unpadder.update(padded) + unpadder.finalize()
        return raw.decode("utf-8")
    except (ValueError, UnicodeDecodeError) as e:
        raise DecryptionError("Failed to decrypt credential data") from e
