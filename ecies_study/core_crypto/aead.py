"""
Authenticated Symmetric Cipher

AES-256-GCM. Ciphertext is returned with the 16-byte tag appended, the
layout both ends of the envelope expect.

CRITICAL: a (key, nonce) pair must never encrypt two different plaintexts.
Each envelope uses a fresh key from a fresh ephemeral ECDH, and each
encryption draws a fresh 96-bit nonce.
"""

from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..config import AES_KEY_SIZE, NONCE_SIZE, TAG_SIZE
from ..errors import AuthenticationFailure, EncryptionFailure
from .random_source import RandomSource, resolve_random_source

_AUTH_FAILED = "Message authentication failed"

# NIST SP 800-38D bound for random 96-bit nonces under one key
MAX_MESSAGES_PER_KEY = 2 ** 32


def generate_nonce(rng: Optional[RandomSource] = None) -> bytes:
    """
    Generate a random nonce for AES-GCM.

    Returns:
        12 random bytes
    """
    return resolve_random_source(rng).token_bytes(NONCE_SIZE)


def encrypt(key: bytes, nonce: bytes, plaintext: bytes,
            associated_data: Optional[bytes] = None) -> bytes:
    """
    Encrypt plaintext with AES-256-GCM.

    Returns:
        ciphertext || tag

    Raises:
        EncryptionFailure: If key or nonce has the wrong size
    """
    if len(key) != AES_KEY_SIZE:
        raise EncryptionFailure(f"Key must be {AES_KEY_SIZE} bytes")
    if len(nonce) != NONCE_SIZE:
        raise EncryptionFailure(f"Nonce must be {NONCE_SIZE} bytes")
    try:
        return AESGCM(key).encrypt(nonce, plaintext, associated_data)
    except (ValueError, OverflowError) as exc:
        raise EncryptionFailure(str(exc)) from exc


def decrypt(key: bytes, nonce: bytes, ciphertext: bytes,
            associated_data: Optional[bytes] = None) -> bytes:
    """
    Decrypt and verify ciphertext || tag.

    Every failure (wrong key, wrong nonce, modified or truncated data) raises
    the same AuthenticationFailure. No plaintext is returned on failure.

    Raises:
        AuthenticationFailure: If the tag does not verify
    """
    if len(key) != AES_KEY_SIZE or len(nonce) != NONCE_SIZE or len(ciphertext) < TAG_SIZE:
        raise AuthenticationFailure(_AUTH_FAILED)
    try:
        return AESGCM(key).decrypt(nonce, ciphertext, associated_data)
    except InvalidTag:
        raise AuthenticationFailure(_AUTH_FAILED) from None


class AESGCMCipher:
    """
    AES-256-GCM bound to one key.

    Generates its own nonces and refuses to reuse one it has produced.
    Meant for a bounded number of messages: after max_messages encryptions
    the instance refuses to encrypt, and a new key is needed. The set of
    used nonces is kept for the lifetime of the instance.
    """

    def __init__(self, key: bytes, rng: Optional[RandomSource] = None,
                 max_messages: int = MAX_MESSAGES_PER_KEY):
        """
        Args:
            key: 256-bit (32-byte) key
            rng: Nonce source (system CSPRNG if None)
            max_messages: Encryptions allowed under this key
        """
        if max_messages < 1:
            raise ValueError("max_messages must be positive")
        if len(key) != AES_KEY_SIZE:
            raise EncryptionFailure(f"Key must be {AES_KEY_SIZE} bytes")
        self._key = key
        self._rng = resolve_random_source(rng)
        self._max_messages = max_messages
        self._used_nonces = set()

    def encrypt(self, plaintext: bytes,
                associated_data: Optional[bytes] = None) -> tuple:
        """
        Encrypt with a fresh nonce.

        Returns:
            Tuple of (nonce, ciphertext || tag)

        Raises:
            EncryptionFailure: If the key has reached max_messages
        """
        if len(self._used_nonces) >= self._max_messages:
            raise EncryptionFailure("Message limit for this key reached; rekey")
        nonce = generate_nonce(self._rng)
        while nonce in self._used_nonces:
            nonce = generate_nonce(self._rng)
        self._used_nonces.add(nonce)
        return nonce, encrypt(self._key, nonce, plaintext, associated_data)

    def decrypt(self, nonce: bytes, ciphertext: bytes,
                associated_data: Optional[bytes] = None) -> bytes:
        return decrypt(self._key, nonce, ciphertext, associated_data)
