# Core Cryptography Module
"""
Primitives of the ECIES envelope scheme:
- Curve Key Provider (secp256k1 key pairs, ECDH) - curve.py
- HKDF-SHA256 key derivation - kdf.py
- AES-256-GCM authenticated encryption - aead.py
- ECDSA signatures over ciphertext - signing.py
- Explicit randomness capability - random_source.py
"""

from .random_source import (
    RandomSource,
    SystemRandomSource,
    DeterministicRandomSource,
)

from .curve import (
    KeyPair,
    generate_keypair,
    diffie_hellman,
    encode_public_key,
    public_key_from_bytes,
    public_key_fingerprint,
)

from .kdf import derive_key

from .aead import (
    AESGCMCipher,
    generate_nonce,
    encrypt,
    decrypt,
)

from .signing import (
    ECDSASigner,
    sign,
    verify,
    require_valid_signature,
)

__all__ = [
    # Randomness
    'RandomSource',
    'SystemRandomSource',
    'DeterministicRandomSource',
    # Curve
    'KeyPair',
    'generate_keypair',
    'diffie_hellman',
    'encode_public_key',
    'public_key_from_bytes',
    'public_key_fingerprint',
    # KDF
    'derive_key',
    # AEAD
    'AESGCMCipher',
    'generate_nonce',
    'encrypt',
    'decrypt',
    # Signatures
    'ECDSASigner',
    'sign',
    'verify',
    'require_valid_signature',
]
