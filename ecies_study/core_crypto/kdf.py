"""
Key Derivation Function

HKDF-SHA256 (RFC 5869) turning a raw ECDH shared secret into a symmetric key.
Matches the reference scheme by default: no salt, empty info.
"""

from typing import Optional

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from ..config import AES_KEY_SIZE, HKDF_MAX_LENGTH
from ..errors import KdfExpansionError


def derive_key(shared_secret: bytes,
               output_len: int = AES_KEY_SIZE,
               *,
               salt: Optional[bytes] = None,
               info: bytes = b"") -> bytes:
    """
    Derive a key from a shared secret using HKDF-SHA256.

    Args:
        shared_secret: Input key material (ECDH output)
        output_len: Output length in bytes (32 for AES-256)
        salt: Optional salt; None means a zero-filled hash-length salt
        info: Context/application info

    Returns:
        output_len derived bytes

    Raises:
        KdfExpansionError: If output_len is not in [1, 255 * 32]
    """
    if output_len < 1 or output_len > HKDF_MAX_LENGTH:
        raise KdfExpansionError(
            f"HKDF-SHA256 output length must be between 1 and {HKDF_MAX_LENGTH}, got {output_len}"
        )
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=output_len,
        salt=salt,
        info=info,
    )
    return hkdf.derive(shared_secret)
